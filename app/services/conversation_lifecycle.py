"""Conversation lifecycle: resume, start, end, and find unsummarized sessions.

Whether a conversation is the student's current one is never stored. It is
derived from ``ended_at`` and ``last_message_at`` against an active window,
so an ended conversation can never come back.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, ensure_utc, utc_now
from app.core.exceptions import ConversationNotFoundError
from app.models.conversation import Conversation
from app.models.message import Message
from app.repositories.conversation_repo import (
    ConversationRepository,
    SummarizationCandidate,
)
from app.repositories.student_context_repo import StudentContextRepository

logger = structlog.get_logger()


def is_active(conversation: Conversation, now: datetime, window: timedelta) -> bool:
    """Active iff not ended and the last message is within ``window`` of ``now``.

    A conversation exactly at the window edge is still active.
    """
    if conversation.ended_at is not None:
        return False
    if conversation.last_message_at is None:
        return False
    return ensure_utc(conversation.last_message_at) >= ensure_utc(now) - window


@dataclass(frozen=True)
class ActiveConversation:
    """The conversation to use for this session."""

    conversation: Conversation
    is_new: bool
    stale_conversation_ids: list[int] = field(default_factory=list)


class ConversationLifecycle:
    """Owns the per-student conversation state machine."""

    def __init__(
        self,
        session: AsyncSession,
        window: timedelta,
        clock: Clock = utc_now,
    ) -> None:
        self._session = session
        self._window = window
        self._clock = clock
        self._conversations = ConversationRepository(session)
        self._contexts = StudentContextRepository(session)

    @property
    def window(self) -> timedelta:
        return self._window

    async def get_or_create_active(
        self, student_id: int, mode: str = "general"
    ) -> ActiveConversation:
        """Resume the student's active conversation or start a new one.

        Also reports the student's unsummarized conversations that have
        aged out of the window so the caller can enqueue them.
        """
        now = self._clock()
        latest = await self._conversations.find_latest_open(student_id)

        if latest is not None and is_active(latest, now, self._window):
            conversation = latest
            is_new = False
        else:
            conversation = await self._conversations.create(student_id, mode, now)
            await self._contexts.record_new_conversation(student_id, now)
            is_new = True
            logger.info(
                "Conversation started",
                student_id=student_id,
                conversation_id=conversation.id,
                mode=mode,
            )

        stale_ids = await self._conversations.find_stale_ids(
            student_id, now - self._window
        )
        return ActiveConversation(
            conversation=conversation,
            is_new=is_new,
            stale_conversation_ids=[
                conversation_id
                for conversation_id in stale_ids
                if conversation_id != conversation.id
            ],
        )

    async def mark_ended(self, conversation_id: int) -> bool:
        """End a conversation. Idempotent and never raises.

        Returns ``True`` only when this call set ``ended_at``.
        """
        try:
            changed = await self._conversations.mark_ended(
                conversation_id, self._clock()
            )
            if changed:
                logger.info("Conversation ended", conversation_id=conversation_id)
                return True
            if not await self._conversations.exists(conversation_id):
                logger.warning(
                    "End signal for unknown conversation",
                    conversation_id=conversation_id,
                )
            return False
        except SQLAlchemyError:
            logger.exception(
                "Failed to mark conversation ended",
                conversation_id=conversation_id,
            )
            return False

    async def record_activity(self, conversation_id: int) -> None:
        """Count one persisted message and bump ``last_message_at``."""
        changed = await self._conversations.increment_activity(
            conversation_id, self._clock()
        )
        if not changed:
            raise ConversationNotFoundError(conversation_id)

    async def append_message(
        self,
        conversation_id: int,
        role: str,
        content: str,
        **metadata: Any,
    ) -> Message:
        """Persist one message and record activity for it exactly once."""
        await self.record_activity(conversation_id)
        return await self._conversations.create_message(
            conversation_id=conversation_id,
            role=role,
            content=content,
            now=self._clock(),
            **metadata,
        )

    async def find_summarization_candidates(
        self, limit: int
    ) -> list[SummarizationCandidate]:
        """Unsummarized conversations that ended or aged out, oldest first."""
        return await self._conversations.find_summarization_candidates(
            cutoff=self._clock() - self._window,
            limit=limit,
        )
