"""Conversation repository for session and message database operations."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.conversation import Conversation
from app.models.message import Message


@dataclass(frozen=True)
class SummarizationCandidate:
    """Immutable result object for the catch-up sweep query."""

    conversation_id: int
    student_id: int


@dataclass(frozen=True)
class PriorSummary:
    """A previously stored conversation summary with its start date."""

    summary: str
    started_at: datetime


class ConversationRepository:
    """Encapsulates conversation and message database queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_id(self, conversation_id: int) -> Conversation | None:
        """Find a conversation by primary key, refreshing any cached instance."""
        result = await self._session.execute(
            select(Conversation)
            .where(Conversation.id == conversation_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_latest_open(self, student_id: int) -> Conversation | None:
        """Most recently active conversation that has not been explicitly ended."""
        result = await self._session.execute(
            select(Conversation)
            .where(
                and_(
                    Conversation.student_id == student_id,
                    Conversation.ended_at.is_(None),
                    Conversation.last_message_at.is_not(None),
                )
            )
            .order_by(Conversation.last_message_at.desc(), Conversation.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        student_id: int,
        mode: str,
        now: datetime,
    ) -> Conversation:
        """Create a new conversation with no messages."""
        conversation = Conversation(
            student_id=student_id,
            mode=mode,
            started_at=now,
            last_message_at=now,
            message_count=0,
        )
        self._session.add(conversation)
        await self._session.flush()
        await self._session.refresh(conversation)
        return conversation

    async def mark_ended(self, conversation_id: int, now: datetime) -> int:
        """Set ``ended_at`` if still open. Returns the number of rows changed."""
        result = await self._session.execute(
            update(Conversation)
            .where(
                and_(
                    Conversation.id == conversation_id,
                    Conversation.ended_at.is_(None),
                )
            )
            .values(ended_at=now)
        )
        return result.rowcount  # type: ignore[attr-defined, no-any-return]

    async def exists(self, conversation_id: int) -> bool:
        """Check whether a conversation row exists."""
        result = await self._session.execute(
            select(Conversation.id).where(Conversation.id == conversation_id)
        )
        return result.scalar_one_or_none() is not None

    async def increment_activity(self, conversation_id: int, now: datetime) -> int:
        """Atomically bump ``message_count`` and ``last_message_at``."""
        result = await self._session.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(
                message_count=Conversation.message_count + 1,
                last_message_at=now,
            )
        )
        return result.rowcount  # type: ignore[attr-defined, no-any-return]

    async def find_stale_ids(self, student_id: int, cutoff: datetime) -> list[int]:
        """Unsummarized conversations of one student idle since before ``cutoff``."""
        result = await self._session.execute(
            select(Conversation.id)
            .where(
                and_(
                    Conversation.student_id == student_id,
                    Conversation.summary.is_(None),
                    Conversation.message_count > 0,
                    Conversation.last_message_at < cutoff,
                )
            )
            .order_by(Conversation.last_message_at.asc(), Conversation.id.asc())
        )
        return list(result.scalars().all())

    async def find_summarization_candidates(
        self, cutoff: datetime, limit: int
    ) -> list[SummarizationCandidate]:
        """Unsummarized conversations that are ended or timed out, oldest first."""
        result = await self._session.execute(
            select(Conversation.id, Conversation.student_id)
            .where(
                and_(
                    Conversation.summary.is_(None),
                    Conversation.message_count > 0,
                    or_(
                        Conversation.ended_at.is_not(None),
                        Conversation.last_message_at < cutoff,
                    ),
                )
            )
            .order_by(Conversation.last_message_at.asc(), Conversation.id.asc())
            .limit(limit)
        )
        return [
            SummarizationCandidate(conversation_id=row.id, student_id=row.student_id)
            for row in result
        ]

    async def save_summary_if_absent(
        self,
        conversation_id: int,
        summary: str,
        summary_for_user: dict[str, Any],
        now: datetime,
    ) -> bool:
        """Write the summary only if none has landed yet.

        Returns ``False`` when a concurrent run already stored one.
        """
        result = await self._session.execute(
            update(Conversation)
            .where(
                and_(
                    Conversation.id == conversation_id,
                    Conversation.summary.is_(None),
                )
            )
            .values(
                summary=summary,
                summary_for_user=summary_for_user,
                summary_updated_at=now,
            )
        )
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def find_recent_summaries(
        self,
        student_id: int,
        limit: int,
        exclude_id: int | None = None,
    ) -> list[PriorSummary]:
        """Latest stored summaries for a student, newest first."""
        stmt = select(Conversation.summary, Conversation.started_at).where(
            and_(
                Conversation.student_id == student_id,
                Conversation.summary.is_not(None),
            )
        )
        if exclude_id is not None:
            stmt = stmt.where(Conversation.id != exclude_id)
        stmt = stmt.order_by(Conversation.started_at.desc()).limit(limit)
        result = await self._session.execute(stmt)
        return [
            PriorSummary(summary=row.summary, started_at=row.started_at)
            for row in result
        ]

    async def find_messages(self, conversation_id: int) -> list[Message]:
        """Retrieve all messages for a conversation in chronological order."""
        result = await self._session.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.id.asc())
        )
        return list(result.scalars().all())

    async def create_message(
        self,
        conversation_id: int,
        role: str,
        content: str,
        now: datetime,
        parsed_intents: list[str] | None = None,
        widget_type: str | None = None,
        widget_data: dict[str, Any] | None = None,
        model: str | None = None,
        tokens_used: int | None = None,
    ) -> Message:
        """Create a single message row."""
        message = Message(
            conversation_id=conversation_id,
            role=role,
            content=content,
            parsed_intents=parsed_intents,
            widget_type=widget_type,
            widget_data=widget_data,
            model=model,
            tokens_used=tokens_used,
            created_at=now,
        )
        self._session.add(message)
        await self._session.flush()
        await self._session.refresh(message)
        return message
