"""Service layer for the student's conversation sessions."""

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.conversation_repo import ConversationRepository
from app.schemas.conversation_schema import (
    ActiveConversationResponse,
    ConversationResponse,
)
from app.services.conversation_lifecycle import ConversationLifecycle
from app.services.summarization_queue import SummarizationQueue

logger = structlog.get_logger()


class ConversationService:
    """Opens and ends conversations on behalf of one student."""

    def __init__(
        self,
        session: AsyncSession,
        lifecycle: ConversationLifecycle,
        queue: SummarizationQueue,
        student_id: int,
    ) -> None:
        self._session = session
        self._lifecycle = lifecycle
        self._queue = queue
        self._student_id = student_id
        self._conversations = ConversationRepository(session)

    async def open_active(self, mode: str = "general") -> ActiveConversationResponse:
        """Resume or start the active conversation and enqueue stale ones."""
        active = await self._lifecycle.get_or_create_active(self._student_id, mode)
        await self._session.commit()

        if active.stale_conversation_ids:
            scheduled = self._queue.enqueue_many(
                active.stale_conversation_ids, self._student_id
            )
            logger.info(
                "Stale conversations enqueued",
                student_id=self._student_id,
                found=len(active.stale_conversation_ids),
                scheduled=scheduled,
            )

        return ActiveConversationResponse(
            conversation=ConversationResponse.model_validate(active.conversation),
            is_new=active.is_new,
            stale_conversation_ids=active.stale_conversation_ids,
        )

    async def end(self, conversation_id: int) -> bool:
        """Best-effort end signal. Unknown or foreign conversations are ignored.

        Store errors are logged and reported as ``False``, never raised.
        """
        try:
            conversation = await self._conversations.find_by_id(conversation_id)
            if conversation is None or conversation.student_id != self._student_id:
                logger.warning(
                    "End signal ignored",
                    student_id=self._student_id,
                    conversation_id=conversation_id,
                )
                return False

            ended = await self._lifecycle.mark_ended(conversation_id)
            await self._session.commit()
        except SQLAlchemyError:
            logger.exception(
                "Failed to end conversation", conversation_id=conversation_id
            )
            await self._session.rollback()
            return False

        if conversation.summary is None and conversation.message_count > 0:
            self._queue.enqueue(conversation_id, self._student_id)
        return ended
