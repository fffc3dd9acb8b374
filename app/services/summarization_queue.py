"""Background summarization queue.

``enqueue`` is the optimistic trigger used when a conversation ends or is
found stale. ``process_pending`` is the traffic-independent catch-up sweep.
Both run the same ``summarize_now`` job, each in its own database session.
"""

import asyncio
from datetime import timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import Clock, utc_now
from app.core.tasks import BackgroundTaskRunner
from app.schemas.summary_schema import SweepResult
from app.services.context_cache import ContextCache
from app.services.conversation_lifecycle import ConversationLifecycle
from app.services.objectives_service import ObjectivesService
from app.services.summarization_service import (
    SummarizationOutcome,
    SummarizationService,
)
from app.services.text_generation import TextGenerator

logger = structlog.get_logger()


class SummarizationQueue:
    """Runs summarization jobs detached from the requests that trigger them."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        generator: TextGenerator,
        runner: BackgroundTaskRunner,
        context_cache: ContextCache,
        window: timedelta,
        batch_size: int = 5,
        recent_summaries: int = 3,
        clock: Clock = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._generator = generator
        self._runner = runner
        self._context_cache = context_cache
        self._window = window
        self._batch_size = batch_size
        self._recent_summaries = recent_summaries
        self._clock = clock
        self._in_flight: set[int] = set()

    @property
    def in_flight(self) -> frozenset[int]:
        return frozenset(self._in_flight)

    def enqueue(self, conversation_id: int, student_id: int) -> bool:
        """Schedule a summarization job. Never raises.

        Returns ``False`` if the conversation is already being summarized
        or the job could not be scheduled.
        """
        if conversation_id in self._in_flight:
            logger.debug(
                "Summarization already in flight",
                conversation_id=conversation_id,
            )
            return False
        self._in_flight.add(conversation_id)
        try:
            self._runner.spawn(
                self._run_job(conversation_id, student_id),
                name=f"summarize-conversation-{conversation_id}",
                conversation_id=conversation_id,
                student_id=student_id,
            )
        except Exception:
            self._in_flight.discard(conversation_id)
            logger.exception(
                "Failed to enqueue summarization",
                conversation_id=conversation_id,
            )
            return False
        return True

    def enqueue_many(self, conversation_ids: list[int], student_id: int) -> int:
        """Enqueue conversations of one student; returns how many were scheduled."""
        return sum(
            1
            for conversation_id in conversation_ids
            if self.enqueue(conversation_id, student_id)
        )

    async def _run_job(
        self, conversation_id: int, student_id: int
    ) -> SummarizationOutcome:
        try:
            return await self.summarize_now(conversation_id, student_id)
        finally:
            self._in_flight.discard(conversation_id)

    async def summarize_now(
        self, conversation_id: int, student_id: int
    ) -> SummarizationOutcome:
        """Summarize one conversation in its own session. Never raises."""
        try:
            async with self._session_factory() as session:
                service = SummarizationService(
                    session=session,
                    generator=self._generator,
                    recent_summaries=self._recent_summaries,
                    clock=self._clock,
                )
                outcome = await service.summarize_one(conversation_id, student_id)
        except Exception:
            logger.exception(
                "Summarization job failed",
                conversation_id=conversation_id,
                student_id=student_id,
            )
            return SummarizationOutcome.FAILED

        if outcome is SummarizationOutcome.SUMMARIZED:
            self._context_cache.invalidate(student_id)
            await self._refresh_objectives(student_id)
            # Reads during the objectives call cached the pre-refresh state.
            self._context_cache.invalidate(student_id)
        return outcome

    async def _refresh_objectives(self, student_id: int) -> None:
        try:
            async with self._session_factory() as session:
                await ObjectivesService(
                    session=session, generator=self._generator, clock=self._clock
                ).refresh(student_id)
        except Exception:
            logger.exception("Objective refresh failed", student_id=student_id)

    async def process_pending(self, limit: int | None = None) -> SweepResult:
        """Summarize the oldest eligible conversations one at a time."""
        async with self._session_factory() as session:
            lifecycle = ConversationLifecycle(
                session=session, window=self._window, clock=self._clock
            )
            candidates = await lifecycle.find_summarization_candidates(
                self._batch_size if limit is None else limit
            )

        logger.info("Catch-up sweep found candidates", count=len(candidates))
        summarized = skipped = failed = 0
        for candidate in candidates:
            if candidate.conversation_id in self._in_flight:
                skipped += 1
                continue
            self._in_flight.add(candidate.conversation_id)
            try:
                outcome = await self.summarize_now(
                    candidate.conversation_id, candidate.student_id
                )
            finally:
                self._in_flight.discard(candidate.conversation_id)

            if outcome is SummarizationOutcome.SUMMARIZED:
                summarized += 1
            elif outcome is SummarizationOutcome.FAILED:
                failed += 1
            else:
                skipped += 1

        return SweepResult(
            found=len(candidates),
            summarized=summarized,
            skipped=skipped,
            failed=failed,
        )

    async def run_periodic(self, interval_seconds: float) -> None:
        """Sweep now and then every ``interval_seconds`` until cancelled."""
        while True:
            try:
                result = await self.process_pending()
                if result.found:
                    logger.info(
                        "Catch-up sweep complete",
                        found=result.found,
                        summarized=result.summarized,
                        skipped=result.skipped,
                        failed=result.failed,
                    )
            except Exception:
                logger.exception("Catch-up sweep failed")
            await asyncio.sleep(interval_seconds)
