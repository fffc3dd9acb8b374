"""Unit tests for SummarizationQueue and the catch-up sweep."""

import json
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.messages import AIMessage, BaseMessage
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.tasks import BackgroundTaskRunner
from app.models.conversation import Conversation
from app.models.student_context import StudentContext
from app.repositories.student_context_repo import StudentContextRepository
from app.schemas.context_schema import (
    AssembledContext,
    ProfileSnapshot,
    SidebarPayload,
)
from app.services.context_cache import ContextCache
from app.services.summarization_queue import SummarizationQueue
from app.services.summarization_service import SummarizationOutcome
from app.services.text_generation import TextGenerator
from tests.conftest import WINDOW, FakeClock, seed_conversation, seed_profile


def scripted_llm(mock_llm: MagicMock, fail_on: str | None = None) -> list[str]:
    """Answer summary, merge and objective prompts; record transcript order."""
    transcripts: list[str] = []

    async def _answer(messages: list[BaseMessage], *args: Any, **kwargs: Any) -> AIMessage:
        prompt = str(messages[-1].content)
        if "Generate two summaries" in prompt:
            transcripts.append(prompt)
            if fail_on is not None and fail_on in prompt:
                raise RuntimeError("provider down")
            return AIMessage(
                content=json.dumps(
                    {
                        "advisorSummary": "Discussed essays.",
                        "studentSummary": {"headline": "Essays"},
                    }
                )
            )
        if "updating a college counselor's notes" in prompt:
            return AIMessage(
                content=json.dumps(
                    {
                        "recentSessions": "Oct 19: Discussed essays.",
                        "studentUnderstanding": "Thoughtful.",
                        "openCommitments": "- Draft essay",
                    }
                )
            )
        return AIMessage(content="1. Review the essay draft\n2. Confirm SAT date")

    mock_llm.ainvoke = AsyncMock(side_effect=_answer)
    return transcripts


def _cached_context(student_id: int) -> AssembledContext:
    return AssembledContext(
        student_id=student_id,
        mode="general",
        advisor_prompt="stale",
        sidebar=SidebarPayload(profile=ProfileSnapshot()),
        assembled_at=datetime(2026, 10, 19, tzinfo=UTC),
    )


class TestEnqueue:
    """Optimistic trigger."""

    @pytest.mark.asyncio
    async def test_enqueue_runs_in_background(
        self,
        queue: SummarizationQueue,
        runner: BackgroundTaskRunner,
        session_factory: async_sessionmaker[AsyncSession],
        db_session: AsyncSession,
        mock_llm: MagicMock,
        clock: FakeClock,
    ) -> None:
        scripted_llm(mock_llm)
        conversation_id = await seed_conversation(
            session_factory, 1, clock.now - timedelta(hours=5), [("user", "Hi")]
        )

        assert queue.enqueue(conversation_id, 1) is True
        assert conversation_id in queue.in_flight
        await runner.drain()

        assert queue.in_flight == frozenset()
        summary = await db_session.scalar(
            select(Conversation.summary).where(Conversation.id == conversation_id)
        )
        assert summary == "Discussed essays."

    @pytest.mark.asyncio
    async def test_duplicate_enqueue_is_skipped(
        self,
        queue: SummarizationQueue,
        runner: BackgroundTaskRunner,
        mock_llm: MagicMock,
    ) -> None:
        scripted_llm(mock_llm)

        assert queue.enqueue(42, 1) is True
        assert queue.enqueue(42, 1) is False
        await runner.drain()

    def test_enqueue_never_raises(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        generator: TextGenerator,
        context_cache: ContextCache,
    ) -> None:
        broken_runner = MagicMock(spec=BackgroundTaskRunner)

        def _refuse(coro: Any, **kwargs: Any) -> None:
            coro.close()
            raise RuntimeError("no event loop")

        broken_runner.spawn.side_effect = _refuse
        queue = SummarizationQueue(
            session_factory, generator, broken_runner, context_cache, WINDOW
        )

        assert queue.enqueue(1, 1) is False
        assert queue.in_flight == frozenset()

    @pytest.mark.asyncio
    async def test_enqueue_many_counts_scheduled(
        self,
        queue: SummarizationQueue,
        runner: BackgroundTaskRunner,
        mock_llm: MagicMock,
    ) -> None:
        scripted_llm(mock_llm)

        assert queue.enqueue_many([1, 2, 2, 3], student_id=1) == 3
        await runner.drain()


class TestSummarizeNow:
    """Job body run by both triggers."""

    @pytest.mark.asyncio
    async def test_success_invalidates_cache_and_refreshes_objectives(
        self,
        queue: SummarizationQueue,
        context_cache: ContextCache,
        session_factory: async_sessionmaker[AsyncSession],
        db_session: AsyncSession,
        mock_llm: MagicMock,
        clock: FakeClock,
    ) -> None:
        scripted_llm(mock_llm)
        student_id = await seed_profile(session_factory)
        conversation_id = await seed_conversation(
            session_factory, student_id, clock.now - timedelta(hours=5), [("user", "Hi")]
        )
        context_cache.set(student_id, _cached_context(student_id))

        outcome = await queue.summarize_now(conversation_id, student_id)

        assert outcome is SummarizationOutcome.SUMMARIZED
        assert context_cache.get(student_id) is None
        context = await db_session.scalar(
            select(StudentContext).where(StudentContext.student_id == student_id)
        )
        assert context is not None
        assert context.generated_objectives is not None
        assert "Review the essay draft" in context.generated_objectives
        assert context.upcoming_deadlines == []

    @pytest.mark.asyncio
    async def test_failure_keeps_cache_and_never_raises(
        self,
        queue: SummarizationQueue,
        context_cache: ContextCache,
        session_factory: async_sessionmaker[AsyncSession],
        mock_llm: MagicMock,
        clock: FakeClock,
    ) -> None:
        mock_llm.ainvoke = AsyncMock(side_effect=RuntimeError("provider down"))
        conversation_id = await seed_conversation(
            session_factory, 1, clock.now - timedelta(hours=5), [("user", "Hi")]
        )
        context_cache.set(1, _cached_context(1))

        outcome = await queue.summarize_now(conversation_id, 1)

        assert outcome is SummarizationOutcome.FAILED
        assert context_cache.get(1) is not None

    @pytest.mark.asyncio
    async def test_database_error_is_contained(
        self,
        generator: TextGenerator,
        runner: BackgroundTaskRunner,
        context_cache: ContextCache,
    ) -> None:
        broken_factory = MagicMock(side_effect=RuntimeError("db down"))
        queue = SummarizationQueue(
            broken_factory, generator, runner, context_cache, WINDOW
        )

        assert await queue.summarize_now(1, 1) is SummarizationOutcome.FAILED


class TestProcessPending:
    """Catch-up sweep."""

    @pytest.mark.asyncio
    async def test_oldest_first_and_counts(
        self,
        queue: SummarizationQueue,
        session_factory: async_sessionmaker[AsyncSession],
        db_session: AsyncSession,
        mock_llm: MagicMock,
        clock: FakeClock,
    ) -> None:
        transcripts = scripted_llm(mock_llm, fail_on="middle one")
        await seed_conversation(
            session_factory, 1, clock.now - timedelta(hours=6), [("user", "newest one")]
        )
        await seed_conversation(
            session_factory, 2, clock.now - timedelta(days=3), [("user", "oldest one")]
        )
        await seed_conversation(
            session_factory, 3, clock.now - timedelta(days=1), [("user", "middle one")]
        )
        active_id = await seed_conversation(
            session_factory, 1, clock.now - timedelta(minutes=5), [("user", "active")]
        )

        result = await queue.process_pending(limit=10)

        assert result.found == 3
        assert result.summarized == 2
        assert result.failed == 1
        assert result.skipped == 0
        order = [
            next(word for word in ("oldest", "middle", "newest") if word in t)
            for t in transcripts
        ]
        assert order == ["oldest", "middle", "newest"]

        active_summary = await db_session.scalar(
            select(Conversation.summary).where(Conversation.id == active_id)
        )
        assert active_summary is None

    @pytest.mark.asyncio
    async def test_respects_batch_size(
        self,
        queue: SummarizationQueue,
        session_factory: async_sessionmaker[AsyncSession],
        mock_llm: MagicMock,
        clock: FakeClock,
    ) -> None:
        scripted_llm(mock_llm)
        for days in range(1, 8):
            await seed_conversation(
                session_factory, 1, clock.now - timedelta(days=days), [("user", "Hi")]
            )

        result = await queue.process_pending()

        assert result.found == 5
        assert result.summarized == 5

    @pytest.mark.asyncio
    async def test_second_sweep_finds_nothing(
        self,
        queue: SummarizationQueue,
        session_factory: async_sessionmaker[AsyncSession],
        mock_llm: MagicMock,
        clock: FakeClock,
    ) -> None:
        scripted_llm(mock_llm)
        await seed_conversation(
            session_factory, 1, clock.now - timedelta(days=1), [("user", "Hi")]
        )

        first = await queue.process_pending()
        second = await queue.process_pending()

        assert first.summarized == 1
        assert second.found == 0

    @pytest.mark.asyncio
    async def test_zero_limit_sweeps_nothing(
        self,
        queue: SummarizationQueue,
        session_factory: async_sessionmaker[AsyncSession],
        mock_llm: MagicMock,
        clock: FakeClock,
    ) -> None:
        scripted_llm(mock_llm)
        await seed_conversation(
            session_factory, 1, clock.now - timedelta(days=1), [("user", "Hi")]
        )

        result = await queue.process_pending(limit=0)

        assert result.found == 0
        mock_llm.ainvoke.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_merge_write_is_retried(
        self,
        queue: SummarizationQueue,
        session_factory: async_sessionmaker[AsyncSession],
        db_session: AsyncSession,
        mock_llm: MagicMock,
        clock: FakeClock,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        scripted_llm(mock_llm)
        student_id = await seed_profile(session_factory)
        conversation_id = await seed_conversation(
            session_factory,
            student_id,
            clock.now - timedelta(hours=6),
            [("user", "Hi"), ("assistant", "Hello")],
        )

        async def _fail(*args: Any, **kwargs: Any) -> None:
            raise OperationalError("UPDATE", {}, Exception("disk I/O error"))

        with monkeypatch.context() as patched:
            patched.setattr(StudentContextRepository, "save_master_summary", _fail)
            outcome = await queue.summarize_now(conversation_id, student_id)

        assert outcome is SummarizationOutcome.FAILED
        summary = await db_session.scalar(
            select(Conversation.summary).where(Conversation.id == conversation_id)
        )
        assert summary is None

        result = await queue.process_pending()

        assert result.found == 1
        assert result.summarized == 1
        context = await db_session.scalar(
            select(StudentContext)
            .where(StudentContext.student_id == student_id)
            .execution_options(populate_existing=True)
        )
        assert context is not None
        assert context.total_messages == 2
        assert context.recent_sessions == "Oct 19: Discussed essays."
        summary = await db_session.scalar(
            select(Conversation.summary).where(Conversation.id == conversation_id)
        )
        assert summary == "Discussed essays."


class TestCacheAfterSummary:
    """Context cached while objectives refresh must not outlive the refresh."""

    @pytest.mark.asyncio
    async def test_read_during_objective_refresh_is_not_kept(
        self,
        queue: SummarizationQueue,
        context_cache: ContextCache,
        session_factory: async_sessionmaker[AsyncSession],
        mock_llm: MagicMock,
        clock: FakeClock,
    ) -> None:
        scripted_llm(mock_llm)
        answer = mock_llm.ainvoke.side_effect
        student_id = await seed_profile(session_factory)
        conversation_id = await seed_conversation(
            session_factory, student_id, clock.now - timedelta(hours=5), [("user", "Hi")]
        )

        async def _cache_then_answer(
            messages: list[BaseMessage], *args: Any, **kwargs: Any
        ) -> AIMessage:
            prompt = str(messages[-1].content)
            if "Generate two summaries" not in prompt and (
                "updating a college counselor's notes" not in prompt
            ):
                context_cache.set(student_id, _cached_context(student_id))
            return await answer(messages, *args, **kwargs)

        mock_llm.ainvoke = AsyncMock(side_effect=_cache_then_answer)

        outcome = await queue.summarize_now(conversation_id, student_id)

        assert outcome is SummarizationOutcome.SUMMARIZED
        assert context_cache.get(student_id) is None
