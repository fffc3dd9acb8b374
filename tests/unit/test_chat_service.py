"""Unit tests for ChatService."""

import json
from datetime import timedelta
from typing import Any
from unittest.mock import MagicMock

import pytest
from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.tasks import BackgroundTaskRunner
from app.models.conversation import Conversation
from app.models.message import Message
from app.models.student_profile import StudentProfile
from app.schemas.chat_schema import ChatRequest, StreamEvent
from app.services.chat_service import (
    MAX_HISTORY_MESSAGES,
    ChatService,
    estimate_tokens,
    to_langchain_history,
)
from app.services.context_assembler import ContextAssembler
from app.services.context_cache import ContextCache
from app.services.conversation_lifecycle import ConversationLifecycle
from app.services.summarization_queue import SummarizationQueue
from app.services.text_generation import TextGenerator
from tests.conftest import WINDOW, FakeClock, seed_conversation, seed_profile


def failing_stream(*chunks: str) -> MagicMock:
    """``astream`` that yields ``chunks`` and then fails."""

    async def _stream(*args: Any, **kwargs: Any):  # type: ignore[no-untyped-def]
        for text in chunks:
            yield AIMessageChunk(content=text)
        raise RuntimeError("connection reset")

    return MagicMock(side_effect=_stream)


async def _messages(db_session: AsyncSession, conversation_id: int) -> list[Message]:
    result = await db_session.execute(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.id)
    )
    return list(result.scalars().all())


def test_history_maps_roles_and_caps_length() -> None:
    stored = [
        Message(role="user" if i % 2 == 0 else "assistant", content=f"m{i}")
        for i in range(MAX_HISTORY_MESSAGES + 6)
    ]
    stored.append(Message(role="system", content="ignored"))

    history = to_langchain_history(stored)

    assert len(history) == MAX_HISTORY_MESSAGES - 1
    assert history[0].content == "m7"
    assert isinstance(history[0], AIMessage)
    assert isinstance(history[1], HumanMessage)
    assert history[-1].content == f"m{MAX_HISTORY_MESSAGES + 5}"


def test_estimate_tokens_rounds_up_per_text() -> None:
    assert estimate_tokens() == 0
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde", "xy") == 3


class TestChatService:
    """Turn setup, streaming, and background persistence."""

    @pytest.fixture
    def service(
        self,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        generator: TextGenerator,
        context_cache: ContextCache,
        queue: SummarizationQueue,
        runner: BackgroundTaskRunner,
        clock: FakeClock,
    ) -> ChatService:
        return ChatService(
            session=db_session,
            lifecycle=ConversationLifecycle(db_session, window=WINDOW, clock=clock),
            assembler=ContextAssembler(session_factory, context_cache, clock),
            queue=queue,
            generator=generator,
            session_factory=session_factory,
            runner=runner,
            clock=clock,
        )

    @staticmethod
    async def _collect(service: ChatService, turn: Any) -> list[StreamEvent]:
        return [event async for event in service.stream(turn)]

    @pytest.mark.asyncio
    async def test_new_conversation_streams_and_saves(
        self,
        service: ChatService,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        runner: BackgroundTaskRunner,
        clock: FakeClock,
    ) -> None:
        student_id = await seed_profile(session_factory)

        turn = await service.start_turn(
            student_id, ChatRequest(message="Help with my essay", mode="story")
        )
        events = await self._collect(service, turn)
        await runner.drain()

        assert turn.is_new is True
        assert [e.event for e in events] == ["meta", "token", "token", "done"]
        meta = json.loads(events[0].data)
        assert meta == {
            "conversation_id": turn.conversation_id,
            "is_new_conversation": True,
            "mode": "story",
        }
        assert "".join(e.data for e in events if e.event == "token") == "Test response"
        assert json.loads(events[-1].data) == {"conversation_id": turn.conversation_id}

        messages = await _messages(db_session, turn.conversation_id)
        assert [(m.role, m.content) for m in messages] == [
            ("user", "Help with my essay"),
            ("assistant", "Test response"),
        ]
        conversation = await db_session.get(
            Conversation, turn.conversation_id, populate_existing=True
        )
        assert conversation is not None
        assert conversation.message_count == 2
        profile = await db_session.get(
            StudentProfile, student_id, populate_existing=True
        )
        assert profile is not None
        assert profile.last_active_at is not None

    @pytest.mark.asyncio
    async def test_resumed_conversation_sends_history(
        self,
        service: ChatService,
        session_factory: async_sessionmaker[AsyncSession],
        mock_llm: MagicMock,
        runner: BackgroundTaskRunner,
        clock: FakeClock,
    ) -> None:
        conversation_id = await seed_conversation(
            session_factory,
            1,
            clock.now - timedelta(minutes=10),
            [("user", "Is MIT a reach?"), ("assistant", "For most students, yes.")],
        )

        turn = await service.start_turn(1, ChatRequest(message="What about CMU?"))
        await self._collect(service, turn)
        await runner.drain()

        assert turn.is_new is False
        assert turn.conversation_id == conversation_id
        sent = mock_llm.astream.call_args.args[0]
        assert [m.content for m in sent[1:]] == [
            "Is MIT a reach?",
            "For most students, yes.",
            "What about CMU?",
        ]
        assert sent[0].content == turn.context.advisor_prompt
        assert '"Is MIT a reach?"' in turn.context.advisor_prompt

    @pytest.mark.asyncio
    async def test_stale_conversation_is_queued(
        self,
        service: ChatService,
        session_factory: async_sessionmaker[AsyncSession],
        queue: SummarizationQueue,
        runner: BackgroundTaskRunner,
        clock: FakeClock,
    ) -> None:
        stale_id = await seed_conversation(
            session_factory, 1, clock.now - timedelta(hours=5), [("user", "Hi")]
        )

        turn = await service.start_turn(1, ChatRequest(message="Back again"))

        assert turn.is_new is True
        assert turn.conversation_id != stale_id
        assert stale_id in queue.in_flight
        await runner.drain()

    @pytest.mark.asyncio
    async def test_mid_stream_failure_keeps_user_message(
        self,
        service: ChatService,
        db_session: AsyncSession,
        mock_llm: MagicMock,
        runner: BackgroundTaskRunner,
    ) -> None:
        mock_llm.astream = failing_stream("Partial ")

        turn = await service.start_turn(1, ChatRequest(message="Hello?"))
        events = await self._collect(service, turn)
        await runner.drain()

        assert [e.event for e in events] == ["meta", "token", "error"]
        error = json.loads(events[-1].data)
        assert error["code"] == "LLM_GENERATION_ERROR"

        messages = await _messages(db_session, turn.conversation_id)
        assert [(m.role, m.content) for m in messages] == [
            ("user", "Hello?"),
            ("assistant", "Partial "),
        ]

    @pytest.mark.asyncio
    async def test_failure_before_any_token_saves_only_user_message(
        self,
        service: ChatService,
        db_session: AsyncSession,
        mock_llm: MagicMock,
        runner: BackgroundTaskRunner,
    ) -> None:
        mock_llm.astream = failing_stream()

        turn = await service.start_turn(1, ChatRequest(message="Hello?"))
        events = await self._collect(service, turn)
        await runner.drain()

        assert [e.event for e in events] == ["meta", "error"]
        messages = await _messages(db_session, turn.conversation_id)
        assert [(m.role, m.content) for m in messages] == [("user", "Hello?")]

    @pytest.mark.asyncio
    async def test_client_disconnect_still_saves(
        self,
        service: ChatService,
        db_session: AsyncSession,
        runner: BackgroundTaskRunner,
    ) -> None:
        turn = await service.start_turn(1, ChatRequest(message="Quick question"))

        stream = service.stream(turn)
        assert (await anext(stream)).event == "meta"
        assert (await anext(stream)).data == "Test "
        await stream.aclose()
        await runner.drain()

        messages = await _messages(db_session, turn.conversation_id)
        assert [(m.role, m.content) for m in messages] == [
            ("user", "Quick question"),
            ("assistant", "Test "),
        ]
        assert messages[0].tokens_used is None
        assert messages[1].tokens_used == estimate_tokens(
            turn.context.advisor_prompt, "Quick question"
        ) + estimate_tokens("Test ")
