"""Advisor chat turns: context, streaming, and persistence."""

import json
import math
from collections.abc import AsyncGenerator, Sequence
from dataclasses import dataclass, field

import structlog
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import Clock, utc_now
from app.core.exceptions import LLMGenerationError
from app.core.tasks import BackgroundTaskRunner
from app.models.message import Message
from app.repositories.conversation_repo import ConversationRepository
from app.repositories.profile_repo import ProfileRepository
from app.schemas.chat_schema import ChatRequest, StreamEvent
from app.schemas.context_schema import AssembledContext
from app.services.context_assembler import ContextAssembler
from app.services.conversation_lifecycle import ConversationLifecycle
from app.services.summarization_queue import SummarizationQueue
from app.services.text_generation import TextGenerator

logger = structlog.get_logger()

MAX_HISTORY_MESSAGES = 40
CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class ChatTurn:
    """Everything needed to stream one advisor reply."""

    student_id: int
    conversation_id: int
    is_new: bool
    mode: str
    message: str
    context: AssembledContext
    history: list[BaseMessage] = field(default_factory=list)


def estimate_tokens(*texts: str) -> int:
    """Rough token count used for usage records when the provider reports none."""
    return sum(math.ceil(len(text) / CHARS_PER_TOKEN) for text in texts)


def to_langchain_history(messages: Sequence[Message]) -> list[BaseMessage]:
    """Stored user/assistant messages as LangChain messages, oldest first."""
    history: list[BaseMessage] = []
    for message in messages[-MAX_HISTORY_MESSAGES:]:
        if not message.content:
            continue
        if message.role == "user":
            history.append(HumanMessage(content=message.content))
        elif message.role == "assistant":
            history.append(AIMessage(content=message.content))
    return history


class ChatService:
    """Runs a chat turn against the student's active conversation."""

    def __init__(
        self,
        session: AsyncSession,
        lifecycle: ConversationLifecycle,
        assembler: ContextAssembler,
        queue: SummarizationQueue,
        generator: TextGenerator,
        session_factory: async_sessionmaker[AsyncSession],
        runner: BackgroundTaskRunner,
        clock: Clock = utc_now,
    ) -> None:
        self._session = session
        self._lifecycle = lifecycle
        self._assembler = assembler
        self._queue = queue
        self._generator = generator
        self._session_factory = session_factory
        self._runner = runner
        self._clock = clock
        self._conversations = ConversationRepository(session)

    async def start_turn(self, student_id: int, request: ChatRequest) -> ChatTurn:
        """Resolve the conversation and its context before streaming."""
        active = await self._lifecycle.get_or_create_active(student_id, request.mode)
        conversation = active.conversation
        stored = await self._conversations.find_messages(conversation.id)
        await self._session.commit()

        if active.stale_conversation_ids:
            self._queue.enqueue_many(active.stale_conversation_ids, student_id)

        recent = [{"role": m.role, "content": m.content} for m in stored]
        recent.append({"role": "user", "content": request.message})
        context = await self._assembler.get_context(
            student_id, request.mode, recent_messages=recent
        )

        return ChatTurn(
            student_id=student_id,
            conversation_id=conversation.id,
            is_new=active.is_new,
            mode=request.mode,
            message=request.message,
            context=context,
            history=to_langchain_history(stored),
        )

    async def stream(self, turn: ChatTurn) -> AsyncGenerator[StreamEvent, None]:
        """Yield meta, token and done (or error) events.

        The exchange is saved in the background once streaming stops, even if
        the client disconnects or the model fails mid-reply.
        """
        yield StreamEvent(
            event="meta",
            data=json.dumps(
                {
                    "conversation_id": turn.conversation_id,
                    "is_new_conversation": turn.is_new,
                    "mode": turn.mode,
                }
            ),
        )

        chunks: list[str] = []
        outcome = "cancelled"
        try:
            async for text in self._generator.stream(
                [*turn.history, HumanMessage(content=turn.message)],
                system=turn.context.advisor_prompt,
            ):
                chunks.append(text)
                yield StreamEvent(event="token", data=text)
            outcome = "completed"
        except LLMGenerationError as exc:
            outcome = "failed"
            logger.warning(
                "Advisor stream failed",
                conversation_id=turn.conversation_id,
                error=exc.message,
            )
            yield StreamEvent(
                event="error",
                data=json.dumps({"code": exc.code, "message": exc.message}),
            )
        finally:
            self._runner.spawn(
                self._save_exchange(turn, "".join(chunks), outcome),
                name=f"save-exchange-{turn.conversation_id}",
                conversation_id=turn.conversation_id,
                student_id=turn.student_id,
            )

        if outcome == "completed":
            yield StreamEvent(
                event="done",
                data=json.dumps({"conversation_id": turn.conversation_id}),
            )

    async def _save_exchange(self, turn: ChatTurn, reply: str, outcome: str) -> None:
        """Persist the user message, any reply, and the usage estimate.

        Runs in an independent session so a cancelled stream still records
        whatever text was generated.
        """
        input_tokens = estimate_tokens(
            turn.context.advisor_prompt,
            *(str(message.content) for message in turn.history),
            turn.message,
        )
        output_tokens = estimate_tokens(reply)
        saved = False
        try:
            async with self._session_factory() as session:
                lifecycle = ConversationLifecycle(
                    session=session, window=self._lifecycle.window, clock=self._clock
                )
                await lifecycle.append_message(
                    turn.conversation_id, role="user", content=turn.message
                )
                if reply.strip():
                    await lifecycle.append_message(
                        turn.conversation_id,
                        role="assistant",
                        content=reply,
                        model=self._generator.model_name,
                        tokens_used=input_tokens + output_tokens,
                    )
                await ProfileRepository(session).touch_last_active(
                    turn.student_id, self._clock()
                )
                await session.commit()
                saved = True
        except Exception:
            logger.exception(
                "Failed to save chat exchange",
                conversation_id=turn.conversation_id,
                student_id=turn.student_id,
            )

        logger.info(
            "Chat usage recorded",
            conversation_id=turn.conversation_id,
            student_id=turn.student_id,
            model=self._generator.model_name,
            outcome=outcome,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            saved=saved,
        )
