"""Global dependencies for the application."""

from collections.abc import Callable
from functools import lru_cache

from fastapi import Depends, Request
from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.database import async_session_factory, get_async_session
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.tasks import BackgroundTaskRunner
from app.services.chat_service import ChatService
from app.services.context_assembler import ContextAssembler
from app.services.context_cache import ContextCache, ProfileSnapshotCache
from app.services.conversation_lifecycle import ConversationLifecycle
from app.services.conversation_service import ConversationService
from app.services.greeting_service import GreetingService
from app.services.notification_engine import NotificationEngine
from app.services.profile_service import ProfileService
from app.services.summarization_queue import SummarizationQueue
from app.services.text_generation import TextGenerator

# --- LLM dependencies ---


def _build_chat_model(openai_model: str, anthropic_model: str) -> BaseChatModel:
    llm_config = settings.llm
    match llm_config.provider:
        case "openai":
            return ChatOpenAI(
                model=openai_model,
                api_key=llm_config.openai_api_key,
                streaming=True,
            )
        case "anthropic":
            return ChatAnthropic(  # type: ignore[call-arg]
                model_name=anthropic_model,
                api_key=llm_config.anthropic_api_key,
                streaming=True,
            )
        case _:
            raise ValueError(f"Unsupported LLM provider: {llm_config.provider}")


@lru_cache
def get_llm() -> BaseChatModel:
    """Get the advisor LLM instance based on the configured provider."""
    return _build_chat_model(
        settings.llm.openai_model, settings.llm.anthropic_model
    )


@lru_cache
def get_summary_llm() -> BaseChatModel:
    """Get the cheaper model used for summaries, objectives and notifications."""
    return _build_chat_model(
        settings.llm.openai_summary_model, settings.llm.anthropic_summary_model
    )


def get_advisor_generator() -> TextGenerator:
    """Get a TextGenerator for advisor replies and greetings."""
    return TextGenerator(get_llm(), settings.llm.timeout_seconds)


def get_summary_generator() -> TextGenerator:
    """Get a TextGenerator for background structured generation."""
    return TextGenerator(get_summary_llm(), settings.llm.timeout_seconds)


# --- Process-wide singletons ---


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the factory background work uses for independent sessions."""
    return async_session_factory


@lru_cache
def get_context_cache() -> ContextCache:
    """Get the shared assembled-context cache."""
    return ContextCache(ttl_seconds=settings.cache.context_ttl_seconds)


@lru_cache
def get_profile_cache() -> ProfileSnapshotCache:
    """Get the shared greeting profile cache."""
    return ProfileSnapshotCache(ttl_seconds=settings.cache.profile_ttl_seconds)


@lru_cache
def get_task_runner() -> BackgroundTaskRunner:
    """Get the shared detached task runner."""
    return BackgroundTaskRunner()


@lru_cache
def get_summarization_queue() -> SummarizationQueue:
    """Get the shared summarization queue."""
    return SummarizationQueue(
        session_factory=get_session_factory(),
        generator=get_summary_generator(),
        runner=get_task_runner(),
        context_cache=get_context_cache(),
        window=settings.conversation.active_window,
        batch_size=settings.summarization.batch_size,
        recent_summaries=settings.summarization.recent_summaries,
    )


def get_context_assembler(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    cache: ContextCache = Depends(get_context_cache),
) -> ContextAssembler:
    """Get ContextAssembler backed by the shared cache."""
    return ContextAssembler(session_factory=session_factory, cache=cache)


def get_notification_engine(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    generator: TextGenerator = Depends(get_summary_generator),
) -> NotificationEngine:
    """Get NotificationEngine."""
    return NotificationEngine(session_factory=session_factory, generator=generator)


# --- Auth dependencies ---


class CurrentStudent(BaseModel):
    """Authenticated student extracted from request state."""

    model_config = ConfigDict(frozen=True)

    id: int
    role: str


def get_current_student(request: Request) -> CurrentStudent:
    """Extract the authenticated student from middleware-populated state."""
    state = getattr(request, "state", None)
    student_id = getattr(state, "student_id", None) if state else None
    if student_id is None:
        raise AuthenticationError(message="Not authenticated")
    return CurrentStudent(id=student_id, role=state.role)


def require_role(*allowed_roles: str) -> Callable[..., CurrentStudent]:
    """Dependency factory that enforces role-based access control."""

    def _check(
        current_student: CurrentStudent = Depends(get_current_student),
    ) -> CurrentStudent:
        if current_student.role not in allowed_roles:
            raise AuthorizationError(
                message=f"Role '{current_student.role}' is not permitted"
            )
        return current_student

    return _check


# --- Request-scoped services ---


def get_conversation_lifecycle(
    session: AsyncSession = Depends(get_async_session),
) -> ConversationLifecycle:
    """Get ConversationLifecycle bound to the current session."""
    return ConversationLifecycle(
        session=session, window=settings.conversation.active_window
    )


def get_conversation_service(
    session: AsyncSession = Depends(get_async_session),
    lifecycle: ConversationLifecycle = Depends(get_conversation_lifecycle),
    queue: SummarizationQueue = Depends(get_summarization_queue),
    current_student: CurrentStudent = Depends(get_current_student),
) -> ConversationService:
    """Get ConversationService for the authenticated student."""
    return ConversationService(
        session=session,
        lifecycle=lifecycle,
        queue=queue,
        student_id=current_student.id,
    )


def get_chat_service(
    session: AsyncSession = Depends(get_async_session),
    lifecycle: ConversationLifecycle = Depends(get_conversation_lifecycle),
    assembler: ContextAssembler = Depends(get_context_assembler),
    queue: SummarizationQueue = Depends(get_summarization_queue),
    generator: TextGenerator = Depends(get_advisor_generator),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    runner: BackgroundTaskRunner = Depends(get_task_runner),
) -> ChatService:
    """Get ChatService with persistence and context assembly."""
    return ChatService(
        session=session,
        lifecycle=lifecycle,
        assembler=assembler,
        queue=queue,
        generator=generator,
        session_factory=session_factory,
        runner=runner,
    )


def get_greeting_service(
    session: AsyncSession = Depends(get_async_session),
    generator: TextGenerator = Depends(get_advisor_generator),
    profile_cache: ProfileSnapshotCache = Depends(get_profile_cache),
    lifecycle: ConversationLifecycle = Depends(get_conversation_lifecycle),
) -> GreetingService:
    """Get GreetingService."""
    return GreetingService(
        session=session,
        generator=generator,
        profile_cache=profile_cache,
        lifecycle=lifecycle,
    )


def get_profile_service(
    session: AsyncSession = Depends(get_async_session),
    context_cache: ContextCache = Depends(get_context_cache),
    profile_cache: ProfileSnapshotCache = Depends(get_profile_cache),
) -> ProfileService:
    """Get ProfileService wired to both caches."""
    return ProfileService(
        session=session,
        context_cache=context_cache,
        profile_cache=profile_cache,
    )
