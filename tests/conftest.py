"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-unit-tests-only")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("SUMMARIZATION_SWEEP_ENABLED", "false")

from collections.abc import AsyncGenerator, AsyncIterator  # noqa: E402
from datetime import UTC, datetime, timedelta  # noqa: E402
from pathlib import Path  # noqa: E402
from typing import Any  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from langchain_core.language_models import BaseChatModel  # noqa: E402
from langchain_core.messages import AIMessage, AIMessageChunk  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.database import Base  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.core.tasks import BackgroundTaskRunner  # noqa: E402
from app.models.conversation import Conversation  # noqa: E402
from app.models.goal import Goal, GoalTask  # noqa: E402
from app.models.message import Message  # noqa: E402
from app.models.notification import Notification  # noqa: E402, F401
from app.models.student_context import StudentContext  # noqa: E402
from app.models.student_profile import StudentProfile  # noqa: E402
from app.services.context_cache import ContextCache, ProfileSnapshotCache  # noqa: E402
from app.services.summarization_queue import SummarizationQueue  # noqa: E402
from app.services.text_generation import TextGenerator  # noqa: E402

WINDOW = timedelta(hours=4)


# --- Clock ---


class FakeClock:
    """Deterministic, manually advanced clock."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeMonotonic:
    """Manually advanced monotonic clock for TTL caches."""

    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed on a Monday afternoon, UTC."""
    return FakeClock(datetime(2026, 10, 19, 15, 0, tzinfo=UTC))


# --- Test DB (SQLite file per test) ---


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create all tables in a fresh SQLite file."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a raw async session for repository and service tests."""
    async with session_factory() as session:
        yield session


# --- Seed helpers ---


async def seed_profile(
    session_factory: async_sessionmaker[AsyncSession], **fields: Any
) -> int:
    """Insert a student profile and return its id."""
    defaults: dict[str, Any] = {
        "first_name": "Maya",
        "grade": "11th",
        "high_school_name": "Lincoln High",
    }
    defaults.update(fields)
    async with session_factory() as session:
        profile = StudentProfile(**defaults)
        session.add(profile)
        await session.commit()
        return profile.id


async def seed_goal(
    session_factory: async_sessionmaker[AsyncSession],
    student_id: int,
    title: str = "Finish Common App essay",
    status: str = "in_progress",
    target_date: datetime | None = None,
    tasks: list[tuple[str, str, datetime | None]] | None = None,
) -> int:
    """Insert a goal with ``(title, status, due_date)`` tasks."""
    async with session_factory() as session:
        goal = Goal(
            student_id=student_id,
            title=title,
            status=status,
            target_date=target_date,
            display_order=0,
        )
        session.add(goal)
        await session.flush()
        for task_title, task_status, due_date in tasks or []:
            session.add(
                GoalTask(
                    goal_id=goal.id,
                    title=task_title,
                    status=task_status,
                    due_date=due_date,
                )
            )
        await session.commit()
        return goal.id


async def seed_conversation(
    session_factory: async_sessionmaker[AsyncSession],
    student_id: int,
    last_message_at: datetime,
    messages: list[tuple[str, str]] | None = None,
    ended_at: datetime | None = None,
    summary: str | None = None,
    mode: str = "general",
) -> int:
    """Insert a conversation with ``(role, content)`` messages."""
    messages = messages or []
    async with session_factory() as session:
        conversation = Conversation(
            student_id=student_id,
            mode=mode,
            started_at=last_message_at - timedelta(minutes=len(messages)),
            last_message_at=last_message_at,
            ended_at=ended_at,
            message_count=len(messages),
            summary=summary,
        )
        session.add(conversation)
        await session.flush()
        for role, content in messages:
            session.add(
                Message(
                    conversation_id=conversation.id,
                    role=role,
                    content=content,
                    created_at=last_message_at,
                )
            )
        await session.commit()
        return conversation.id


async def seed_context(
    session_factory: async_sessionmaker[AsyncSession],
    student_id: int,
    **fields: Any,
) -> None:
    """Insert a master-summary row."""
    defaults: dict[str, Any] = {
        "accountability_level": "moderate",
        "total_conversations": 0,
        "total_messages": 0,
    }
    defaults.update(fields)
    async with session_factory() as session:
        session.add(StudentContext(student_id=student_id, **defaults))
        await session.commit()


# --- Mock LLM ---


def chunk_stream(*chunks: str) -> MagicMock:
    """``astream`` replacement yielding the given text chunks."""

    async def _stream(*args: Any, **kwargs: Any) -> AsyncIterator[AIMessageChunk]:
        for text in chunks:
            yield AIMessageChunk(content=text)

    return MagicMock(side_effect=_stream)


@pytest.fixture
def mock_llm() -> MagicMock:
    """Create a mock LLM for testing."""
    mock = MagicMock(spec=BaseChatModel)
    mock.ainvoke = AsyncMock(return_value=AIMessage(content="Test response"))
    mock.astream = chunk_stream("Test ", "response")
    return mock


@pytest.fixture
def generator(mock_llm: MagicMock) -> TextGenerator:
    return TextGenerator(mock_llm, timeout_seconds=5)


# --- Shared process state ---


@pytest.fixture
def context_cache() -> ContextCache:
    return ContextCache()


@pytest.fixture
def profile_cache() -> ProfileSnapshotCache:
    return ProfileSnapshotCache()


@pytest.fixture
async def runner() -> AsyncGenerator[BackgroundTaskRunner, None]:
    task_runner = BackgroundTaskRunner()
    yield task_runner
    await task_runner.shutdown(timeout=1)


@pytest.fixture
def queue(
    session_factory: async_sessionmaker[AsyncSession],
    generator: TextGenerator,
    runner: BackgroundTaskRunner,
    context_cache: ContextCache,
    clock: FakeClock,
) -> SummarizationQueue:
    return SummarizationQueue(
        session_factory=session_factory,
        generator=generator,
        runner=runner,
        context_cache=context_cache,
        window=WINDOW,
        clock=clock,
    )


# --- Token helpers ---


def make_auth_headers(student_id: int = 1, role: str = "student") -> dict[str, str]:
    """Generate Authorization headers with a valid access token."""
    token = create_access_token(student_id=student_id, role=role)
    return {"Authorization": f"Bearer {token}"}


# --- App override & client fixtures ---


@pytest.fixture
def test_app(
    session_factory: async_sessionmaker[AsyncSession],
    generator: TextGenerator,
    context_cache: ContextCache,
    profile_cache: ProfileSnapshotCache,
    runner: BackgroundTaskRunner,
):  # type: ignore[no-untyped-def]
    """The application with every process-wide dependency swapped for tests."""
    from app import dependencies
    from app.core.database import get_async_session
    from app.main import app as application

    queue = SummarizationQueue(
        session_factory=session_factory,
        generator=generator,
        runner=runner,
        context_cache=context_cache,
        window=WINDOW,
    )

    async def override_get_async_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides = {
        get_async_session: override_get_async_session,
        dependencies.get_session_factory: lambda: session_factory,
        dependencies.get_advisor_generator: lambda: generator,
        dependencies.get_summary_generator: lambda: generator,
        dependencies.get_context_cache: lambda: context_cache,
        dependencies.get_profile_cache: lambda: profile_cache,
        dependencies.get_task_runner: lambda: runner,
        dependencies.get_summarization_queue: lambda: queue,
    }
    yield application
    application.dependency_overrides = {}


@pytest.fixture
async def async_client(test_app) -> AsyncGenerator[AsyncClient, None]:  # type: ignore[no-untyped-def]
    """Create an async test client without credentials."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def client_for(app, student_id: int = 1, role: str = "student") -> AsyncClient:  # type: ignore[no-untyped-def]
    """Client authenticated as ``student_id``."""
    return AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=make_auth_headers(student_id, role),
    )


@pytest.fixture
async def admin_client(test_app) -> AsyncGenerator[AsyncClient, None]:  # type: ignore[no-untyped-def]
    """Create an async test client with admin auth headers."""
    async with client_for(test_app, student_id=999, role="admin") as ac:
        yield ac
