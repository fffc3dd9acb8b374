"""Integration tests for admin-only background triggers."""

import json
from datetime import timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient
from langchain_core.messages import AIMessage, BaseMessage
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import utc_now
from app.models.conversation import Conversation
from app.models.notification import Notification
from tests.conftest import client_for, seed_conversation, seed_profile


def answer_by_prompt(mock_llm: MagicMock) -> None:
    """Reply with a valid JSON shape for whichever prompt is sent."""

    async def _answer(messages: list[BaseMessage], *args: Any, **kwargs: Any) -> AIMessage:
        prompt = str(messages[-1].content)
        if "Generate two summaries" in prompt:
            payload: dict[str, Any] = {"advisorSummary": "Reviewed the school list."}
        elif "updating a college counselor's notes" in prompt:
            payload = {
                "recentSessions": "Reviewed the school list.",
                "studentUnderstanding": "Organized.",
                "openCommitments": "- Add two safeties",
            }
        elif "decide whether to send a notification" in prompt:
            payload = {
                "shouldSend": True,
                "notificationType": "check_in",
                "urgency": "low",
                "channels": "mobile",
                "messages": {"mobile": "How is the school list going?"},
            }
        else:
            return AIMessage(content="1. Add two safety schools")
        return AIMessage(content=json.dumps(payload))

    mock_llm.ainvoke = AsyncMock(side_effect=_answer)


class TestAccess:
    """Only admins may trigger background work."""

    @pytest.mark.asyncio
    async def test_student_is_forbidden(self, test_app) -> None:  # type: ignore[no-untyped-def]
        async with client_for(test_app, role="student") as client:
            sweep = await client.post("/api/v1/internal/summaries/process")
            notify = await client.post("/api/v1/internal/notifications/run")

        assert sweep.status_code == 403
        assert notify.status_code == 403


class TestProcessSummaries:
    """POST /api/v1/internal/summaries/process."""

    @pytest.mark.asyncio
    async def test_sweep_summarizes_stale_conversations(
        self,
        admin_client: AsyncClient,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        mock_llm: MagicMock,
    ) -> None:
        answer_by_prompt(mock_llm)
        stale_id = await seed_conversation(
            session_factory, 1, utc_now() - timedelta(hours=8), [("user", "Hi")]
        )
        await seed_conversation(
            session_factory, 1, utc_now() - timedelta(minutes=3), [("user", "Now")]
        )

        resp = await admin_client.post("/api/v1/internal/summaries/process")

        assert resp.status_code == 200
        assert resp.json()["data"] == {
            "found": 1,
            "summarized": 1,
            "skipped": 0,
            "failed": 0,
        }
        summary = await db_session.scalar(
            select(Conversation.summary).where(Conversation.id == stale_id)
        )
        assert summary == "Reviewed the school list."

    @pytest.mark.asyncio
    async def test_limit_validation(self, admin_client: AsyncClient) -> None:
        resp = await admin_client.post(
            "/api/v1/internal/summaries/process", json={"limit": 0}
        )
        assert resp.status_code == 422


class TestRunNotifications:
    """POST /api/v1/internal/notifications/run."""

    @pytest.mark.asyncio
    async def test_batch_records_notifications(
        self,
        admin_client: AsyncClient,
        db_session: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        mock_llm: MagicMock,
    ) -> None:
        answer_by_prompt(mock_llm)
        student_id = await seed_profile(session_factory, last_active_at=utc_now())

        resp = await admin_client.post("/api/v1/internal/notifications/run")

        assert resp.status_code == 200
        assert resp.json()["data"] == {
            "processed": 1,
            "sent": 1,
            "skipped": 0,
            "failed": 0,
        }
        notification = await db_session.scalar(select(Notification))
        assert notification is not None
        assert notification.student_id == student_id
        assert notification.mobile_message == "How is the school list going?"
