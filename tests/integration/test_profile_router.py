"""Integration tests for the profile write path."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.services.context_cache import ContextCache
from tests.conftest import client_for, seed_goal, seed_profile


class TestUpdateProfile:
    """PATCH /api/v1/profile."""

    @pytest.mark.asyncio
    async def test_update_refreshes_sidebar(
        self,
        test_app,  # type: ignore[no-untyped-def]
        session_factory: async_sessionmaker[AsyncSession],
        context_cache: ContextCache,
    ) -> None:
        student_id = await seed_profile(session_factory)

        async with client_for(test_app, student_id) as client:
            before = await client.get("/api/v1/context/sidebar")
            assert before.json()["data"]["profile"]["sat"] is None
            assert context_cache.get(student_id) is not None

            resp = await client.patch(
                "/api/v1/profile", json={"sat_total": 1490, "preferred_name": "May"}
            )
            assert context_cache.get(student_id) is None
            after = await client.get("/api/v1/context/sidebar")

        assert resp.status_code == 200
        assert resp.json()["message"] == "Profile updated"
        assert resp.json()["data"]["sat"] == 1490
        profile = after.json()["data"]["profile"]
        assert profile["sat"] == 1490
        assert profile["name"] == "May"

    @pytest.mark.asyncio
    async def test_missing_profile(self, test_app) -> None:  # type: ignore[no-untyped-def]
        async with client_for(test_app, student_id=404) as client:
            resp = await client.patch("/api/v1/profile", json={"grade": "12th"})

        assert resp.status_code == 404
        assert resp.json()["code"] == "STUDENT_PROFILE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_unknown_field(self, test_app) -> None:  # type: ignore[no-untyped-def]
        async with client_for(test_app) as client:
            resp = await client.patch("/api/v1/profile", json={"shoe_size": 9})

        assert resp.status_code == 422


class TestUpdateTask:
    """PATCH /api/v1/profile/goals/{goal_id}/tasks/{task_id}."""

    @pytest.mark.asyncio
    async def test_completing_a_task_updates_progress(
        self,
        test_app,  # type: ignore[no-untyped-def]
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        student_id = await seed_profile(session_factory)
        goal_id = await seed_goal(
            session_factory,
            student_id,
            tasks=[("Outline", "pending", None), ("Draft", "pending", None)],
        )

        async with client_for(test_app, student_id) as client:
            before = await client.get("/api/v1/context/sidebar")
            resp = await client.patch(
                f"/api/v1/profile/goals/{goal_id}/tasks/1",
                json={"status": "completed"},
            )
            after = await client.get("/api/v1/context/sidebar")

        assert before.json()["data"]["goals"][0]["progress"] == 0
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "completed"
        assert after.json()["data"]["goals"][0]["progress"] == 50

    @pytest.mark.asyncio
    async def test_other_students_task(
        self,
        test_app,  # type: ignore[no-untyped-def]
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        owner = await seed_profile(session_factory)
        goal_id = await seed_goal(
            session_factory, owner, tasks=[("Outline", "pending", None)]
        )

        async with client_for(test_app, student_id=owner + 1) as client:
            resp = await client.patch(
                f"/api/v1/profile/goals/{goal_id}/tasks/1",
                json={"status": "completed"},
            )

        assert resp.status_code == 404
        assert resp.json()["code"] == "GOAL_TASK_NOT_FOUND"
