"""Profile write path. Every mutation here invalidates the student's caches."""

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import GoalTaskNotFoundError, StudentProfileNotFoundError
from app.models.goal import GoalTask
from app.models.student_profile import StudentProfile
from app.repositories.profile_repo import ProfileRepository
from app.services.context_cache import ContextCache, ProfileSnapshotCache

logger = structlog.get_logger()


class ProfileService:
    """Mutates profile data that feeds context assembly."""

    def __init__(
        self,
        session: AsyncSession,
        context_cache: ContextCache,
        profile_cache: ProfileSnapshotCache,
    ) -> None:
        self._session = session
        self._context_cache = context_cache
        self._profile_cache = profile_cache
        self._profiles = ProfileRepository(session)

    def invalidate(self, student_id: int) -> None:
        """Drop both cached views of a student."""
        self._context_cache.invalidate(student_id)
        self._profile_cache.invalidate(student_id)

    async def update_profile(
        self, student_id: int, changes: dict[str, Any]
    ) -> StudentProfile:
        if changes:
            updated = await self._profiles.update_profile(student_id, changes)
            if not updated:
                raise StudentProfileNotFoundError()
            await self._session.commit()
            self.invalidate(student_id)
            logger.info(
                "Profile updated",
                student_id=student_id,
                fields=sorted(changes),
            )

        profile = await self._profiles.find_profile(student_id)
        if profile is None:
            raise StudentProfileNotFoundError()
        return profile

    async def update_task_status(
        self, student_id: int, goal_id: int, task_id: int, status: str
    ) -> GoalTask:
        task = await self._profiles.find_task(student_id, goal_id, task_id)
        if task is None:
            raise GoalTaskNotFoundError()

        await self._profiles.update_task_status(task.id, status)
        await self._session.commit()
        await self._session.refresh(task)
        self.invalidate(student_id)
        logger.info(
            "Goal task updated",
            student_id=student_id,
            task_id=task_id,
            status=status,
        )
        return task
