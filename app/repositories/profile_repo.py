"""Student profile and goal repository."""

from datetime import datetime
from typing import Any

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.goal import ACTIVE_GOAL_STATUSES, Goal, GoalTask
from app.models.student_profile import StudentProfile


class ProfileRepository:
    """Reads the profile data that feeds context assembly."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_profile(self, student_id: int) -> StudentProfile | None:
        """Find a student profile by id."""
        result = await self._session.execute(
            select(StudentProfile)
            .where(StudentProfile.id == student_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_active_goals(self, student_id: int) -> list[Goal]:
        """In-progress and planning goals with their tasks loaded."""
        result = await self._session.execute(
            select(Goal)
            .where(
                and_(
                    Goal.student_id == student_id,
                    Goal.status.in_(ACTIVE_GOAL_STATUSES),
                )
            )
            .order_by(Goal.display_order.asc(), Goal.id.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def update_profile(self, student_id: int, changes: dict[str, Any]) -> int:
        """Apply column changes to a profile. Returns the number of rows changed."""
        result = await self._session.execute(
            update(StudentProfile)
            .where(StudentProfile.id == student_id)
            .values(**changes)
        )
        return result.rowcount  # type: ignore[attr-defined, no-any-return]

    async def find_task(
        self, student_id: int, goal_id: int, task_id: int
    ) -> GoalTask | None:
        """Find a task under one of the student's goals."""
        result = await self._session.execute(
            select(GoalTask)
            .join(Goal, GoalTask.goal_id == Goal.id)
            .where(
                and_(
                    GoalTask.id == task_id,
                    Goal.id == goal_id,
                    Goal.student_id == student_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def update_task_status(self, task_id: int, status: str) -> None:
        """Set a task's status."""
        await self._session.execute(
            update(GoalTask).where(GoalTask.id == task_id).values(status=status)
        )

    async def find_active_student_ids(self, since: datetime) -> list[int]:
        """Students active since ``since``, ordered by id."""
        result = await self._session.execute(
            select(StudentProfile.id)
            .where(StudentProfile.last_active_at >= since)
            .order_by(StudentProfile.id.asc())
        )
        return list(result.scalars().all())

    async def touch_last_active(self, student_id: int, now: datetime) -> None:
        """Record that the student was just active."""
        await self._session.execute(
            update(StudentProfile)
            .where(StudentProfile.id == student_id)
            .values(last_active_at=now)
        )
