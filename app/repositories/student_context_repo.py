"""StudentContext repository: lazy upsert and counter updates."""

from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.student_context import StudentContext


class StudentContextRepository:
    """Encapsulates master-summary row access.

    The row is unique per student; callers treat each write as its own unit
    of atomicity. Counters are updated with SQL expressions so concurrent
    increments do not lose updates.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_student(self, student_id: int) -> StudentContext | None:
        """Find the context row for a student."""
        result = await self._session.execute(
            select(StudentContext)
            .where(StudentContext.student_id == student_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, student_id: int) -> StudentContext:
        """Return the student's context row, creating an empty one if needed."""
        context = await self.find_by_student(student_id)
        if context is not None:
            return context
        context = StudentContext(
            student_id=student_id,
            accountability_level="moderate",
            total_conversations=0,
            total_messages=0,
        )
        self._session.add(context)
        await self._session.flush()
        await self._session.refresh(context)
        return context

    async def record_new_conversation(self, student_id: int, now: datetime) -> None:
        """Increment ``total_conversations`` and stamp ``last_conversation_at``."""
        await self.get_or_create(student_id)
        await self._session.execute(
            update(StudentContext)
            .where(StudentContext.student_id == student_id)
            .values(
                total_conversations=StudentContext.total_conversations + 1,
                last_conversation_at=now,
            )
        )

    async def save_master_summary(
        self,
        student_id: int,
        quick_context: str,
        recent_sessions: str,
        student_understanding: str,
        open_commitments: str,
        message_increment: int,
        now: datetime,
    ) -> None:
        """Upsert the master-summary fields and add to ``total_messages``."""
        await self.get_or_create(student_id)
        await self._session.execute(
            update(StudentContext)
            .where(StudentContext.student_id == student_id)
            .values(
                quick_context=quick_context,
                recent_sessions=recent_sessions,
                student_understanding=student_understanding,
                open_commitments=open_commitments,
                master_summary_updated_at=now,
                total_messages=StudentContext.total_messages + message_increment,
            )
        )

    async def save_objectives(
        self,
        student_id: int,
        objectives: str,
        deadlines: list[dict[str, Any]],
        now: datetime,
    ) -> None:
        """Upsert generated objectives and the computed deadline list."""
        await self.get_or_create(student_id)
        await self._session.execute(
            update(StudentContext)
            .where(StudentContext.student_id == student_id)
            .values(
                generated_objectives=objectives,
                objectives_generated_at=now,
                upcoming_deadlines=deadlines,
            )
        )
