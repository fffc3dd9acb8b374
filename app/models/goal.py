"""Student goal and task database models."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

ACTIVE_GOAL_STATUSES = ("in_progress", "planning")


class Goal(Base):
    """A student goal made of tasks."""

    __tablename__ = "goals"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        ForeignKey("student_profiles.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="planning")
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)
    target_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    tasks: Mapped[list["GoalTask"]] = relationship(
        back_populates="goal",
        lazy="selectin",
        order_by="GoalTask.id",
    )


class GoalTask(Base):
    """A single task under a goal."""

    __tablename__ = "goal_tasks"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    goal_id: Mapped[int] = mapped_column(
        ForeignKey("goals.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    due_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    goal: Mapped[Goal] = relationship(back_populates="tasks")
