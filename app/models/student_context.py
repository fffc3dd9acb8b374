"""Per-student master summary database model."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class StudentContext(Base):
    """Durable, bounded memory of all past sessions for one student.

    Created lazily when the student starts a first conversation. Prose
    fields are kept within their word budgets by the merge prompt.
    """

    __tablename__ = "student_contexts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        ForeignKey("student_profiles.id"), unique=True, nullable=False, index=True
    )

    quick_context: Mapped[str | None] = mapped_column(Text, nullable=True)
    recent_sessions: Mapped[str | None] = mapped_column(Text, nullable=True)
    student_understanding: Mapped[str | None] = mapped_column(Text, nullable=True)
    open_commitments: Mapped[str | None] = mapped_column(Text, nullable=True)

    generated_objectives: Mapped[str | None] = mapped_column(Text, nullable=True)
    objectives_generated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    upcoming_deadlines: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSON, nullable=True
    )

    advisor_preferences: Mapped[str | None] = mapped_column(Text, nullable=True)
    accountability_level: Mapped[str] = mapped_column(
        String(20), nullable=False, default="moderate"
    )

    total_conversations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_messages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_conversation_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    master_summary_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
