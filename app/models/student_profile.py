"""Student profile database model (owned by the profile forms)."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class StudentProfile(Base):
    """Profile fields that feed advisor context assembly."""

    __tablename__ = "student_profiles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    preferred_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    grade: Mapped[str | None] = mapped_column(String(20), nullable=True)
    high_school_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gpa_unweighted: Mapped[float | None] = mapped_column(Float, nullable=True)
    gpa_weighted: Mapped[float | None] = mapped_column(Float, nullable=True)
    sat_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    act_composite: Mapped[int | None] = mapped_column(Integer, nullable=True)
    target_schools: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    activities: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    last_active_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def display_name(self) -> str:
        """Name the advisor should use."""
        return self.preferred_name or self.first_name or "Student"
