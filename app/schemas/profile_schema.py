"""Profile write-path schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

TaskStatus = Literal["pending", "in_progress", "completed"]


class ProfileUpdateRequest(BaseModel):
    """Partial profile update; only fields sent are changed."""

    model_config = ConfigDict(extra="forbid")

    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    preferred_name: str | None = Field(default=None, max_length=100)
    grade: str | None = Field(default=None, max_length=20)
    high_school_name: str | None = Field(default=None, max_length=255)
    gpa_unweighted: float | None = Field(default=None, ge=0, le=5)
    gpa_weighted: float | None = Field(default=None, ge=0, le=6)
    sat_total: int | None = Field(default=None, ge=400, le=1600)
    act_composite: int | None = Field(default=None, ge=1, le=36)
    target_schools: list[str] | None = None
    activities: list[str] | None = None

    def changes(self) -> dict[str, Any]:
        """Fields explicitly set by the client."""
        return self.model_dump(exclude_unset=True)


class TaskStatusUpdateRequest(BaseModel):
    """New status for a goal task."""

    status: TaskStatus


class TaskResponse(BaseModel):
    """A goal task after an update."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    goal_id: int
    title: str
    status: str
    due_date: datetime | None = None
