"""Assembled advisor context and sidebar schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

DeadlineType = Literal["goal", "task"]
DeadlinePriority = Literal["urgent", "soon", "upcoming"]


class ProfileSnapshot(BaseModel):
    """Profile fields shown in the sidebar."""

    model_config = ConfigDict(frozen=True)

    name: str | None = None
    grade: str | None = None
    high_school: str | None = None
    gpa: float | None = None
    sat: int | None = None
    act: int | None = None
    target_schools: list[str] = Field(default_factory=list)


class GoalProgress(BaseModel):
    """Task completion for one in-progress or planning goal.

    ``progress`` is ``None`` when the goal has no tasks yet.
    """

    model_config = ConfigDict(frozen=True)

    goal_id: int
    title: str
    status: str
    total_tasks: int
    completed_tasks: int
    progress: int | None = None


class Deadline(BaseModel):
    """An upcoming goal or task date."""

    model_config = ConfigDict(frozen=True)

    type: DeadlineType
    label: str
    date: datetime
    days_until: int
    priority: DeadlinePriority


class SidebarPayload(BaseModel):
    """Structured context rendered next to the chat."""

    model_config = ConfigDict(frozen=True)

    profile: ProfileSnapshot
    objectives: list[str] = Field(default_factory=list, max_length=4)
    deadlines: list[Deadline] = Field(default_factory=list, max_length=4)
    commitments: list[str] = Field(default_factory=list, max_length=3)
    goals: list[GoalProgress] = Field(default_factory=list)
    days_since_last_session: int | None = None
    total_conversations: int = 0


class AssembledContext(BaseModel):
    """Everything the advisor model needs for one student and mode."""

    model_config = ConfigDict(frozen=True)

    student_id: int
    mode: str
    advisor_prompt: str
    sidebar: SidebarPayload
    assembled_at: datetime


class WarmupRequest(BaseModel):
    """Optional entry mode for warmup."""

    mode: str = Field(default="general", min_length=1, max_length=32)


class WarmupResult(BaseModel):
    """Outcome of a warmup attempt."""

    model_config = ConfigDict(frozen=True)

    warmed: bool
    cached: bool = False
    elapsed_ms: int = 0
    reason: str | None = None


class WarmupAccepted(BaseModel):
    """Warmup was scheduled in the background."""

    model_config = ConfigDict(frozen=True)

    scheduled: bool = True
    mode: str


class GreetingSnapshot(BaseModel):
    """Lightweight profile data cached for greeting generation."""

    model_config = ConfigDict(frozen=True)

    name: str | None = None
    grade: str | None = None
    activities: list[str] = Field(default_factory=list)
