"""Summarization schemas: LLM output shapes and sweep results."""

from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidatorFunctionWrapHandler,
    field_validator,
)
from pydantic.alias_generators import to_camel

DEFAULT_HEADLINE = "Conversation with advisor"


class StudentSummary(BaseModel):
    """Structured, user-facing digest of one conversation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    headline: str = DEFAULT_HEADLINE
    topics_discussed: list[str] = Field(default_factory=list)
    decisions_reached: list[str] = Field(default_factory=list)
    action_items: list[str] = Field(default_factory=list)


class ConversationDigest(BaseModel):
    """Both summaries produced for one conversation.

    A malformed ``studentSummary`` falls back to the default digest; a
    missing or blank ``advisorSummary`` invalidates the whole response.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    advisor_summary: str = Field(..., min_length=1)
    student_summary: StudentSummary = Field(default_factory=StudentSummary)

    @field_validator("advisor_summary")
    @classmethod
    def strip_summary(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("advisorSummary must not be blank")
        return v

    @field_validator("student_summary", mode="wrap")
    @classmethod
    def default_on_malformed(
        cls, v: Any, handler: ValidatorFunctionWrapHandler
    ) -> StudentSummary:
        try:
            return handler(v)  # type: ignore[no-any-return]
        except ValidationError:
            return StudentSummary()


class MasterSummaryUpdate(BaseModel):
    """Merged, still-bounded master-summary fields."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    recent_sessions: str = Field(..., min_length=1)
    student_understanding: str = Field(..., min_length=1)
    open_commitments: str = Field(..., min_length=1)


class SweepResult(BaseModel):
    """Counts from one catch-up sweep."""

    model_config = ConfigDict(frozen=True)

    found: int = 0
    summarized: int = 0
    skipped: int = 0
    failed: int = 0


class ProcessPendingRequest(BaseModel):
    """Optional cap for a manual catch-up sweep."""

    limit: int | None = Field(default=None, ge=1, le=100)
