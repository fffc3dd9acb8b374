"""Notification decision schemas."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

NotificationType = Literal[
    "deadline_reminder",
    "encouragement",
    "check_in",
    "celebration",
    "gentle_nudge",
    "weekly_summary",
    "milestone",
    "none",
]
NotificationUrgency = Literal["high", "medium", "low"]
NotificationChannel = Literal["email", "mobile", "both"]


class EmailContent(BaseModel):
    """Email subject and body."""

    subject: str = ""
    body: str = ""


class NotificationMessages(BaseModel):
    """Messages for each delivery channel."""

    mobile: str = ""
    email: EmailContent = Field(default_factory=EmailContent)


class NotificationDecision(BaseModel):
    """Whether and what to notify a student today."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    should_send: bool
    reasoning: str = ""
    notification_type: NotificationType = "none"
    urgency: NotificationUrgency = "low"
    channels: NotificationChannel = "email"
    messages: NotificationMessages = Field(default_factory=NotificationMessages)

    @property
    def sendable(self) -> bool:
        """A decision to send with an actual notification type."""
        return self.should_send and self.notification_type != "none"


def do_not_send(reasoning: str) -> NotificationDecision:
    """The safe default decision."""
    return NotificationDecision(should_send=False, reasoning=reasoning)


class NotificationBatchRequest(BaseModel):
    """Optional cap on students processed in one batch."""

    limit: int | None = Field(default=None, ge=1, le=1000)


class NotificationBatchResult(BaseModel):
    """Counts from one notification batch."""

    model_config = ConfigDict(frozen=True)

    processed: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
