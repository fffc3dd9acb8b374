"""Conversation lifecycle API schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ConversationResponse(BaseModel):
    """A conversation as seen by the client."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    mode: str
    started_at: datetime
    last_message_at: datetime | None = None
    ended_at: datetime | None = None
    message_count: int = 0


class ActiveConversationResponse(BaseModel):
    """Result of resuming or starting a student's active conversation."""

    model_config = ConfigDict(frozen=True)

    conversation: ConversationResponse
    is_new: bool
    stale_conversation_ids: list[int] = Field(default_factory=list)


class EndConversationRequest(BaseModel):
    """End-of-session signal, usually sent on page unload."""

    conversation_id: int = Field(..., ge=1)


class EndConversationResponse(BaseModel):
    """Whether this signal ended the conversation."""

    model_config = ConfigDict(frozen=True)

    ended: bool
