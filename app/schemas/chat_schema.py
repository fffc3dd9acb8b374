"""Chat request and response schemas."""

from typing import Literal

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Chat API request schema."""

    message: str = Field(..., min_length=1, max_length=4000)
    mode: str = Field(default="general", min_length=1, max_length=32)


class WelcomeRequest(BaseModel):
    """Greeting request. A conversation id stores the greeting in it."""

    mode: str = Field(default="general", min_length=1, max_length=32)
    conversation_id: int | None = Field(default=None, ge=1)


class WelcomeResponse(BaseModel):
    """Greeting text for the opening turn."""

    message: str
    fallback: bool = False


class StreamEvent(BaseModel):
    """Server-Sent Event for streaming responses."""

    event: Literal["meta", "token", "done", "error"]
    data: str
