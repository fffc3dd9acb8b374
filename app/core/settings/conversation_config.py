"""Conversation lifecycle configuration."""

from datetime import timedelta

from pydantic import BaseModel


class ConversationConfig(BaseModel, frozen=True):
    """Conversation session window settings."""

    active_window_minutes: int

    @property
    def active_window(self) -> timedelta:
        """Duration after the last message during which a session resumes."""
        return timedelta(minutes=self.active_window_minutes)
