"""Background summarization configuration."""

from pydantic import BaseModel


class SummarizationConfig(BaseModel, frozen=True):
    """Catch-up sweep and merge settings."""

    batch_size: int
    sweep_interval_seconds: int
    sweep_enabled: bool
    recent_summaries: int
