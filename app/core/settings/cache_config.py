"""In-process cache configuration."""

from pydantic import BaseModel


class CacheConfig(BaseModel, frozen=True):
    """TTL settings for the per-student caches."""

    context_ttl_seconds: int
    profile_ttl_seconds: int
