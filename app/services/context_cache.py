"""Process-local TTL caches for assembled context and profile snapshots.

Entries expire lazily: an entry older than the TTL is dropped when read.
There is no background sweep and nothing is shared across processes, so a
restart starts empty. Callers that mutate profile data must invalidate.
"""

import time
from collections.abc import Callable
from typing import Generic, TypeVar

from app.schemas.context_schema import AssembledContext, GreetingSnapshot

K = TypeVar("K")
V = TypeVar("V")

MonotonicClock = Callable[[], float]


class TTLCache(Generic[K, V]):
    """Dictionary with per-entry expiry checked on read.

    Every ``invalidate`` or ``clear`` bumps the key's version. A read-through
    caller captures ``version(key)`` before loading and passes it to ``set``;
    the write is dropped if an invalidation landed in between.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: MonotonicClock = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[K, tuple[V, float]] = {}
        self._versions: dict[K, int] = {}
        self._generation = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def version(self, key: K) -> int:
        return self._generation + self._versions.get(key, 0)

    def get(self, key: K) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, cached_at = entry
        if self._clock() - cached_at > self._ttl:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: K, value: V, version: int | None = None) -> bool:
        """Store ``value``; returns ``False`` if ``version`` is outdated."""
        if version is not None and version != self.version(key):
            return False
        self._entries[key] = (value, self._clock())
        return True

    def invalidate(self, key: K) -> None:
        self._entries.pop(key, None)
        self._versions[key] = self._versions.get(key, 0) + 1

    def clear(self) -> None:
        self._entries.clear()
        self._generation += 1

    def __len__(self) -> int:
        return len(self._entries)


class ContextCache(TTLCache[int, AssembledContext]):
    """Assembled advisor context per student (10 minute default TTL)."""

    def __init__(
        self,
        ttl_seconds: float = 600,
        clock: MonotonicClock = time.monotonic,
    ) -> None:
        super().__init__(ttl_seconds=ttl_seconds, clock=clock)


class ProfileSnapshotCache(TTLCache[int, GreetingSnapshot]):
    """Greeting profile snapshot per student (5 minute default TTL)."""

    def __init__(
        self,
        ttl_seconds: float = 300,
        clock: MonotonicClock = time.monotonic,
    ) -> None:
        super().__init__(ttl_seconds=ttl_seconds, clock=clock)
