"""In-memory building blocks of the metric cache.

None of these classes lock: ``CacheService`` owns every instance and
serialises access to them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached value with its lifetime.

    Attributes:
        value:      The cached payload (list of metrics or an aggregate).
        created_at: When the value was stored.
        expires_at: ``created_at + cache_duration``.
    """

    value: T
    created_at: datetime
    expires_at: datetime

    @classmethod
    def create(cls, value: T, now: datetime, cache_duration: float) -> "CacheEntry[T]":
        return cls(value=value, created_at=now, expires_at=now + timedelta(seconds=cache_duration))

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class MetricCache(Generic[T]):
    """Ordered entries for one metric type, evicted expiry-first then FIFO."""

    def __init__(self, max_size: int) -> None:
        self._max_size = max_size
        self._entries: list[CacheEntry[T]] = []

    def append(self, entry: CacheEntry[T]) -> None:
        self._entries.append(entry)

    def latest(self, now: datetime) -> CacheEntry[T] | None:
        """Return the last-appended entry if it is still fresh."""
        if not self._entries:
            return None
        latest = self._entries[-1]
        if latest.is_expired(now):
            return None
        return latest

    def trim(self, now: datetime) -> int:
        """Drop expired entries, then the oldest beyond ``max_size``.

        Returns:
            Number of entries removed.
        """
        before = len(self._entries)
        self._entries = [e for e in self._entries if not e.is_expired(now)]
        overflow = len(self._entries) - self._max_size
        if overflow > 0:
            del self._entries[:overflow]
        return before - len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    @property
    def entries(self) -> list[CacheEntry[T]]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


class ThrottleRegistry:
    """Last recorded fetch time per metric type."""

    def __init__(self, throttle_interval: float) -> None:
        self._interval = throttle_interval
        self._last_fetch: dict[str, datetime] = {}

    def record(self, key: str, now: datetime) -> None:
        self._last_fetch[key] = now

    def remaining(self, key: str, now: datetime) -> float:
        """Seconds until ``key`` may be fetched again (0 if not throttled)."""
        last = self._last_fetch.get(key)
        if last is None:
            return 0.0
        elapsed = (now - last).total_seconds()
        return max(0.0, self._interval - elapsed)

    def should_throttle(self, key: str, now: datetime) -> bool:
        return self.remaining(key, now) > 0

    def last_fetch(self, key: str) -> datetime | None:
        return self._last_fetch.get(key)

    def discard(self, key: str) -> None:
        self._last_fetch.pop(key, None)

    def clear(self) -> None:
        self._last_fetch.clear()


@dataclass
class CacheStatistics:
    """Query counters. Each hit, miss or throttle is one query."""

    hit_count: int = 0
    miss_count: int = 0
    throttle_count: int = 0
    total_queries: int = 0

    @property
    def hit_rate(self) -> float:
        if self.total_queries == 0:
            return 0.0
        return self.hit_count / self.total_queries

    @property
    def throttle_rate(self) -> float:
        if self.total_queries == 0:
            return 0.0
        return self.throttle_count / self.total_queries

    def record_hit(self) -> None:
        self.hit_count += 1
        self.total_queries += 1

    def record_miss(self) -> None:
        self.miss_count += 1
        self.total_queries += 1

    def record_throttle(self) -> None:
        self.throttle_count += 1
        self.total_queries += 1

    def to_dict(self) -> dict:
        return {
            "hit_count": self.hit_count,
            "miss_count": self.miss_count,
            "throttle_count": self.throttle_count,
            "total_queries": self.total_queries,
            "hit_rate": round(self.hit_rate, 4),
            "throttle_rate": round(self.throttle_rate, 4),
        }
