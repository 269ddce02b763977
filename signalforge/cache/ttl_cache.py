"""Generic TTL cache keyed by instrument.

Each entry remembers when it was last refreshed.  A reader may use an entry
only while ``now - refreshed_at < ttl``.  When the shared ``CacheSettings``
has ``testing_mode`` set, every lookup misses and every put is dropped, so
callers always recompute from live collaborators.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default wall clock used by caches and bookkeeping."""
    return datetime.now(timezone.utc)


@dataclass
class CacheSettings:
    """Flags shared by every cache owned by one engine."""

    testing_mode: bool = False


@dataclass
class CacheEntry(Generic[T]):
    """A cached value and the time it was stored."""

    value: T
    refreshed_at: datetime
    key: str


class TTLCache(Generic[T]):
    """Per-instrument cache with a single staleness window.

    Args:
        name: Label used in stats and logs (e.g. ``"decision"``).
        ttl_seconds: Maximum age at which an entry is still a hit.
        settings: Shared flags (testing mode).
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        settings: Optional[CacheSettings] = None,
        clock: Clock = utc_now,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be >= 0, got {ttl_seconds}")
        self.name = name
        self._ttl = ttl_seconds
        self._settings = settings or CacheSettings()
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self.hits: int = 0
        self.misses: int = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    # ── Reads ────────────────────────────────────────────────────────────

    def try_get(self, key: str) -> tuple[Optional[T], bool]:
        """Return ``(value, True)`` on a fresh hit, ``(None, False)`` otherwise."""
        if self._settings.testing_mode:
            self.misses += 1
            return None, False

        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None, False

        age = (self._clock() - entry.refreshed_at).total_seconds()
        if age < self._ttl:
            self.hits += 1
            return entry.value, True

        self.misses += 1
        return None, False

    def peek(self, key: str) -> Optional[CacheEntry[T]]:
        """Return the raw entry regardless of age (for status displays)."""
        return self._entries.get(key)

    # ── Writes ───────────────────────────────────────────────────────────

    def put(self, key: str, value: T) -> None:
        """Store *value* stamped with the current time."""
        if self._settings.testing_mode:
            return
        self._entries[key] = CacheEntry(value=value, refreshed_at=self._clock(), key=key)

    def invalidate(self, key: str) -> None:
        """Force the entry for *key* to be stale on the next read."""
        entry = self._entries.get(key)
        if entry is not None:
            entry.refreshed_at = datetime.min.replace(tzinfo=timezone.utc)

    def invalidate_all(self) -> None:
        for key in list(self._entries):
            self.invalidate(key)

    def purge(self, key: str) -> None:
        """Drop the entry for *key* entirely."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def reset_counters(self) -> None:
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def stats(self) -> dict:
        total = self.hits + self.misses
        return {
            "ttl_seconds": self._ttl,
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / total, 4) if total else 0.0,
        }
