"""Cache layer — the five freshness caches used by the decision engine.

| Cache      | Payload              | Default TTL |
|------------|----------------------|-------------|
| price      | ``Quote``            | 0.5 s       |
| position   | ``PositionSnapshot`` | 1.5 s       |
| analysis   | ``MarketAnalysis``   | 5 s         |
| decision   | ``CachedDecision``   | 5 s         |
| indicators | ``IndicatorSnapshot``| 60 s        |
"""

import logging
from dataclasses import dataclass

from signalforge.cache.ttl_cache import CacheSettings, Clock, TTLCache, utc_now

logger = logging.getLogger("signalforge.cache")


@dataclass(frozen=True)
class CacheTTLs:
    """Staleness windows (seconds) for each cache."""

    price: float = 0.5
    position: float = 1.5
    analysis: float = 5.0
    decision: float = 5.0
    indicators: float = 60.0


class CacheLayer:
    """Owns every cache for one engine and the shared testing-mode flag."""

    def __init__(
        self,
        ttls: CacheTTLs = CacheTTLs(),
        testing_mode: bool = False,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = CacheSettings(testing_mode=testing_mode)
        self.price: TTLCache = TTLCache("price", ttls.price, self.settings, clock)
        self.position: TTLCache = TTLCache("position", ttls.position, self.settings, clock)
        self.analysis: TTLCache = TTLCache("analysis", ttls.analysis, self.settings, clock)
        self.decision: TTLCache = TTLCache("decision", ttls.decision, self.settings, clock)
        self.indicators: TTLCache = TTLCache("indicators", ttls.indicators, self.settings, clock)

    @property
    def caches(self) -> tuple[TTLCache, ...]:
        return (self.price, self.position, self.analysis, self.decision, self.indicators)

    @property
    def testing_mode(self) -> bool:
        return self.settings.testing_mode

    def set_testing_mode(self, enabled: bool) -> None:
        """Toggle cache-free operation; existing entries are dropped either way."""
        self.settings.testing_mode = enabled
        for cache in self.caches:
            cache.clear()
        logger.info("Cache testing mode %s", "enabled" if enabled else "disabled")

    def invalidate_after_trade(self, instrument: str) -> None:
        """Expire the entries a state-changing operation makes wrong."""
        self.decision.invalidate(instrument)
        self.position.invalidate(instrument)

    def invalidate_instrument(self, instrument: str) -> None:
        """Expire every entry belonging to *instrument*; the entries stay."""
        for cache in self.caches:
            cache.invalidate(instrument)

    def invalidate_all(self) -> None:
        """Expire every entry in every cache."""
        for cache in self.caches:
            cache.invalidate_all()

    def purge(self, instrument: str) -> None:
        """Remove every entry belonging to *instrument*."""
        for cache in self.caches:
            cache.purge(instrument)

    def reset_counters(self) -> None:
        for cache in self.caches:
            cache.reset_counters()

    def stats(self) -> dict:
        return {
            "testing_mode": self.settings.testing_mode,
            **{cache.name: cache.stats() for cache in self.caches},
        }
