"""Candle-based indicator source — EMA / ATR / ADX from a candle feed."""

import logging
from typing import Optional, Protocol

from signalforge.broker.models import Candle
from signalforge.cache.ttl_cache import Clock, utc_now
from signalforge.strategy.indicators import calculate_adx, calculate_atr, calculate_ema
from signalforge.strategy.models import IndicatorSnapshot

logger = logging.getLogger("signalforge.strategy")


class CandleFeed(Protocol):
    def fetch_candles(self, instrument: str, count: int = 100) -> list[Candle]: ...


class CandleIndicatorSource:
    """``IndicatorSource`` computing indicators from recent candles.

    Both ``PaperBroker`` and ``OandaExecutor`` expose ``fetch_candles`` and
    can serve as the feed.
    """

    def __init__(
        self,
        feed: CandleFeed,
        ema_fast: int = 21,
        ema_slow: int = 50,
        atr_period: int = 14,
        adx_period: int = 14,
        clock: Clock = utc_now,
    ) -> None:
        if ema_fast >= ema_slow:
            raise ValueError(f"ema_fast ({ema_fast}) must be shorter than ema_slow ({ema_slow})")
        self._feed = feed
        self._ema_fast = ema_fast
        self._ema_slow = ema_slow
        self._atr_period = atr_period
        self._adx_period = adx_period
        self._clock = clock
        self._subscribed: set[str] = set()

    @property
    def candle_count(self) -> int:
        return max(self._ema_slow * 2, 2 * self._adx_period + 1, self._atr_period + 1)

    @property
    def subscribed(self) -> frozenset[str]:
        return frozenset(self._subscribed)

    def subscribe(self, instrument: str) -> None:
        self._subscribed.add(instrument)
        logger.debug("Indicator subscription added for %s", instrument)

    def release(self, instrument: str) -> None:
        self._subscribed.discard(instrument)
        logger.debug("Indicator subscription released for %s", instrument)

    def compute(self, instrument: str) -> Optional[IndicatorSnapshot]:
        if instrument not in self._subscribed:
            logger.warning("compute() called for unsubscribed instrument %s", instrument)
            return None

        candles = [c for c in self._feed.fetch_candles(instrument, self.candle_count) if c.complete]
        minimum = max(self._ema_slow, self._atr_period + 1)
        if len(candles) < minimum:
            logger.debug(
                "Not enough candles for %s indicators (%d < %d)", instrument, len(candles), minimum
            )
            return None

        adx: Optional[float] = None
        if len(candles) >= 2 * self._adx_period + 1:
            adx = calculate_adx(candles, self._adx_period)

        return IndicatorSnapshot(
            instrument=instrument,
            price=candles[-1].close,
            ma_fast=calculate_ema(candles, self._ema_fast)[-1],
            ma_slow=calculate_ema(candles, self._ema_slow)[-1],
            atr=calculate_atr(candles, self._atr_period),
            adx=adx,
            computed_at=self._clock(),
        )
