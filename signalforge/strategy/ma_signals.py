"""Moving-average signal provider — the engine's default ``SignalProvider``.

Reads the engine's cached indicator snapshot for an instrument and derives:

- **direction** from the fast/slow EMA relationship and price position
  (fast > slow and price > fast → bullish; mirrored for bearish; anything
  else is unclear).
- **confidence** from how far apart the averages are, in ATR units:
  ``base = 100 × tanh(separation)``; a trending market scores
  ``50 + base / 2``, an unclear one ``base / 2``.
- **ranging** when ATR as a percent of price is under a volatility floor.
"""

import logging
import math
from typing import Callable, Optional

from signalforge.decision.models import Direction
from signalforge.strategy.models import IndicatorSnapshot

logger = logging.getLogger("signalforge.strategy")

IndicatorLookup = Callable[[str], Optional[IndicatorSnapshot]]


class MovingAverageSignalProvider:
    """Fast/slow EMA trend signal with an ATR-based ranging threshold.

    Args:
        indicators: Callable returning the current ``IndicatorSnapshot`` for
            an instrument (normally ``DecisionEngine.get_indicators``).
        ranging_volatility_pct: ATR / price (percent) below which the market
            is considered ranging.
    """

    def __init__(self, indicators: IndicatorLookup, ranging_volatility_pct: float = 0.05) -> None:
        if ranging_volatility_pct < 0:
            raise ValueError(
                f"ranging_volatility_pct must be non-negative, got {ranging_volatility_pct}"
            )
        self._indicators = indicators
        self._ranging_volatility_pct = ranging_volatility_pct

    def get_direction(self, instrument: str) -> Direction:
        snap = self._indicators(instrument)
        if snap is None:
            return Direction.UNCLEAR
        return direction_from_indicators(snap)

    def get_confidence(self, instrument: str) -> float:
        snap = self._indicators(instrument)
        if snap is None:
            logger.debug("No indicators for %s — confidence 0", instrument)
            return 0.0
        base = 100.0 * math.tanh(snap.separation)
        if direction_from_indicators(snap) in (Direction.BULLISH, Direction.BEARISH):
            confidence = 50.0 + base / 2.0
        else:
            confidence = base / 2.0
        return max(0.0, min(100.0, confidence))

    def is_ranging(self, instrument: str) -> bool:
        snap = self._indicators(instrument)
        if snap is None:
            return False
        return snap.volatility_pct < self._ranging_volatility_pct


def direction_from_indicators(snap: IndicatorSnapshot) -> Direction:
    """Classify direction using dual-EMA crossover and price position."""
    if snap.ma_fast > snap.ma_slow and snap.price > snap.ma_fast:
        return Direction.BULLISH
    if snap.ma_fast < snap.ma_slow and snap.price < snap.ma_fast:
        return Direction.BEARISH
    return Direction.UNCLEAR
