"""Market analyzer — direction / trend / ranging / volatility summary.

When a signal provider is attached its direction and ranging answers are
used; otherwise both are derived from the cached indicator snapshot.
Trend strength comes from ADX when available, else from how far apart the
moving averages are in ATR units.
"""

import logging
from datetime import datetime
from typing import Optional

from signalforge.decision.models import Direction, MarketAnalysis
from signalforge.strategy.ma_signals import direction_from_indicators
from signalforge.strategy.models import IndicatorSnapshot

logger = logging.getLogger("signalforge.decision")

_STRONG_TREND = 60.0
_MODERATE_TREND = 30.0


class MarketAnalyzer:
    """Builds ``MarketAnalysis`` values; caching is the engine's job.

    Args:
        ranging_volatility_pct: Volatility floor used when deriving the
            ranging flag without a signal provider.
    """

    def __init__(self, ranging_volatility_pct: float = 0.05) -> None:
        self._ranging_volatility_pct = ranging_volatility_pct

    def analyze(
        self,
        instrument: str,
        indicators: Optional[IndicatorSnapshot],
        now: datetime,
        provider=None,
        price: Optional[float] = None,
    ) -> MarketAnalysis:
        volatility = 0.0
        strength = 0.0
        if indicators is not None:
            reference = price if price and price > 0 else indicators.price
            volatility = indicators.atr / reference * 100.0 if reference > 0 else 0.0
            if indicators.adx is not None:
                strength = indicators.adx
            else:
                strength = indicators.separation * 50.0
            strength = max(0.0, min(100.0, strength))

        direction, ranging = self._direction_and_ranging(instrument, indicators, volatility, provider)

        return MarketAnalysis(
            direction=direction,
            trend_strength=strength,
            is_ranging=ranging,
            volatility=volatility,
            bias=describe_bias(direction, strength),
            analyzed_at=now,
        )

    def _direction_and_ranging(
        self,
        instrument: str,
        indicators: Optional[IndicatorSnapshot],
        volatility: float,
        provider,
    ) -> tuple[Direction, bool]:
        if provider is not None:
            try:
                return provider.get_direction(instrument), bool(provider.is_ranging(instrument))
            except Exception as exc:
                logger.warning(
                    "Signal provider failed for %s (%s) — deriving from indicators",
                    instrument, exc,
                )

        if indicators is None:
            return Direction.UNCLEAR, False

        ranging = volatility < self._ranging_volatility_pct
        direction = direction_from_indicators(indicators)
        if ranging and direction == Direction.UNCLEAR:
            direction = Direction.RANGING
        return direction, ranging


def describe_bias(direction: Direction, strength: float) -> str:
    """``"strong bullish"``, ``"weak bearish"``, ``"ranging"`` ..."""
    if direction in (Direction.RANGING, Direction.UNCLEAR):
        return direction.value.lower()
    if strength >= _STRONG_TREND:
        grade = "strong"
    elif strength >= _MODERATE_TREND:
        grade = "moderate"
    else:
        grade = "weak"
    return f"{grade} {direction.value.lower()}"
