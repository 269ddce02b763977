"""Synthetic market data for the paper backend.

Each ``step()`` closes one bar per instrument with a Gaussian random-walk
move (percent drift and volatility per bar), then pushes the new quote and
the rolling candle window into the ``PaperBroker``.  ``prime()`` fills the
window up front so indicators are available on the first tick.
"""

import logging
import random
from datetime import timedelta
from typing import Iterable, Optional

from signalforge.broker.models import Candle
from signalforge.broker.paper_client import PaperBroker
from signalforge.cache.ttl_cache import Clock, utc_now
from signalforge.risk.position_sizer import INSTRUMENT_PIP_VALUES

logger = logging.getLogger("signalforge.broker.paper")

DEFAULT_START_PRICES = {
    "EUR_USD": 1.0850,
    "GBP_USD": 1.2650,
    "USD_JPY": 150.00,
    "XAU_USD": 2300.0,
}


class RandomWalkFeed:
    """Seeded bar generator driving a ``PaperBroker``.

    Args:
        broker: Paper account receiving quotes and candles.
        instruments: Instruments to generate bars for.
        seed: RNG seed; the same seed replays the same prices.
        drift_pct: Mean move per bar, percent of price.
        volatility_pct: Standard deviation of the move per bar, percent of price.
        spread_pips: Bid/ask spread of the pushed quote.
        history: Candles kept per instrument.
        bar_seconds: Spacing of candle timestamps.
    """

    def __init__(
        self,
        broker: PaperBroker,
        instruments: Iterable[str],
        seed: int = 42,
        drift_pct: float = 0.0,
        volatility_pct: float = 0.05,
        spread_pips: float = 1.0,
        history: int = 200,
        bar_seconds: int = 60,
        start_prices: Optional[dict[str, float]] = None,
        clock: Clock = utc_now,
    ) -> None:
        if volatility_pct < 0:
            raise ValueError(f"volatility_pct must be non-negative, got {volatility_pct}")
        if history < 1:
            raise ValueError(f"history must be >= 1, got {history}")
        self._broker = broker
        self._instruments = list(instruments)
        self._rng = random.Random(seed)
        self._drift = drift_pct / 100.0
        self._sigma = volatility_pct / 100.0
        self._spread_pips = spread_pips
        self._history = history
        self._bar = timedelta(seconds=bar_seconds)
        self._clock = clock
        prices = {**DEFAULT_START_PRICES, **(start_prices or {})}
        self._prices = {i: prices.get(i, 1.0) for i in self._instruments}
        self._candles: dict[str, list[Candle]] = {i: [] for i in self._instruments}
        self._bar_time = None

    @property
    def instruments(self) -> list[str]:
        return list(self._instruments)

    def price(self, instrument: str) -> float:
        return self._prices[instrument]

    def candles(self, instrument: str) -> list[Candle]:
        return list(self._candles[instrument])

    def prime(self) -> None:
        """Generate a full candle window ending at the current time."""
        self._bar_time = self._clock() - self._bar * self._history
        for _ in range(self._history):
            self._advance()
        self._publish()
        logger.info(
            "Paper feed primed with %d bars for %s", self._history, ", ".join(self._instruments)
        )

    def step(self) -> None:
        """Close one more bar for every instrument and publish it."""
        if self._bar_time is None:
            self._bar_time = self._clock() - self._bar
        self._advance()
        self._publish()

    def _advance(self) -> None:
        self._bar_time += self._bar
        stamp = self._bar_time.isoformat()
        for instrument in self._instruments:
            open_ = self._prices[instrument]
            close = max(open_ * 0.5, open_ * (1.0 + self._rng.gauss(self._drift, self._sigma)))
            wick = open_ * abs(self._rng.gauss(0.0, self._sigma / 2.0))
            candle = Candle(
                time=stamp,
                open=open_,
                high=max(open_, close) + wick,
                low=min(open_, close) - wick,
                close=close,
                volume=self._rng.randint(50, 500),
            )
            window = self._candles[instrument]
            window.append(candle)
            del window[:-self._history]
            self._prices[instrument] = close

    def _publish(self) -> None:
        for instrument in self._instruments:
            mid = self._prices[instrument]
            half_spread = self._spread_pips * INSTRUMENT_PIP_VALUES.get(instrument, 0.0001) / 2.0
            self._broker.set_candles(instrument, self._candles[instrument])
            self._broker.set_quote(instrument, mid - half_spread, mid + half_spread)
