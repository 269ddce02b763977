"""Deterministic tests for indicators, the moving-average provider and market analysis.

All tests use fixed candle data fixtures. Same input = same output, always.
"""

import math
from datetime import datetime, timezone

import pytest

from signalforge.broker.models import Candle
from signalforge.decision.analyzer import MarketAnalyzer, describe_bias
from signalforge.decision.models import Direction
from signalforge.strategy.base import IndicatorSource, SignalProvider, TradingCalendar
from signalforge.strategy.candle_indicators import CandleIndicatorSource
from signalforge.strategy.indicators import calculate_adx, calculate_atr, calculate_ema
from signalforge.strategy.ma_signals import MovingAverageSignalProvider, direction_from_indicators
from signalforge.strategy.models import IndicatorSnapshot
from signalforge.strategy.registry import SIGNAL_PROVIDER_REGISTRY, get_signal_provider
from signalforge.strategy.session_filter import SessionCalendar, is_in_session

NOW = datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc)


# ── Candle fixtures ──────────────────────────────────────────────────────


def _make_candle(i: int, close: float, spread: float = 0.0003, complete: bool = True) -> Candle:
    return Candle(
        time=f"2025-01-01T{i // 60:02d}:{i % 60:02d}:00Z",
        open=close,
        high=close + spread,
        low=close - spread,
        close=close,
        volume=1000,
        complete=complete,
    )


def _rising_candles(n: int = 120) -> list[Candle]:
    """Closes climb 5 pips per bar with a 6-pip bar range."""
    return [_make_candle(i, 1.1000 + i * 0.0005) for i in range(n)]


def _flat_candles(n: int = 120) -> list[Candle]:
    return [_make_candle(i, 1.1000, spread=0.0001) for i in range(n)]


BULLISH_SNAP = IndicatorSnapshot(instrument="EUR_USD", price=1.20, ma_fast=1.15, ma_slow=1.10, atr=0.05)
UNCLEAR_SNAP = IndicatorSnapshot(instrument="EUR_USD", price=1.12, ma_fast=1.15, ma_slow=1.10, atr=0.05)
QUIET_SNAP = IndicatorSnapshot(instrument="EUR_USD", price=1.10, ma_fast=1.10, ma_slow=1.10, atr=0.0002)


class FakeFeed:
    def __init__(self, candles: list[Candle]) -> None:
        self.candles = candles
        self.requests: list[int] = []

    def fetch_candles(self, instrument, count=100):
        self.requests.append(count)
        return self.candles[-count:]


# ── Indicators ───────────────────────────────────────────────────────────


class TestIndicators:
    def test_atr_uses_true_range(self):
        # Gap between closes (5 pips) exceeds half the bar range, so TR = 8 pips
        assert calculate_atr(_rising_candles(30), period=14) == pytest.approx(0.0008)

    def test_atr_insufficient_data(self):
        with pytest.raises(ValueError, match="ATR"):
            calculate_atr(_rising_candles(14), period=14)

    def test_ema_seed_and_trend(self):
        candles = _rising_candles(30)
        ema = calculate_ema(candles, 10)
        assert all(math.isnan(v) for v in ema[:9])
        assert ema[9] == pytest.approx(sum(c.close for c in candles[:10]) / 10)
        assert ema[-1] < candles[-1].close
        assert ema[-1] > ema[-2]

    def test_ema_insufficient_data(self):
        with pytest.raises(ValueError, match="EMA"):
            calculate_ema(_rising_candles(5), 10)

    def test_adx_strong_trend(self):
        assert calculate_adx(_rising_candles(60), period=14) == pytest.approx(100.0)

    def test_adx_flat_market(self):
        assert calculate_adx(_flat_candles(60), period=14) == 0.0

    def test_adx_insufficient_data(self):
        with pytest.raises(ValueError, match="ADX"):
            calculate_adx(_rising_candles(28), period=14)


class TestIndicatorSnapshot:
    def test_separation_and_volatility(self):
        assert BULLISH_SNAP.separation == pytest.approx(1.0)
        assert BULLISH_SNAP.volatility_pct == pytest.approx(0.05 / 1.2 * 100)

    def test_zero_atr(self):
        snap = IndicatorSnapshot(instrument="EUR_USD", price=1.1, ma_fast=1.2, ma_slow=1.1, atr=0.0)
        assert snap.separation == 0.0


# ── Moving-average provider ──────────────────────────────────────────────


class TestMovingAverageSignalProvider:
    def _provider(self, snap):
        return MovingAverageSignalProvider(lambda instrument: snap)

    def test_satisfies_protocol(self):
        assert isinstance(self._provider(None), SignalProvider)

    def test_trending_confidence(self):
        provider = self._provider(BULLISH_SNAP)
        assert provider.get_direction("EUR_USD") == Direction.BULLISH
        assert provider.get_confidence("EUR_USD") == pytest.approx(50 + 50 * math.tanh(1.0))

    def test_unclear_confidence(self):
        provider = self._provider(UNCLEAR_SNAP)
        assert provider.get_direction("EUR_USD") == Direction.UNCLEAR
        assert provider.get_confidence("EUR_USD") == pytest.approx(50 * math.tanh(1.0))

    def test_bearish_direction(self):
        snap = IndicatorSnapshot(instrument="EUR_USD", price=1.05, ma_fast=1.08, ma_slow=1.10, atr=0.01)
        assert direction_from_indicators(snap) == Direction.BEARISH

    def test_no_indicators(self):
        provider = self._provider(None)
        assert provider.get_confidence("EUR_USD") == 0.0
        assert provider.get_direction("EUR_USD") == Direction.UNCLEAR
        assert not provider.is_ranging("EUR_USD")

    def test_ranging(self):
        assert self._provider(QUIET_SNAP).is_ranging("EUR_USD")
        assert not self._provider(BULLISH_SNAP).is_ranging("EUR_USD")

    def test_negative_threshold_rejected(self):
        with pytest.raises(ValueError):
            MovingAverageSignalProvider(lambda i: None, ranging_volatility_pct=-1)


class TestRegistry:
    def test_default_registered(self):
        assert "moving_average" in SIGNAL_PROVIDER_REGISTRY
        provider = get_signal_provider("moving_average", indicators=lambda i: None)
        assert isinstance(provider, MovingAverageSignalProvider)

    def test_unknown_name(self):
        with pytest.raises(KeyError, match="Unknown signal provider"):
            get_signal_provider("neural_net")


# ── Candle indicator source ──────────────────────────────────────────────


class TestCandleIndicatorSource:
    def _source(self, candles):
        return CandleIndicatorSource(
            FakeFeed(candles), ema_fast=5, ema_slow=10, atr_period=5, adx_period=5, clock=lambda: NOW
        )

    def test_satisfies_protocol(self):
        assert isinstance(self._source([]), IndicatorSource)

    def test_unsubscribed_returns_none(self):
        assert self._source(_rising_candles()).compute("EUR_USD") is None

    def test_compute_trend(self):
        source = self._source(_rising_candles())
        source.subscribe("EUR_USD")
        snap = source.compute("EUR_USD")
        assert snap.price == pytest.approx(1.1000 + 119 * 0.0005)
        assert snap.ma_fast > snap.ma_slow
        assert snap.atr == pytest.approx(0.0008)
        assert snap.adx == pytest.approx(100.0)
        assert snap.computed_at == NOW
        assert direction_from_indicators(snap) == Direction.BULLISH

    def test_requests_enough_history(self):
        source = self._source(_rising_candles())
        source.subscribe("EUR_USD")
        source.compute("EUR_USD")
        assert source._feed.requests == [source.candle_count]
        assert source.candle_count == 20

    def test_not_enough_candles(self):
        source = self._source(_rising_candles(9))
        source.subscribe("EUR_USD")
        assert source.compute("EUR_USD") is None

    def test_incomplete_candles_ignored(self):
        candles = _rising_candles(9) + [_make_candle(9, 1.2, complete=False)]
        source = self._source(candles)
        source.subscribe("EUR_USD")
        assert source.compute("EUR_USD") is None

    def test_adx_omitted_with_short_history(self):
        source = self._source(_rising_candles(10))
        source.subscribe("EUR_USD")
        snap = source.compute("EUR_USD")
        assert snap is not None
        assert snap.adx is None

    def test_release(self):
        source = self._source(_rising_candles())
        source.subscribe("EUR_USD")
        source.release("EUR_USD")
        assert source.subscribed == frozenset()
        assert source.compute("EUR_USD") is None

    def test_fast_must_be_shorter(self):
        with pytest.raises(ValueError, match="ema_fast"):
            CandleIndicatorSource(FakeFeed([]), ema_fast=50, ema_slow=21)


# ── Session filter ───────────────────────────────────────────────────────


class TestSessionFilter:
    @pytest.mark.parametrize("hour,expected", [(6, False), (7, True), (20, True), (21, False)])
    def test_default_window(self, hour, expected):
        assert is_in_session(hour) is expected

    @pytest.mark.parametrize("hour,expected", [(22, True), (23, True), (3, True), (6, False), (12, False)])
    def test_window_wrapping_midnight(self, hour, expected):
        assert is_in_session(hour, session_start=22, session_end=6) is expected

    def test_full_day(self):
        assert all(is_in_session(h, 0, 24) for h in range(24))

    def test_calendar(self):
        calendar = SessionCalendar(7, 21)
        assert isinstance(calendar, TradingCalendar)
        assert calendar.is_open(NOW)
        assert not calendar.is_open(NOW.replace(hour=22))

    def test_calendar_validates_hours(self):
        with pytest.raises(ValueError, match="session_end"):
            SessionCalendar(7, 25)


# ── Market analyzer ──────────────────────────────────────────────────────


class TestMarketAnalyzer:
    def test_derived_from_indicators(self):
        analysis = MarketAnalyzer().analyze("EUR_USD", BULLISH_SNAP, NOW)
        assert analysis.direction == Direction.BULLISH
        assert not analysis.is_ranging
        assert analysis.trend_strength == pytest.approx(50.0)
        assert analysis.bias == "moderate bullish"
        assert analysis.analyzed_at == NOW

    def test_adx_drives_strength(self):
        snap = IndicatorSnapshot(
            instrument="EUR_USD", price=1.20, ma_fast=1.15, ma_slow=1.10, atr=0.05, adx=72.0
        )
        analysis = MarketAnalyzer().analyze("EUR_USD", snap, NOW)
        assert analysis.trend_strength == 72.0
        assert analysis.bias == "strong bullish"

    def test_quiet_market_is_ranging(self):
        analysis = MarketAnalyzer().analyze("EUR_USD", QUIET_SNAP, NOW)
        assert analysis.is_ranging
        assert analysis.direction == Direction.RANGING
        assert analysis.bias == "ranging"

    def test_volatility_uses_live_price(self):
        analysis = MarketAnalyzer().analyze("EUR_USD", BULLISH_SNAP, NOW, price=1.25)
        assert analysis.volatility == pytest.approx(0.05 / 1.25 * 100)

    def test_no_indicators(self):
        analysis = MarketAnalyzer().analyze("EUR_USD", None, NOW)
        assert analysis.direction == Direction.UNCLEAR
        assert analysis.trend_strength == 0.0
        assert analysis.volatility == 0.0
        assert not analysis.is_ranging

    def test_provider_answers_take_precedence(self):
        class Provider:
            def get_direction(self, instrument):
                return Direction.BEARISH

            def is_ranging(self, instrument):
                return True

        analysis = MarketAnalyzer().analyze("EUR_USD", BULLISH_SNAP, NOW, provider=Provider())
        assert analysis.direction == Direction.BEARISH
        assert analysis.is_ranging

    def test_failing_provider_falls_back(self):
        class Provider:
            def get_direction(self, instrument):
                raise RuntimeError("offline")

            def is_ranging(self, instrument):
                return False

        analysis = MarketAnalyzer().analyze("EUR_USD", BULLISH_SNAP, NOW, provider=Provider())
        assert analysis.direction == Direction.BULLISH

    @pytest.mark.parametrize("direction,strength,expected", [
        (Direction.BULLISH, 60.0, "strong bullish"),
        (Direction.BEARISH, 30.0, "moderate bearish"),
        (Direction.BEARISH, 10.0, "weak bearish"),
        (Direction.UNCLEAR, 90.0, "unclear"),
    ])
    def test_describe_bias(self, direction, strength, expected):
        assert describe_bias(direction, strength) == expected
