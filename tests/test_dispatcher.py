"""Tests for the dispatcher — execution against the paper broker plus bookkeeping."""

from datetime import datetime, timedelta, timezone

import pytest

from signalforge.bookkeeping.daily_stats import DailyStatsTracker
from signalforge.bookkeeping.trade_log import TradeLog
from signalforge.broker.models import ExecutionResult
from signalforge.broker.paper_client import PaperBroker
from signalforge.cache.layer import CacheLayer
from signalforge.decision.cooldown import CooldownBook
from signalforge.decision.dispatcher import Dispatcher
from signalforge.decision.models import Action, CachedDecision, Direction, PositionSnapshot, Side
from signalforge.models.instrument_config import InstrumentConfig


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


CONFIG = InstrumentConfig(instrument="EUR_USD", risk_percent=1.0, cooldown_seconds=60)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def parts(clock):
    cache = CacheLayer(clock=clock)
    cooldowns = CooldownBook(gating_enabled=True, clock=clock)
    log = TradeLog(capacity=10)
    stats = DailyStatsTracker(clock=clock)
    return cache, cooldowns, log, stats, Dispatcher(cache, cooldowns, log, stats, clock)


@pytest.fixture
def broker(clock):
    paper = PaperBroker(equity=10_000.0, clock=clock)
    paper.set_quote("EUR_USD", 1.1000, 1.1002)
    return paper


class RejectingBroker:
    """Refuses every order with a recoverable 'no quotes' code."""

    def get_position_count(self, instrument, side=None):
        return 0

    def open_position(self, instrument, is_buy, risk_percent, comment=""):
        return ExecutionResult(success=False, error_code=10021, message="market closed")

    def add_to_position(self, instrument, is_buy, risk_percent, comment=""):
        raise RuntimeError("connection reset")


class TestDispatchSuccess:
    def test_open_buy(self, parts, broker):
        cache, cooldowns, log, stats, dispatcher = parts
        report = dispatcher.dispatch(CONFIG, Action.OPEN_BUY, 72.0, broker)

        assert report.executed
        assert report.positions_before == 0
        assert report.positions_after == 1
        assert broker.get_position_count("EUR_USD", Side.BUY) == 1
        assert stats.current.trades == 1
        assert stats.current.buy_trades == 1

    def test_close_side_realizes_profit(self, parts, broker):
        _, _, log, stats, dispatcher = parts
        dispatcher.dispatch(CONFIG, Action.OPEN_BUY, 72.0, broker)
        broker.set_quote("EUR_USD", 1.1010, 1.1012)

        report = dispatcher.dispatch(CONFIG, Action.CLOSE_BUY, 30.0, broker)

        assert report.executed
        assert report.profit > 0
        assert report.positions_after == 0
        assert stats.current.wins == 1
        assert stats.decision_accuracy == 100.0
        assert log.get_trade_history(1)[0].action == Action.CLOSE_BUY

    def test_close_all_uses_total_profit(self, parts, broker):
        _, _, _, stats, dispatcher = parts
        dispatcher.dispatch(CONFIG, Action.OPEN_BUY, 72.0, broker)
        dispatcher.dispatch(CONFIG, Action.OPEN_SELL, 72.0, broker)
        broker.set_quote("EUR_USD", 1.0990, 1.0992)
        expected = broker.get_total_profit("EUR_USD")

        report = dispatcher.dispatch(CONFIG, Action.CLOSE_ALL, 10.0, broker)

        assert report.executed
        assert report.profit == pytest.approx(expected)
        assert report.positions_before == 2
        assert report.positions_after == 0

    def test_close_side_without_positions_fails(self, parts, broker):
        _, _, _, stats, dispatcher = parts
        report = dispatcher.dispatch(CONFIG, Action.CLOSE_SELL, 30.0, broker)
        assert not report.executed
        assert "no SELL positions" in report.detail
        assert stats.current.trades == 0


class TestDispatchBookkeeping:
    def test_non_actionable_is_ignored(self, parts, broker):
        _, cooldowns, log, _, dispatcher = parts
        assert dispatcher.dispatch(CONFIG, Action.HOLD, 50.0, broker) is None
        assert len(log) == 0
        assert cooldowns.get("EUR_USD") is None

    def test_failure_still_records_cooldown_and_log(self, parts, clock):
        _, cooldowns, log, stats, dispatcher = parts
        report = dispatcher.dispatch(CONFIG, Action.OPEN_SELL, 72.0, RejectingBroker())

        assert not report.executed
        assert "10021" in report.detail
        record = cooldowns.get("EUR_USD")
        assert record.side is Side.SELL
        assert record.last_action_at == clock.now
        entry = log.get_trade_history(1)[0]
        assert not entry.executed
        assert stats.current.trades == 0

    def test_collaborator_exception_is_a_failure(self, parts):
        _, _, log, _, dispatcher = parts
        report = dispatcher.dispatch(CONFIG, Action.ADD_BUY, 85.0, RejectingBroker())
        assert not report.executed
        assert "connection reset" in report.detail
        assert len(log) == 1

    def test_missing_broker(self, parts):
        _, _, log, _, dispatcher = parts
        report = dispatcher.dispatch(CONFIG, Action.OPEN_BUY, 72.0, None)
        assert not report.executed
        assert log.get_trade_history(1)[0].detail == "no execution collaborator"

    def test_close_all_records_sideless_cooldown(self, parts, broker):
        _, cooldowns, _, _, dispatcher = parts
        dispatcher.dispatch(CONFIG, Action.CLOSE_ALL, 10.0, broker)
        assert cooldowns.get("EUR_USD").side is None

    def test_invalidates_decision_and_position_caches(self, parts, broker, clock):
        cache, _, _, _, dispatcher = parts
        cache.decision.put("EUR_USD", CachedDecision(Action.OPEN_BUY, 72.0, Direction.BULLISH))
        cache.position.put("EUR_USD", PositionSnapshot())
        cache.analysis.put("EUR_USD", "analysis")

        dispatcher.dispatch(CONFIG, Action.OPEN_BUY, 72.0, broker)

        assert cache.decision.try_get("EUR_USD") == (None, False)
        assert cache.position.try_get("EUR_USD") == (None, False)
        assert cache.analysis.try_get("EUR_USD") == ("analysis", True)

    def test_trade_log_snapshot_fields(self, parts, broker, clock):
        _, _, log, _, dispatcher = parts
        dispatcher.dispatch(CONFIG, Action.OPEN_BUY, 72.0, broker)
        entry = log.get_trade_history(1)[0]
        assert entry.timestamp == clock.now
        assert entry.confidence == 72.0
        assert entry.positions_before == 0
        assert entry.positions_after == 1
        assert entry.detail.startswith("ticket 1")
