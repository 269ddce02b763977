"""Tests for trade log, daily statistics, profiler and the audit sink."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from signalforge.audit import AuditSink, LoggingAuditSink
from signalforge.bookkeeping.daily_stats import DailyStatsTracker
from signalforge.bookkeeping.profiler import Profiler
from signalforge.bookkeeping.trade_log import TradeLog, TradeLogEntry
from signalforge.decision.models import Action

T0 = datetime(2025, 3, 3, 23, 59, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _entry(n: int) -> TradeLogEntry:
    return TradeLogEntry(
        timestamp=T0 + timedelta(seconds=n),
        instrument="EUR_USD",
        action=Action.OPEN_BUY,
        confidence=float(n),
        executed=True,
    )


class TestTradeLog:
    def test_newest_first(self):
        log = TradeLog(capacity=5)
        for n in range(3):
            log.append(_entry(n))
        assert [e.confidence for e in log.get_trade_history(10)] == [2.0, 1.0, 0.0]

    def test_overflow_keeps_most_recent(self):
        log = TradeLog(capacity=3)
        for n in range(5):
            log.append(_entry(n))
        assert len(log) == 3
        assert log.total_appended == 5
        assert [e.confidence for e in log.get_trade_history(3)] == [4.0, 3.0, 2.0]

    def test_limit_and_non_positive(self):
        log = TradeLog(capacity=3)
        log.append(_entry(0))
        log.append(_entry(1))
        assert len(log.get_trade_history(1)) == 1
        assert log.get_trade_history(0) == []
        assert log.get_trade_history(-4) == []

    def test_invalid_capacity(self):
        with pytest.raises(ValueError, match="capacity"):
            TradeLog(capacity=0)

    def test_entry_to_dict(self):
        data = _entry(1).to_dict()
        assert data["action"] == "OPEN_BUY"
        assert data["timestamp"].startswith("2025-03-03T23:59:01")


class TestDailyStats:
    def test_opens_count_trades_not_wins(self):
        stats = DailyStatsTracker(clock=FakeClock())
        stats.record_trade(Action.OPEN_BUY)
        stats.record_trade(Action.ADD_SELL)
        current = stats.current
        assert current.trades == 2
        assert current.buy_trades == 1
        assert current.sell_trades == 1
        assert current.wins == current.losses == 0

    def test_closes_count_wins_and_losses(self):
        stats = DailyStatsTracker(clock=FakeClock())
        stats.record_trade(Action.CLOSE_BUY, 12.5)
        stats.record_trade(Action.CLOSE_SELL, -4.0)
        stats.record_trade(Action.CLOSE_ALL, 30.0)
        current = stats.current
        assert current.wins == 2
        assert current.losses == 1
        assert current.total_profit == pytest.approx(38.5)
        assert current.largest_win == 30.0
        assert current.largest_loss == -4.0
        assert current.win_rate == pytest.approx(200 / 3)

    def test_breakeven_close_is_neither(self):
        stats = DailyStatsTracker(clock=FakeClock())
        stats.record_trade(Action.CLOSE_ALL, 0.0)
        assert stats.current.wins == stats.current.losses == 0
        assert stats.decision_accuracy == 0.0

    def test_rollover_resets_day_but_not_accuracy(self):
        clock = FakeClock()
        stats = DailyStatsTracker(clock=clock)
        stats.record_trade(Action.CLOSE_BUY, 10.0)
        stats.record_trade(Action.CLOSE_BUY, -10.0)

        clock.advance(120)
        assert stats.check_rollover()
        assert stats.current.trades == 0
        assert stats.current.stat_day == clock.now.date()
        assert stats.decision_accuracy == 50.0
        assert not stats.check_rollover()

    def test_record_trade_rolls_over_first(self):
        clock = FakeClock()
        stats = DailyStatsTracker(clock=clock)
        stats.record_trade(Action.OPEN_BUY)
        clock.advance(120)
        stats.record_trade(Action.OPEN_SELL)
        assert stats.current.trades == 1
        assert stats.current.sell_trades == 1

    def test_reset(self):
        stats = DailyStatsTracker(clock=FakeClock())
        stats.record_trade(Action.CLOSE_ALL, 5.0)
        stats.reset()
        assert stats.current.trades == 0
        assert stats.decision_accuracy == 0.0


class TestProfiler:
    def test_counters(self):
        profiler = Profiler()
        profiler.incr("decisions")
        profiler.incr("decisions", 2)
        assert profiler.count("decisions") == 3
        assert profiler.count("missing") == 0

    def test_measure_records_timing_even_on_error(self):
        profiler = Profiler()
        with profiler.measure("decide"):
            pass
        with pytest.raises(RuntimeError):
            with profiler.measure("decide"):
                raise RuntimeError("boom")
        timing = profiler.snapshot()["timings"]["decide"]
        assert timing["calls"] == 2
        assert timing["max_ms"] >= 0.0

    def test_reset(self):
        profiler = Profiler()
        profiler.incr("x")
        with profiler.measure("y"):
            pass
        profiler.reset()
        assert profiler.snapshot() == {"counters": {}, "timings": {}}


class TestLoggingAuditSink:
    def test_satisfies_protocol(self):
        assert isinstance(LoggingAuditSink(), AuditSink)

    def test_flush_emits_one_line(self, caplog):
        sink = LoggingAuditSink()
        with caplog.at_level(logging.INFO, logger="signalforge.audit"):
            sink.start("decision", instrument="EUR_USD")
            sink.append("action", "OPEN_BUY")
            sink.flush()
        assert caplog.messages == ["[decision] instrument=EUR_USD action=OPEN_BUY"]

    def test_start_flushes_pending_context(self, caplog):
        sink = LoggingAuditSink()
        with caplog.at_level(logging.INFO, logger="signalforge.audit"):
            sink.start("first", a=1)
            sink.start("second", b=2)
            sink.flush()
        assert caplog.messages == ["[first] a=1", "[second] b=2"]

    def test_append_without_start(self, caplog):
        sink = LoggingAuditSink()
        with caplog.at_level(logging.INFO, logger="signalforge.audit"):
            sink.append("k", "v")
            sink.flush()
            sink.flush()
        assert caplog.messages == ["[audit] k=v"]

    def test_note(self, caplog):
        sink = LoggingAuditSink()
        with caplog.at_level(logging.INFO, logger="signalforge.audit"):
            sink.note("instrument removed")
        assert "instrument removed" in caplog.text
