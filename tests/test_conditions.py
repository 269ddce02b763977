"""Tests for trade-condition gates, cooldown bookkeeping and validation."""

from datetime import datetime, timedelta, timezone

import pytest

from signalforge.decision.conditions import confidence_gate, direction_gate, evaluate_conditions
from signalforge.decision.cooldown import CooldownBook, relevant_sides
from signalforge.decision.models import Action, Direction, PositionState, Side
from signalforge.decision.validator import validate_action
from signalforge.models.instrument_config import InstrumentConfig
from signalforge.strategy.session_filter import SessionCalendar

NOON = datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc)
CONFIG = InstrumentConfig(
    instrument="EUR_USD",
    buy_threshold=65.0,
    sell_threshold=60.0,
    add_position_threshold=80.0,
    close_position_threshold=40.0,
    close_all_threshold=20.0,
    cooldown_seconds=120,
    max_positions=2,
)


class CountingBroker:
    def __init__(self, count: int = 0, trading_allowed: bool = True) -> None:
        self.count = count
        self.trading_allowed = trading_allowed

    def get_position_count(self, instrument, side=None):
        return self.count

    def is_trading_allowed(self):
        return self.trading_allowed


class ExplodingBroker:
    def get_position_count(self, instrument, side=None):
        raise RuntimeError("boom")

    def is_trading_allowed(self):
        raise RuntimeError("boom")


class TestConfidenceGate:
    @pytest.mark.parametrize("action,confidence,expected", [
        (Action.OPEN_BUY, 65.0, True),
        (Action.OPEN_BUY, 64.9, False),
        (Action.OPEN_SELL, 60.0, True),
        (Action.ADD_BUY, 79.9, False),
        (Action.ADD_SELL, 80.0, True),
        (Action.CLOSE_BUY, 39.9, True),
        (Action.CLOSE_SELL, 40.0, False),
        (Action.CLOSE_ALL, 19.9, True),
        (Action.CLOSE_ALL, 20.0, False),
        (Action.HOLD, 0.0, True),
        (Action.THINKING, 100.0, True),
    ])
    def test_thresholds(self, action, confidence, expected):
        assert confidence_gate(CONFIG, action, confidence) is expected


class TestDirectionGate:
    def test_open_accepts_unclear(self):
        assert direction_gate(Action.OPEN_BUY, Direction.UNCLEAR)
        assert direction_gate(Action.OPEN_SELL, Direction.UNCLEAR)
        assert not direction_gate(Action.OPEN_BUY, Direction.BEARISH)

    def test_add_requires_exact_match(self):
        assert direction_gate(Action.ADD_BUY, Direction.BULLISH)
        assert not direction_gate(Action.ADD_BUY, Direction.UNCLEAR)
        assert not direction_gate(Action.ADD_SELL, Direction.BULLISH)

    def test_close_ignores_direction(self):
        assert direction_gate(Action.CLOSE_ALL, Direction.RANGING)


class TestEvaluateConditions:
    def test_all_gates_pass(self):
        conditions = evaluate_conditions(
            CONFIG, 70.0, Direction.BULLISH, Action.OPEN_BUY, NOON,
            broker=CountingBroker(count=1),
            cooldowns=CooldownBook(),
            risk=object(),
        )
        assert conditions.all_passed

    def test_position_limit(self):
        conditions = evaluate_conditions(
            CONFIG, 70.0, Direction.BULLISH, Action.OPEN_BUY, NOON, broker=CountingBroker(count=2)
        )
        assert not conditions.position_limit_ok

    def test_position_limit_without_broker_fails(self):
        conditions = evaluate_conditions(CONFIG, 70.0, Direction.BULLISH, Action.ADD_BUY, NOON)
        assert not conditions.position_limit_ok

    def test_position_limit_not_checked_for_close(self):
        conditions = evaluate_conditions(
            CONFIG, 10.0, Direction.BULLISH, Action.CLOSE_ALL, NOON, broker=ExplodingBroker()
        )
        assert conditions.position_limit_ok

    def test_collaborator_error_fails_gate(self):
        conditions = evaluate_conditions(
            CONFIG, 70.0, Direction.BULLISH, Action.OPEN_BUY, NOON, broker=ExplodingBroker()
        )
        assert not conditions.position_limit_ok

    def test_risk_gate_requires_authority(self):
        conditions = evaluate_conditions(CONFIG, 50.0, Direction.UNCLEAR, Action.HOLD, NOON)
        assert not conditions.risk_manager_ok
        assert conditions.failed() == ["risk_manager_ok"]

    def test_trading_hours_hook(self):
        calendar = SessionCalendar(7, 21)
        night = NOON.replace(hour=3)
        assert evaluate_conditions(
            CONFIG, 50.0, Direction.UNCLEAR, Action.HOLD, NOON, calendar=calendar
        ).within_trading_hours
        assert not evaluate_conditions(
            CONFIG, 50.0, Direction.UNCLEAR, Action.HOLD, night, calendar=calendar
        ).within_trading_hours

    def test_cooldown_gate_mirrors_book(self):
        book = CooldownBook(gating_enabled=True, clock=lambda: NOON)
        book.record("EUR_USD", Side.SELL, NOON - timedelta(seconds=30))
        sell = evaluate_conditions(
            CONFIG, 70.0, Direction.BEARISH, Action.OPEN_SELL, NOON, cooldowns=book
        )
        buy = evaluate_conditions(
            CONFIG, 70.0, Direction.BULLISH, Action.OPEN_BUY, NOON, cooldowns=book
        )
        assert not sell.not_in_cooldown
        assert buy.not_in_cooldown


class TestCooldownBook:
    def test_record_counts_actions(self):
        book = CooldownBook()
        book.record("EUR_USD", Side.BUY, NOON)
        rec = book.record("EUR_USD", Side.SELL, NOON + timedelta(seconds=5))
        assert rec.action_count == 2
        assert rec.side is Side.SELL
        assert rec.last_action_at == NOON + timedelta(seconds=5)

    def test_inert_when_gating_disabled(self):
        book = CooldownBook(gating_enabled=False, clock=lambda: NOON)
        book.record("EUR_USD", None, NOON)
        assert not book.is_in_cooldown("EUR_USD", Side.BUY, 300)
        assert book.get("EUR_USD").action_count == 1

    def test_zero_cooldown_never_blocks(self):
        book = CooldownBook(gating_enabled=True, clock=lambda: NOON)
        book.record("EUR_USD", Side.BUY, NOON)
        assert not book.is_in_cooldown("EUR_USD", Side.BUY, 0)

    def test_purge(self):
        book = CooldownBook()
        book.record("EUR_USD", Side.BUY)
        book.purge("EUR_USD")
        assert book.get("EUR_USD") is None
        assert len(book) == 0

    @pytest.mark.parametrize("state,direction,expected", [
        (PositionState.NO_POSITION, Direction.BULLISH, (Side.BUY,)),
        (PositionState.NO_POSITION, Direction.BEARISH, (Side.SELL,)),
        (PositionState.NO_POSITION, Direction.UNCLEAR, (Side.BUY, Side.SELL)),
        (PositionState.HAS_BUY, Direction.BEARISH, (Side.BUY,)),
        (PositionState.HAS_SELL, Direction.BULLISH, (Side.SELL,)),
        (PositionState.HAS_BOTH, Direction.BULLISH, (Side.BUY, Side.SELL)),
    ])
    def test_relevant_sides(self, state, direction, expected):
        assert relevant_sides(state, direction) == expected


class TestValidator:
    def test_non_actionable_always_valid(self):
        assert validate_action(Action.HOLD, 0.0, None, None)
        assert validate_action(Action.THINKING, 50.0, CONFIG, None)

    def test_valid_open(self):
        assert validate_action(Action.OPEN_BUY, 70.0, CONFIG, CountingBroker())

    def test_threshold_recheck(self):
        assert not validate_action(Action.OPEN_BUY, 60.0, CONFIG, CountingBroker())
        assert not validate_action(Action.CLOSE_ALL, 25.0, CONFIG, CountingBroker())

    def test_open_and_add_rejected_at_position_limit(self):
        assert not validate_action(Action.OPEN_SELL, 70.0, CONFIG, CountingBroker(count=2))
        assert not validate_action(Action.ADD_BUY, 85.0, CONFIG, CountingBroker(count=2))
        assert validate_action(Action.ADD_BUY, 85.0, CONFIG, CountingBroker(count=1))
        assert validate_action(Action.CLOSE_ALL, 5.0, CONFIG, CountingBroker(count=5))

    def test_trading_not_allowed(self):
        assert not validate_action(Action.OPEN_BUY, 70.0, CONFIG, CountingBroker(trading_allowed=False))

    def test_missing_collaborators(self):
        assert not validate_action(Action.OPEN_BUY, 70.0, CONFIG, None)
        assert not validate_action(Action.OPEN_BUY, 70.0, None, CountingBroker())

    def test_collaborator_exception_is_false(self):
        assert not validate_action(Action.CLOSE_ALL, 5.0, CONFIG, ExplodingBroker())
