"""Trade condition evaluator — six independent gates for a candidate action.

The aggregate explains a decision; it never blocks one.  Enforcement is
``validator.validate_action``; the position limit is also applied while
routing.
"""

import logging
from datetime import datetime
from typing import Optional

from signalforge.decision.cooldown import CooldownBook
from signalforge.decision.models import Action, Direction, TradeConditions
from signalforge.models.instrument_config import InstrumentConfig

logger = logging.getLogger("signalforge.decision")

OPEN_OR_ADD = frozenset({Action.OPEN_BUY, Action.OPEN_SELL, Action.ADD_BUY, Action.ADD_SELL})

_ALLOWED_DIRECTIONS: dict[Action, frozenset] = {
    Action.OPEN_BUY: frozenset({Direction.BULLISH, Direction.UNCLEAR}),
    Action.OPEN_SELL: frozenset({Direction.BEARISH, Direction.UNCLEAR}),
    Action.ADD_BUY: frozenset({Direction.BULLISH}),
    Action.ADD_SELL: frozenset({Direction.BEARISH}),
}


def confidence_gate(config: InstrumentConfig, action: Action, confidence: float) -> bool:
    """Threshold check for *action*; non-actionable actions always pass."""
    if action == Action.OPEN_BUY:
        return confidence >= config.buy_threshold
    if action == Action.OPEN_SELL:
        return confidence >= config.sell_threshold
    if action in (Action.ADD_BUY, Action.ADD_SELL):
        return confidence >= config.add_position_threshold
    if action in (Action.CLOSE_BUY, Action.CLOSE_SELL):
        return confidence < config.close_position_threshold
    if action == Action.CLOSE_ALL:
        return confidence < config.close_all_threshold
    return True


def direction_gate(action: Action, direction: Direction) -> bool:
    """Open accepts aligned or unclear; add needs an exact match."""
    allowed = _ALLOWED_DIRECTIONS.get(action)
    if allowed is None:
        return True
    return direction in allowed


def within_position_limit(config: InstrumentConfig, broker) -> bool:
    """Whether the instrument has room for one more position.

    Counts both sides against ``config.max_positions``.  No collaborator, or
    one that fails to answer, means no room.
    """
    if broker is None:
        return False
    try:
        return broker.get_position_count(config.instrument) < config.max_positions
    except Exception as exc:
        logger.warning("Position count for %s failed: %s", config.instrument, exc)
        return False


def evaluate_conditions(
    config: InstrumentConfig,
    confidence: float,
    direction: Direction,
    action: Action,
    now: datetime,
    broker=None,
    cooldowns: Optional[CooldownBook] = None,
    calendar=None,
    risk=None,
) -> TradeConditions:
    """Build the six-gate report for *action* on ``config.instrument``."""
    instrument = config.instrument

    position_limit_ok = True
    if action in OPEN_OR_ADD:
        position_limit_ok = within_position_limit(config, broker)

    not_in_cooldown = True
    if action.is_actionable and cooldowns is not None:
        not_in_cooldown = not cooldowns.is_in_cooldown(
            instrument, action.side, config.cooldown_seconds
        )

    within_trading_hours = True
    if calendar is not None:
        try:
            within_trading_hours = bool(calendar.is_open(now))
        except Exception as exc:
            logger.warning("Trading calendar check failed: %s", exc)
            within_trading_hours = False

    return TradeConditions(
        confidence_ok=confidence_gate(config, action, confidence),
        direction_ok=direction_gate(action, direction),
        position_limit_ok=position_limit_ok,
        not_in_cooldown=not_in_cooldown,
        within_trading_hours=within_trading_hours,
        risk_manager_ok=risk is not None,
    )
