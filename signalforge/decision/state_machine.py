"""Decision state machine — routes a signal to one of ten actions.

Routing, given the instrument's position state::

    cooldown on relevant side(s)        → THINKING
    NO_POSITION                         → open   (buy first, then sell) / THINKING
    position held, market ranging       → hold
    position held, conf < close_all     → close  (CLOSE_ALL)
    position held, conf < close_pos     → fold   (close held side, buy first)
    position held, conf ≥ add           → add    (exact direction match) / hold
    otherwise                           → hold

The hold path only closes a side when direction has reversed against it
*and* confidence is below the close threshold.

Open and add also require fewer than ``max_positions`` open on the
instrument.  Capacity questions go to the execution collaborator; any
failure there is treated as "no capacity".
"""

import logging

from signalforge.decision.conditions import within_position_limit
from signalforge.decision.cooldown import CooldownBook
from signalforge.decision.models import Action, Direction, PositionSnapshot, PositionState
from signalforge.models.instrument_config import InstrumentConfig

logger = logging.getLogger("signalforge.decision")

Route = tuple[Action, str]


class DecisionStateMachine:
    """Stateless router; the engine owns caches, records and counters.

    Args:
        cooldowns: Shared cooldown book (consulted, never written).
        min_confidence: Global floor; flat instruments below it stay
            ``THINKING`` without consulting the collaborator.
    """

    def __init__(self, cooldowns: CooldownBook, min_confidence: float = 0.0) -> None:
        self._cooldowns = cooldowns
        self.min_confidence = min_confidence

    def route(
        self,
        config: InstrumentConfig,
        confidence: float,
        direction: Direction,
        snapshot: PositionSnapshot,
        ranging: bool,
        broker=None,
    ) -> Route:
        """Return ``(candidate_action, reason)``."""
        state = snapshot.state

        if self._cooldowns.any_in_cooldown(
            config.instrument, state, direction, config.cooldown_seconds
        ):
            return Action.THINKING, f"{state.value}: cooling down"

        if state == PositionState.NO_POSITION:
            if confidence < self.min_confidence:
                return Action.THINKING, (
                    f"confidence {confidence:.1f} below global floor {self.min_confidence:.1f}"
                )
            return self._decide_open(config, confidence, direction, broker)

        if ranging:
            return self._decide_hold(config, confidence, direction, state, "ranging")
        if confidence < config.close_all_threshold:
            return self._decide_close(config, confidence)
        if confidence < config.close_position_threshold:
            return self._decide_fold(config, confidence, state)
        if confidence >= config.add_position_threshold:
            return self._decide_add(config, confidence, direction, state, broker)
        return self._decide_hold(config, confidence, direction, state, "between thresholds")

    # ── Sub-deciders ─────────────────────────────────────────────────────

    def _decide_open(
        self, config: InstrumentConfig, confidence: float, direction: Direction, broker
    ) -> Route:
        instrument = config.instrument
        if not within_position_limit(config, broker):
            return Action.THINKING, f"position limit {config.max_positions} reached"
        if (
            confidence >= config.buy_threshold
            and direction in (Direction.BULLISH, Direction.UNCLEAR)
            and _ask(broker, "can_open_new_position", instrument, True)
        ):
            return Action.OPEN_BUY, (
                f"confidence {confidence:.1f} ≥ buy {config.buy_threshold:.1f}, {direction.value}"
            )
        if (
            confidence >= config.sell_threshold
            and direction in (Direction.BEARISH, Direction.UNCLEAR)
            and _ask(broker, "can_open_new_position", instrument, False)
        ):
            return Action.OPEN_SELL, (
                f"confidence {confidence:.1f} ≥ sell {config.sell_threshold:.1f}, {direction.value}"
            )
        return Action.THINKING, f"no entry: confidence {confidence:.1f}, {direction.value}"

    def _decide_add(
        self,
        config: InstrumentConfig,
        confidence: float,
        direction: Direction,
        state: PositionState,
        broker,
    ) -> Route:
        instrument = config.instrument
        holds_buy = state in (PositionState.HAS_BUY, PositionState.HAS_BOTH)
        holds_sell = state in (PositionState.HAS_SELL, PositionState.HAS_BOTH)

        if not within_position_limit(config, broker):
            return self._decide_hold(
                config, confidence, direction, state, f"position limit {config.max_positions} reached"
            )
        if holds_buy and direction == Direction.BULLISH and _ask(
            broker, "can_add_to_position", instrument, True
        ):
            return Action.ADD_BUY, f"confidence {confidence:.1f} ≥ add {config.add_position_threshold:.1f}"
        if holds_sell and direction == Direction.BEARISH and _ask(
            broker, "can_add_to_position", instrument, False
        ):
            return Action.ADD_SELL, f"confidence {confidence:.1f} ≥ add {config.add_position_threshold:.1f}"
        return self._decide_hold(config, confidence, direction, state, "add not possible")

    def _decide_hold(
        self,
        config: InstrumentConfig,
        confidence: float,
        direction: Direction,
        state: PositionState,
        why: str,
    ) -> Route:
        if confidence < config.close_position_threshold:
            holds_buy = state in (PositionState.HAS_BUY, PositionState.HAS_BOTH)
            holds_sell = state in (PositionState.HAS_SELL, PositionState.HAS_BOTH)
            if holds_buy and direction == Direction.BEARISH:
                return Action.CLOSE_BUY, f"{why}: direction reversed against buy"
            if holds_sell and direction == Direction.BULLISH:
                return Action.CLOSE_SELL, f"{why}: direction reversed against sell"
        return Action.HOLD, f"{why}: holding {state.value}"

    def _decide_fold(self, config: InstrumentConfig, confidence: float, state: PositionState) -> Route:
        reason = f"confidence {confidence:.1f} < close {config.close_position_threshold:.1f}"
        # One side per call; with both held the buy side goes first.
        if state in (PositionState.HAS_BUY, PositionState.HAS_BOTH):
            return Action.CLOSE_BUY, reason
        return Action.CLOSE_SELL, reason

    def _decide_close(self, config: InstrumentConfig, confidence: float) -> Route:
        return Action.CLOSE_ALL, (
            f"confidence {confidence:.1f} < close-all {config.close_all_threshold:.1f}"
        )


def _ask(broker, method: str, instrument: str, is_buy: bool) -> bool:
    if broker is None:
        return False
    try:
        return bool(getattr(broker, method)(instrument, is_buy))
    except Exception as exc:
        logger.warning("%s(%s) raised: %s", method, instrument, exc)
        return False
