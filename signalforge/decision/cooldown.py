"""Cooldown bookkeeping — one record per instrument, written by the dispatcher.

Gating is a configuration choice.  With ``gating_enabled=False`` the book
still records every attempted action but never reports a side as cooling
down; with it enabled, a side is in cooldown while
``now - last_action_at < cooldown_seconds``.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from signalforge.cache.ttl_cache import Clock, utc_now
from signalforge.decision.models import CooldownRecord, Direction, PositionState, Side

logger = logging.getLogger("signalforge.decision")


def relevant_sides(state: PositionState, direction: Direction) -> tuple[Side, ...]:
    """Sides a decision in *state* could act on."""
    if state == PositionState.HAS_BUY:
        return (Side.BUY,)
    if state == PositionState.HAS_SELL:
        return (Side.SELL,)
    if state == PositionState.NO_POSITION:
        if direction == Direction.BULLISH:
            return (Side.BUY,)
        if direction == Direction.BEARISH:
            return (Side.SELL,)
    return (Side.BUY, Side.SELL)


class CooldownBook:
    """Per-instrument ``CooldownRecord`` store."""

    def __init__(self, gating_enabled: bool = False, clock: Clock = utc_now) -> None:
        self.gating_enabled = gating_enabled
        self._clock = clock
        self._records: dict[str, CooldownRecord] = {}

    def get(self, instrument: str) -> Optional[CooldownRecord]:
        return self._records.get(instrument)

    def record(self, instrument: str, side: Optional[Side], when: Optional[datetime] = None) -> CooldownRecord:
        """Stamp an attempted action.  ``side=None`` covers both sides."""
        when = when or self._clock()
        rec = self._records.get(instrument)
        if rec is None:
            rec = CooldownRecord(instrument=instrument, side=side, last_action_at=when)
            self._records[instrument] = rec
        rec.side = side
        rec.last_action_at = when
        rec.action_count += 1
        return rec

    def is_in_cooldown(self, instrument: str, side: Optional[Side], cooldown_seconds: int) -> bool:
        """Whether *side* (``None`` = either side) of *instrument* is cooling down."""
        if not self.gating_enabled or cooldown_seconds <= 0:
            return False
        rec = self._records.get(instrument)
        if rec is None:
            return False
        if rec.side is not None and side is not None and rec.side != side:
            return False
        return self._clock() - rec.last_action_at < timedelta(seconds=cooldown_seconds)

    def any_in_cooldown(
        self,
        instrument: str,
        state: PositionState,
        direction: Direction,
        cooldown_seconds: int,
    ) -> bool:
        return any(
            self.is_in_cooldown(instrument, side, cooldown_seconds)
            for side in relevant_sides(state, direction)
        )

    def purge(self, instrument: str) -> None:
        self._records.pop(instrument, None)

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
