"""Collaborator protocols for market signals, indicators and trading hours.

Defines the interfaces the decision engine consumes; any object with the
right methods can be plugged in.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from signalforge.decision.models import Direction
from signalforge.strategy.models import IndicatorSnapshot


@runtime_checkable
class SignalProvider(Protocol):
    """Source of the per-instrument confidence / direction / ranging signal."""

    def get_confidence(self, instrument: str) -> float:
        """Return signal strength in ``[0, 100]``."""
        ...

    def get_direction(self, instrument: str) -> Direction:
        ...

    def is_ranging(self, instrument: str) -> bool:
        ...


@runtime_checkable
class IndicatorSource(Protocol):
    """Computes indicator values; the engine owns their caching."""

    def subscribe(self, instrument: str) -> None:
        ...

    def release(self, instrument: str) -> None:
        ...

    def compute(self, instrument: str) -> Optional[IndicatorSnapshot]:
        """Return fresh values, or ``None`` when not enough data is available."""
        ...


@runtime_checkable
class TradingCalendar(Protocol):
    """Trading-hours hook for the condition evaluator."""

    def is_open(self, now: datetime) -> bool:
        ...
