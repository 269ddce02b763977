"""Trade log — fixed-capacity ring buffer of dispatched actions."""

from collections import deque
from dataclasses import dataclass
from datetime import datetime

from signalforge.decision.models import Action


@dataclass(frozen=True)
class TradeLogEntry:
    """One dispatched (attempted) action."""

    timestamp: datetime
    instrument: str
    action: Action
    confidence: float
    executed: bool
    profit: float = 0.0
    positions_before: int = 0
    positions_after: int = 0
    detail: str = ""

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "instrument": self.instrument,
            "action": self.action.value,
            "confidence": self.confidence,
            "executed": self.executed,
            "profit": round(self.profit, 2),
            "positions_before": self.positions_before,
            "positions_after": self.positions_after,
            "detail": self.detail,
        }


class TradeLog:
    """Circular buffer; once full, each append overwrites the oldest entry."""

    def __init__(self, capacity: int = 100) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._entries: deque[TradeLogEntry] = deque(maxlen=capacity)
        self.total_appended: int = 0

    @property
    def capacity(self) -> int:
        return self._entries.maxlen

    def append(self, entry: TradeLogEntry) -> None:
        self._entries.append(entry)
        self.total_appended += 1

    def get_trade_history(self, n: int) -> list[TradeLogEntry]:
        """Return up to *n* most recent entries, newest first."""
        if n <= 0:
            return []
        return list(reversed(self._entries))[:n]

    def clear(self) -> None:
        self._entries.clear()
        self.total_appended = 0

    def __len__(self) -> int:
        return len(self._entries)
