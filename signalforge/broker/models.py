"""Broker data models — typed values exchanged with the execution collaborator."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Candle:
    """A single candlestick bar."""

    time: str
    open: float
    high: float
    low: float
    close: float
    volume: int
    complete: bool = True


@dataclass(frozen=True)
class Quote:
    """Latest bid/ask for an instrument."""

    instrument: str
    bid: float
    ask: float
    time: Optional[datetime] = None

    @property
    def mid(self) -> float:
        return (self.bid + self.ask) / 2.0

    @property
    def spread(self) -> float:
        return self.ask - self.bid


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of an open / add / close request.

    ``error_code`` follows the MetaTrader-style trade return codes
    (``0`` = no error); see ``signalforge.broker.errors``.
    """

    success: bool
    ticket: Optional[str] = None
    price: float = 0.0
    volume: float = 0.0
    profit: float = 0.0
    error_code: int = 0
    message: str = ""


@dataclass(frozen=True)
class TradeTransaction:
    """A position change observed outside the engine's dispatch path."""

    instrument: str
    kind: str  # "open", "close", "modify"
    ticket: Optional[str] = None
    time: Optional[datetime] = None
    detail: str = ""
