"""Decision data models — actions, market state, and per-decision audit types."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Action(str, Enum):
    """Discrete action the decision core can return for one instrument."""

    NONE = "NONE"  # invalid input / engine not ready
    THINKING = "THINKING"  # no actionable signal yet
    HOLD = "HOLD"
    OPEN_BUY = "OPEN_BUY"
    OPEN_SELL = "OPEN_SELL"
    ADD_BUY = "ADD_BUY"
    ADD_SELL = "ADD_SELL"
    CLOSE_BUY = "CLOSE_BUY"
    CLOSE_SELL = "CLOSE_SELL"
    CLOSE_ALL = "CLOSE_ALL"
    UNKNOWN = "UNKNOWN"  # parsing sentinel, never decided

    @property
    def is_actionable(self) -> bool:
        """``True`` for actions that reach the execution collaborator."""
        return self in _ACTIONABLE

    @property
    def side(self) -> Optional["Side"]:
        """Side touched by this action (``None`` for close-all / non-actionable)."""
        if self in (Action.OPEN_BUY, Action.ADD_BUY, Action.CLOSE_BUY):
            return Side.BUY
        if self in (Action.OPEN_SELL, Action.ADD_SELL, Action.CLOSE_SELL):
            return Side.SELL
        return None


class Direction(str, Enum):
    """Classified market bias."""

    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    RANGING = "RANGING"
    UNCLEAR = "UNCLEAR"


class PositionState(str, Enum):
    """Aggregate of an instrument's open positions."""

    NO_POSITION = "NO_POSITION"
    HAS_BUY = "HAS_BUY"
    HAS_SELL = "HAS_SELL"
    HAS_BOTH = "HAS_BOTH"


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


_ACTIONABLE = frozenset({
    Action.OPEN_BUY,
    Action.OPEN_SELL,
    Action.ADD_BUY,
    Action.ADD_SELL,
    Action.CLOSE_BUY,
    Action.CLOSE_SELL,
    Action.CLOSE_ALL,
})

# Actions that emit an audit entry when decided
LOGGABLE_ACTIONS = frozenset({
    Action.OPEN_BUY,
    Action.OPEN_SELL,
    Action.ADD_BUY,
    Action.ADD_SELL,
    Action.CLOSE_ALL,
})


def decision_to_string(action) -> str:
    """Return the canonical name of *action*.

    Accepts an ``Action`` or its string value.  Anything else maps to
    ``"UNKNOWN"`` rather than raising.
    """
    if isinstance(action, Action):
        return action.value
    if isinstance(action, str):
        return parse_action(action).value
    return Action.UNKNOWN.value


def parse_action(text) -> Action:
    """Parse an action name (case-insensitive, ``-``/space tolerant).

    Unknown or non-string input returns ``Action.UNKNOWN``.
    """
    if not isinstance(text, str):
        return Action.UNKNOWN
    key = text.strip().upper().replace("-", "_").replace(" ", "_")
    try:
        return Action(key)
    except ValueError:
        return Action.UNKNOWN


# ── Snapshots ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class OpenPosition:
    """One open position as reported by the execution collaborator."""

    ticket: str
    instrument: str
    is_buy: bool
    volume: float
    open_price: float
    profit: float
    open_time: datetime


@dataclass(frozen=True)
class PositionSnapshot:
    """Aggregated view of an instrument's open positions."""

    buy_count: int = 0
    sell_count: int = 0
    buy_volume: float = 0.0
    sell_volume: float = 0.0
    avg_buy_price: float = 0.0
    avg_sell_price: float = 0.0
    total_profit: float = 0.0
    oldest_open_time: Optional[datetime] = None
    newest_open_time: Optional[datetime] = None

    @property
    def state(self) -> PositionState:
        if self.buy_count > 0 and self.sell_count > 0:
            return PositionState.HAS_BOTH
        if self.buy_count > 0:
            return PositionState.HAS_BUY
        if self.sell_count > 0:
            return PositionState.HAS_SELL
        return PositionState.NO_POSITION

    @property
    def total_count(self) -> int:
        return self.buy_count + self.sell_count

    @classmethod
    def from_positions(cls, positions: list[OpenPosition]) -> "PositionSnapshot":
        """Aggregate a live position list into a snapshot.

        Average prices are volume-weighted per side.
        """
        if not positions:
            return cls()

        buys = [p for p in positions if p.is_buy]
        sells = [p for p in positions if not p.is_buy]
        buy_volume = sum(p.volume for p in buys)
        sell_volume = sum(p.volume for p in sells)

        def _vwap(side: list[OpenPosition], volume: float) -> float:
            if volume <= 0:
                return 0.0
            return sum(p.open_price * p.volume for p in side) / volume

        open_times = [p.open_time for p in positions]
        return cls(
            buy_count=len(buys),
            sell_count=len(sells),
            buy_volume=buy_volume,
            sell_volume=sell_volume,
            avg_buy_price=_vwap(buys, buy_volume),
            avg_sell_price=_vwap(sells, sell_volume),
            total_profit=sum(p.profit for p in positions),
            oldest_open_time=min(open_times),
            newest_open_time=max(open_times),
        )

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "buy_count": self.buy_count,
            "sell_count": self.sell_count,
            "buy_volume": self.buy_volume,
            "sell_volume": self.sell_volume,
            "avg_buy_price": self.avg_buy_price,
            "avg_sell_price": self.avg_sell_price,
            "total_profit": round(self.total_profit, 2),
            "oldest_open_time": _iso(self.oldest_open_time),
            "newest_open_time": _iso(self.newest_open_time),
        }


@dataclass(frozen=True)
class MarketAnalysis:
    """Derived direction / trend / volatility summary for an instrument."""

    direction: Direction
    trend_strength: float  # 0–100
    is_ranging: bool
    volatility: float  # ATR / price, percent
    bias: str
    analyzed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "direction": self.direction.value,
            "trend_strength": round(self.trend_strength, 2),
            "is_ranging": self.is_ranging,
            "volatility": round(self.volatility, 4),
            "bias": self.bias,
            "analyzed_at": _iso(self.analyzed_at),
        }


@dataclass(frozen=True)
class TradeConditions:
    """Six-gate explanation of why an action was (or was not) acceptable.

    The aggregate is for explanation only — validation is the real gate.
    """

    confidence_ok: bool
    direction_ok: bool
    position_limit_ok: bool
    not_in_cooldown: bool
    within_trading_hours: bool
    risk_manager_ok: bool

    @property
    def all_passed(self) -> bool:
        return (
            self.confidence_ok
            and self.direction_ok
            and self.position_limit_ok
            and self.not_in_cooldown
            and self.within_trading_hours
            and self.risk_manager_ok
        )

    def failed(self) -> list[str]:
        """Names of the gates that did not pass."""
        return [name for name, ok in self.to_dict().items() if not ok and name != "all_passed"]

    def to_dict(self) -> dict:
        return {
            "confidence_ok": self.confidence_ok,
            "direction_ok": self.direction_ok,
            "position_limit_ok": self.position_limit_ok,
            "not_in_cooldown": self.not_in_cooldown,
            "within_trading_hours": self.within_trading_hours,
            "risk_manager_ok": self.risk_manager_ok,
            "all_passed": self.all_passed,
        }


@dataclass
class CooldownRecord:
    """Last dispatched action for an instrument.

    ``side`` is ``None`` when the action touched both sides (close-all).
    """

    instrument: str
    side: Optional[Side]
    last_action_at: datetime
    action_count: int = 0


@dataclass(frozen=True)
class DecisionRecord:
    """Last decision for an instrument, kept for audit and replay."""

    instrument: str
    action: Action
    confidence: float
    direction: Direction
    decided_at: datetime
    reason: str
    conditions: Optional[TradeConditions] = None
    snapshot: Optional[PositionSnapshot] = None
    analysis: Optional[MarketAnalysis] = None
    from_cache: bool = False

    def to_dict(self) -> dict:
        return {
            "instrument": self.instrument,
            "action": self.action.value,
            "confidence": self.confidence,
            "direction": self.direction.value,
            "decided_at": _iso(self.decided_at),
            "reason": self.reason,
            "conditions": self.conditions.to_dict() if self.conditions else None,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "from_cache": self.from_cache,
        }


@dataclass(frozen=True)
class CachedDecision:
    """Decision-cache payload: the inputs the action was decided on."""

    action: Action
    confidence: float
    direction: Direction


@dataclass(frozen=True)
class ExecutionReport:
    """Outcome of dispatching one action."""

    instrument: str
    action: Action
    executed: bool
    profit: float = 0.0
    positions_before: int = 0
    positions_after: int = 0
    detail: str = ""


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None
