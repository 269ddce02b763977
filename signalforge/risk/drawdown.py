"""Drawdown guard — the bundled risk authority.

Tracks peak equity and the current drawdown percentage.  Attaching a guard
to the engine satisfies the risk-manager gate; its circuit breaker is what
``PaperBroker.is_trading_allowed`` consults.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class RiskAuthority(Protocol):
    """Optional risk collaborator.  Presence alone satisfies the risk gate."""

    @property
    def drawdown_pct(self) -> float: ...

    @property
    def circuit_breaker_active(self) -> bool: ...


class DrawdownGuard:
    """Peak-equity drawdown tracker with a circuit breaker.

    Args:
        initial_equity: Starting account equity (must be positive).
        max_drawdown_pct: Drawdown (percent of peak) at which trading halts.
    """

    def __init__(self, initial_equity: float, max_drawdown_pct: float = 10.0) -> None:
        if initial_equity <= 0:
            raise ValueError(f"initial_equity must be positive, got {initial_equity}")
        if max_drawdown_pct <= 0:
            raise ValueError(f"max_drawdown_pct must be positive, got {max_drawdown_pct}")
        self._peak = initial_equity
        self._equity = initial_equity
        self._max_drawdown_pct = max_drawdown_pct

    def update(self, equity: float) -> None:
        """Record the latest equity; raises the peak when exceeded."""
        self._equity = equity
        self._peak = max(self._peak, equity)

    @property
    def peak(self) -> float:
        return self._peak

    @property
    def equity(self) -> float:
        return self._equity

    @property
    def max_drawdown_pct(self) -> float:
        return self._max_drawdown_pct

    @property
    def drawdown_pct(self) -> float:
        return (self._peak - self._equity) / self._peak * 100.0

    @property
    def circuit_breaker_active(self) -> bool:
        return self.drawdown_pct >= self._max_drawdown_pct

    def to_dict(self) -> dict:
        return {
            "peak_equity": round(self._peak, 2),
            "equity": round(self._equity, 2),
            "drawdown_pct": round(self.drawdown_pct, 2),
            "max_drawdown_pct": self._max_drawdown_pct,
            "circuit_breaker_active": self.circuit_breaker_active,
        }
