"""Execution collaborator protocol.

Defines the interface the decision engine uses to query and change live
positions.  Implementations: ``PaperBroker`` (in-memory) and
``OandaExecutor`` (OANDA v20 REST).
"""

from typing import Optional, Protocol, runtime_checkable

from signalforge.broker.models import ExecutionResult, Quote
from signalforge.decision.models import OpenPosition, Side


@runtime_checkable
class ExecutionProtocol(Protocol):
    """Interface every execution collaborator must satisfy."""

    def can_open_new_position(self, instrument: str, is_buy: bool) -> bool: ...

    def can_add_to_position(self, instrument: str, is_buy: bool) -> bool: ...

    def open_position(
        self, instrument: str, is_buy: bool, risk_percent: float, comment: str = ""
    ) -> ExecutionResult: ...

    def add_to_position(
        self, instrument: str, is_buy: bool, risk_percent: float, comment: str = ""
    ) -> ExecutionResult: ...

    def close_position(self, ticket: str) -> ExecutionResult: ...

    def close_all_positions(self, instrument: str) -> bool: ...

    def get_position_count(self, instrument: str, side: Optional[Side] = None) -> int: ...

    def get_average_price(self, instrument: str, is_buy: bool) -> float: ...

    def get_total_profit(self, instrument: str) -> float: ...

    def list_positions(self, instrument: str) -> list[OpenPosition]: ...

    def get_quote(self, instrument: str) -> Quote: ...

    def is_trading_allowed(self) -> bool: ...

    def get_current_drawdown(self) -> float: ...
