"""Paper execution collaborator — in-memory positions priced from pushed quotes.

Used by the CLI's ``--backend paper`` mode and by integration tests.  Fills
happen at the current ask (buy) / bid (sell).  Positions closed outside the
engine (``close_externally``, e.g. a simulated stop-out) are queued as
``TradeTransaction`` events for the host loop to forward.
"""

import itertools
import logging
from typing import Optional

from signalforge.broker.errors import format_error
from signalforge.broker.models import Candle, ExecutionResult, Quote, TradeTransaction
from signalforge.cache.ttl_cache import Clock, utc_now
from signalforge.decision.models import OpenPosition, Side
from signalforge.risk.drawdown import DrawdownGuard
from signalforge.risk.position_sizer import INSTRUMENT_PIP_VALUES, calculate_units

logger = logging.getLogger("signalforge.broker.paper")

_ERR_NO_QUOTES = 10021
_ERR_TRADE_DISABLED = 10027
_ERR_LIMIT_POSITIONS = 10040
_ERR_INVALID_REQUEST = 10013


class PaperBroker:
    """Simulated account satisfying ``ExecutionProtocol``.

    Args:
        equity: Starting balance.
        max_drawdown_pct: Circuit-breaker threshold for ``is_trading_allowed``.
        max_positions_per_instrument: Hard cap enforced on open/add.
        stop_distance_pips: Notional stop distance used for risk sizing.
        clock: UTC time source for open times.
    """

    def __init__(
        self,
        equity: float = 10_000.0,
        max_drawdown_pct: float = 10.0,
        max_positions_per_instrument: int = 10,
        stop_distance_pips: float = 30.0,
        clock: Clock = utc_now,
    ) -> None:
        self._balance = equity
        self._guard = DrawdownGuard(equity, max_drawdown_pct)
        self._max_positions = max_positions_per_instrument
        self._stop_distance_pips = stop_distance_pips
        self._clock = clock
        self._positions: dict[str, OpenPosition] = {}
        self._quotes: dict[str, Quote] = {}
        self._candles: dict[str, list[Candle]] = {}
        self._transactions: list[TradeTransaction] = []
        self._tickets = itertools.count(1)
        self.trading_enabled: bool = True

    # ── Market data ──────────────────────────────────────────────────────

    def set_quote(self, instrument: str, bid: float, ask: float) -> None:
        """Push a new price and re-mark the instrument's open positions."""
        quote = Quote(instrument=instrument, bid=bid, ask=ask, time=self._clock())
        self._quotes[instrument] = quote
        for ticket, pos in list(self._positions.items()):
            if pos.instrument == instrument:
                self._positions[ticket] = _remark(pos, quote)
        self._guard.update(self.equity)

    def set_candles(self, instrument: str, candles: list[Candle]) -> None:
        self._candles[instrument] = list(candles)

    def fetch_candles(self, instrument: str, count: int = 100) -> list[Candle]:
        return self._candles.get(instrument, [])[-count:]

    def get_quote(self, instrument: str) -> Quote:
        quote = self._quotes.get(instrument)
        if quote is None:
            raise LookupError(f"No quote for {instrument}")
        return quote

    # ── Account ──────────────────────────────────────────────────────────

    @property
    def balance(self) -> float:
        return self._balance

    @property
    def equity(self) -> float:
        return self._balance + sum(p.profit for p in self._positions.values())

    @property
    def guard(self) -> DrawdownGuard:
        return self._guard

    def is_trading_allowed(self) -> bool:
        return self.trading_enabled and not self._guard.circuit_breaker_active

    def get_current_drawdown(self) -> float:
        return self._guard.drawdown_pct

    # ── Position queries ─────────────────────────────────────────────────

    def list_positions(self, instrument: str) -> list[OpenPosition]:
        return [p for p in self._positions.values() if p.instrument == instrument]

    def get_position_count(self, instrument: str, side: Optional[Side] = None) -> int:
        positions = self.list_positions(instrument)
        if side is None:
            return len(positions)
        want_buy = side == Side.BUY
        return sum(1 for p in positions if p.is_buy == want_buy)

    def get_average_price(self, instrument: str, is_buy: bool) -> float:
        side = [p for p in self.list_positions(instrument) if p.is_buy == is_buy]
        volume = sum(p.volume for p in side)
        if volume <= 0:
            return 0.0
        return sum(p.open_price * p.volume for p in side) / volume

    def get_total_profit(self, instrument: str) -> float:
        return sum(p.profit for p in self.list_positions(instrument))

    def can_open_new_position(self, instrument: str, is_buy: bool) -> bool:
        return (
            self.is_trading_allowed()
            and instrument in self._quotes
            and self.get_position_count(instrument) < self._max_positions
        )

    def can_add_to_position(self, instrument: str, is_buy: bool) -> bool:
        side = Side.BUY if is_buy else Side.SELL
        return (
            self.get_position_count(instrument, side) > 0
            and self.can_open_new_position(instrument, is_buy)
        )

    # ── Orders ───────────────────────────────────────────────────────────

    def open_position(
        self, instrument: str, is_buy: bool, risk_percent: float, comment: str = ""
    ) -> ExecutionResult:
        if not self.is_trading_allowed():
            return _failure(_ERR_TRADE_DISABLED, "trading not allowed")
        quote = self._quotes.get(instrument)
        if quote is None:
            return _failure(_ERR_NO_QUOTES, f"no quote for {instrument}")
        if self.get_position_count(instrument) >= self._max_positions:
            return _failure(_ERR_LIMIT_POSITIONS, f"{self._max_positions} positions open")

        units = calculate_units(
            self.equity,
            risk_percent,
            self._stop_distance_pips,
            pip_value=INSTRUMENT_PIP_VALUES.get(instrument, 0.0001),
        )
        price = quote.ask if is_buy else quote.bid
        ticket = str(next(self._tickets))
        self._positions[ticket] = OpenPosition(
            ticket=ticket,
            instrument=instrument,
            is_buy=is_buy,
            volume=round(units, 2),
            open_price=price,
            profit=0.0,
            open_time=self._clock(),
        )
        logger.info(
            "Paper %s %s %.2f @ %.5f (ticket %s) %s",
            "BUY" if is_buy else "SELL", instrument, units, price, ticket, comment,
        )
        return ExecutionResult(success=True, ticket=ticket, price=price, volume=round(units, 2))

    def add_to_position(
        self, instrument: str, is_buy: bool, risk_percent: float, comment: str = ""
    ) -> ExecutionResult:
        if not self.can_add_to_position(instrument, is_buy):
            return _failure(_ERR_INVALID_REQUEST, "no position on that side to add to")
        return self.open_position(instrument, is_buy, risk_percent, comment)

    def close_position(self, ticket: str) -> ExecutionResult:
        pos = self._positions.get(ticket)
        if pos is None:
            return _failure(_ERR_INVALID_REQUEST, f"unknown ticket {ticket}")
        quote = self._quotes.get(pos.instrument)
        if quote is None:
            return _failure(_ERR_NO_QUOTES, f"no quote for {pos.instrument}")
        closed = _remark(pos, quote)
        del self._positions[ticket]
        self._balance += closed.profit
        self._guard.update(self.equity)
        exit_price = quote.bid if pos.is_buy else quote.ask
        return ExecutionResult(
            success=True,
            ticket=ticket,
            price=exit_price,
            volume=pos.volume,
            profit=closed.profit,
        )

    def close_all_positions(self, instrument: str) -> bool:
        ok = True
        for pos in self.list_positions(instrument):
            result = self.close_position(pos.ticket)
            if not result.success:
                logger.warning(
                    "Paper close of ticket %s failed: %s",
                    pos.ticket, format_error(result.error_code, result.message),
                )
                ok = False
        return ok

    # ── External changes ─────────────────────────────────────────────────

    def close_externally(self, ticket: str, reason: str = "stop_out") -> ExecutionResult:
        """Close a position outside the engine and queue a transaction event."""
        pos = self._positions.get(ticket)
        result = self.close_position(ticket)
        if result.success and pos is not None:
            self._transactions.append(
                TradeTransaction(
                    instrument=pos.instrument,
                    kind="close",
                    ticket=ticket,
                    time=self._clock(),
                    detail=reason,
                )
            )
        return result

    def drain_transactions(self) -> list[TradeTransaction]:
        """Return and clear queued external transactions."""
        pending, self._transactions = self._transactions, []
        return pending


# ── Helpers ──────────────────────────────────────────────────────────────


def _remark(pos: OpenPosition, quote: Quote) -> OpenPosition:
    exit_price = quote.bid if pos.is_buy else quote.ask
    move = exit_price - pos.open_price if pos.is_buy else pos.open_price - exit_price
    return OpenPosition(
        ticket=pos.ticket,
        instrument=pos.instrument,
        is_buy=pos.is_buy,
        volume=pos.volume,
        open_price=pos.open_price,
        profit=round(move * pos.volume, 2),
        open_time=pos.open_time,
    )


def _failure(code: int, message: str) -> ExecutionResult:
    return ExecutionResult(success=False, error_code=code, message=message)
