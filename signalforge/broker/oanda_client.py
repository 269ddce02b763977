"""OANDA v20 REST execution collaborator.

Synchronous adapter satisfying ``ExecutionProtocol``.  The decision engine
calls collaborators inline on every tick, so requests are blocking
``httpx.Client`` calls with exponential-backoff retry on transient errors.
Orders are plain market orders sized from the instrument's risk percent;
stop-loss / take-profit placement is left to the account's own rules.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

import httpx

from signalforge.broker.models import Candle, ExecutionResult, Quote
from signalforge.config import Config
from signalforge.decision.models import OpenPosition, Side
from signalforge.risk.drawdown import DrawdownGuard
from signalforge.risk.position_sizer import INSTRUMENT_PIP_VALUES, calculate_units

logger = logging.getLogger("signalforge.broker.oanda")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {502, 503, 504, 429}

_ERR_REJECTED = 10006
_ERR_NO_CONNECTION = 10031


class OandaExecutor:
    """Blocking client wrapping the OANDA v20 trade endpoints."""

    def __init__(self, config: Config, max_positions_per_instrument: int = 10) -> None:
        self._config = config
        self._base_url = config.oanda_base_url
        self._account_id = config.oanda_account_id
        self._headers = {
            "Authorization": f"Bearer {config.oanda_api_token}",
            "Content-Type": "application/json",
        }
        self._max_positions = max_positions_per_instrument
        self._guard: Optional[DrawdownGuard] = None

    # ── Retry helper ─────────────────────────────────────────────────────

    def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request with exponential-backoff retry.

        Retries on 429/502/503/504 and transport errors; other HTTP errors
        are raised immediately.
        """
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            try:
                with httpx.Client() as client:
                    resp = getattr(client, method)(
                        url, headers=self._headers, timeout=10.0, **kwargs
                    )

                if resp.status_code in _RETRYABLE_STATUS_CODES:
                    delay = _RETRY_BASE_DELAY * (2 ** attempt)
                    logger.warning(
                        "OANDA %s %s returned %d — retry %d/%d in %.1fs",
                        method.upper(), url, resp.status_code,
                        attempt + 1, _MAX_RETRIES, delay,
                    )
                    last_exc = httpx.HTTPStatusError(
                        f"Server error '{resp.status_code}'",
                        request=resp.request,
                        response=resp,
                    )
                    time.sleep(delay)
                    continue

                resp.raise_for_status()
                return resp

            except httpx.TransportError as exc:
                delay = _RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(
                    "OANDA %s %s transport error (%s) — retry %d/%d in %.1fs",
                    method.upper(), url, exc, attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                time.sleep(delay)

        raise last_exc  # type: ignore[misc]

    def _account_url(self, suffix: str) -> str:
        return f"{self._base_url}/v3/accounts/{self._account_id}{suffix}"

    # ── Market data ──────────────────────────────────────────────────────

    def get_quote(self, instrument: str) -> Quote:
        resp = self._request_with_retry(
            "get", self._account_url("/pricing"), params={"instruments": instrument}
        )
        price = resp.json()["prices"][0]
        return Quote(
            instrument=instrument,
            bid=float(price["bids"][0]["price"]),
            ask=float(price["asks"][0]["price"]),
            time=_parse_time(price.get("time", "")),
        )

    def fetch_candles(self, instrument: str, count: int = 100, granularity: str = "M5") -> list[Candle]:
        """Fetch mid-price candles, oldest first."""
        url = f"{self._base_url}/v3/instruments/{instrument}/candles"
        params = {"granularity": granularity, "count": count, "price": "M"}
        resp = self._request_with_retry("get", url, params=params)

        candles: list[Candle] = []
        for c in resp.json().get("candles", []):
            mid = c["mid"]
            candles.append(
                Candle(
                    time=c["time"],
                    open=float(mid["o"]),
                    high=float(mid["h"]),
                    low=float(mid["l"]),
                    close=float(mid["c"]),
                    volume=int(c["volume"]),
                    complete=bool(c["complete"]),
                )
            )
        return candles

    # ── Account ──────────────────────────────────────────────────────────

    def _equity(self) -> float:
        resp = self._request_with_retry("get", self._account_url("/summary"))
        equity = float(resp.json()["account"]["NAV"])
        if self._guard is None:
            self._guard = DrawdownGuard(equity, self._config.max_drawdown_pct)
        else:
            self._guard.update(equity)
        return equity

    @property
    def guard(self) -> Optional[DrawdownGuard]:
        """Drawdown guard, or ``None`` until the account has been read once."""
        return self._guard

    def is_trading_allowed(self) -> bool:
        try:
            self._equity()
        except httpx.HTTPError as exc:
            logger.warning("OANDA account check failed: %s", exc)
            return False
        return not self._guard.circuit_breaker_active

    def get_current_drawdown(self) -> float:
        self._equity()
        return self._guard.drawdown_pct

    # ── Position queries ─────────────────────────────────────────────────

    def list_positions(self, instrument: str) -> list[OpenPosition]:
        resp = self._request_with_retry("get", self._account_url("/openTrades"))
        positions: list[OpenPosition] = []
        for t in resp.json().get("trades", []):
            if t["instrument"] != instrument:
                continue
            units = float(t["currentUnits"])
            positions.append(
                OpenPosition(
                    ticket=t["id"],
                    instrument=t["instrument"],
                    is_buy=units > 0,
                    volume=abs(units),
                    open_price=float(t["price"]),
                    profit=float(t.get("unrealizedPL", "0")),
                    open_time=_parse_time(t.get("openTime", "")),
                )
            )
        return positions

    def get_position_count(self, instrument: str, side: Optional[Side] = None) -> int:
        positions = self.list_positions(instrument)
        if side is None:
            return len(positions)
        return sum(1 for p in positions if p.is_buy == (side == Side.BUY))

    def get_average_price(self, instrument: str, is_buy: bool) -> float:
        side = [p for p in self.list_positions(instrument) if p.is_buy == is_buy]
        volume = sum(p.volume for p in side)
        if volume <= 0:
            return 0.0
        return sum(p.open_price * p.volume for p in side) / volume

    def get_total_profit(self, instrument: str) -> float:
        return sum(p.profit for p in self.list_positions(instrument))

    def can_open_new_position(self, instrument: str, is_buy: bool) -> bool:
        return self.get_position_count(instrument) < self._max_positions

    def can_add_to_position(self, instrument: str, is_buy: bool) -> bool:
        side = Side.BUY if is_buy else Side.SELL
        positions = self.list_positions(instrument)
        held = sum(1 for p in positions if p.is_buy == (side == Side.BUY))
        return held > 0 and len(positions) < self._max_positions

    # ── Orders ───────────────────────────────────────────────────────────

    def open_position(
        self, instrument: str, is_buy: bool, risk_percent: float, comment: str = ""
    ) -> ExecutionResult:
        try:
            units = int(calculate_units(
                self._equity(),
                risk_percent,
                self._config.sizing_stop_pips,
                pip_value=INSTRUMENT_PIP_VALUES.get(instrument, 0.0001),
            )) or 1
            body = {
                "order": {
                    "type": "MARKET",
                    "instrument": instrument,
                    "units": str(units if is_buy else -units),
                    "clientExtensions": {"comment": comment[:128]},
                }
            }
            resp = self._request_with_retry("post", self._account_url("/orders"), json=body)
        except httpx.HTTPError as exc:
            return ExecutionResult(success=False, error_code=_ERR_NO_CONNECTION, message=str(exc))

        data = resp.json()
        fill = data.get("orderFillTransaction")
        if fill is None:
            cancel = data.get("orderCancelTransaction", {})
            return ExecutionResult(
                success=False,
                error_code=_ERR_REJECTED,
                message=cancel.get("reason", "order not filled"),
            )
        opened = fill.get("tradeOpened", {})
        return ExecutionResult(
            success=True,
            ticket=opened.get("tradeID", fill["id"]),
            price=float(fill["price"]),
            volume=abs(float(fill["units"])),
        )

    def add_to_position(
        self, instrument: str, is_buy: bool, risk_percent: float, comment: str = ""
    ) -> ExecutionResult:
        return self.open_position(instrument, is_buy, risk_percent, comment)

    def close_position(self, ticket: str) -> ExecutionResult:
        try:
            resp = self._request_with_retry(
                "put", self._account_url(f"/trades/{ticket}/close"), json={"units": "ALL"}
            )
        except httpx.HTTPError as exc:
            return ExecutionResult(
                success=False, ticket=ticket, error_code=_ERR_NO_CONNECTION, message=str(exc)
            )

        fill = resp.json().get("orderFillTransaction")
        if fill is None:
            return ExecutionResult(
                success=False, ticket=ticket, error_code=_ERR_REJECTED, message="close not filled"
            )
        return ExecutionResult(
            success=True,
            ticket=ticket,
            price=float(fill.get("price", 0.0)),
            volume=abs(float(fill.get("units", 0.0))),
            profit=float(fill.get("pl", 0.0)),
        )

    def close_all_positions(self, instrument: str) -> bool:
        positions = self.list_positions(instrument)
        if not positions:
            return True
        body = {}
        if any(p.is_buy for p in positions):
            body["longUnits"] = "ALL"
        if any(not p.is_buy for p in positions):
            body["shortUnits"] = "ALL"
        try:
            self._request_with_retry(
                "put", self._account_url(f"/positions/{instrument}/close"), json=body
            )
        except httpx.HTTPError as exc:
            logger.error("OANDA close-all for %s failed: %s", instrument, exc)
            return False
        return True


def _parse_time(value: str) -> datetime:
    """Parse OANDA's RFC3339 timestamps (nanosecond precision) as UTC."""
    if not value:
        return datetime.now(timezone.utc)
    head = value.rstrip("Z").split(".")[0]
    return datetime.strptime(head, "%Y-%m-%dT%H:%M:%S").replace(tzinfo=timezone.utc)
