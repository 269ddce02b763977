"""Dispatcher — executes actionable decisions through the execution collaborator.

Every attempt, successful or not, stamps the cooldown record, appends a
trade-log entry, and expires the instrument's decision and position caches.
Failures are logged with the broker error description and never retried.
"""

import logging
from typing import Optional

from signalforge.bookkeeping.daily_stats import DailyStatsTracker
from signalforge.bookkeeping.trade_log import TradeLog, TradeLogEntry
from signalforge.broker.errors import format_error, is_recoverable
from signalforge.broker.models import ExecutionResult
from signalforge.cache.layer import CacheLayer
from signalforge.cache.ttl_cache import Clock, utc_now
from signalforge.decision.cooldown import CooldownBook
from signalforge.decision.models import Action, ExecutionReport, Side
from signalforge.models.instrument_config import InstrumentConfig

logger = logging.getLogger("signalforge.decision")


class Dispatcher:
    """Bridges decided actions to the broker and the bookkeeping."""

    def __init__(
        self,
        cache: CacheLayer,
        cooldowns: CooldownBook,
        trade_log: TradeLog,
        stats: DailyStatsTracker,
        clock: Clock = utc_now,
    ) -> None:
        self._cache = cache
        self._cooldowns = cooldowns
        self._trade_log = trade_log
        self._stats = stats
        self._clock = clock

    def dispatch(
        self,
        config: InstrumentConfig,
        action: Action,
        confidence: float,
        broker=None,
    ) -> Optional[ExecutionReport]:
        """Execute *action*; returns ``None`` for non-actionable values."""
        if not action.is_actionable:
            return None

        instrument = config.instrument
        now = self._clock()
        before = self._count(broker, instrument)

        if broker is None:
            executed, profit, detail = False, 0.0, "no execution collaborator"
            logger.error("Cannot dispatch %s on %s: %s", action.value, instrument, detail)
        else:
            try:
                executed, profit, detail = self._execute(broker, config, action, confidence)
            except Exception as exc:
                executed, profit, detail = False, 0.0, f"collaborator raised: {exc}"
                logger.error("Dispatch %s on %s failed: %s", action.value, instrument, exc)

        after = self._count(broker, instrument)

        self._cooldowns.record(instrument, action.side, now)
        self._trade_log.append(
            TradeLogEntry(
                timestamp=now,
                instrument=instrument,
                action=action,
                confidence=confidence,
                executed=executed,
                profit=profit,
                positions_before=before,
                positions_after=after,
                detail=detail,
            )
        )
        if executed:
            self._stats.record_trade(action, profit, now)
            logger.info(
                "Executed %s on %s (conf=%.1f, positions %d → %d, profit=%.2f)",
                action.value, instrument, confidence, before, after, profit,
            )
        self._cache.invalidate_after_trade(instrument)

        return ExecutionReport(
            instrument=instrument,
            action=action,
            executed=executed,
            profit=profit,
            positions_before=before,
            positions_after=after,
            detail=detail,
        )

    # ── Execution ────────────────────────────────────────────────────────

    def _execute(
        self, broker, config: InstrumentConfig, action: Action, confidence: float
    ) -> tuple[bool, float, str]:
        instrument = config.instrument
        comment = f"signalforge {action.value} conf={confidence:.1f}"

        if action in (Action.OPEN_BUY, Action.OPEN_SELL):
            result = broker.open_position(
                instrument, action.side == Side.BUY, config.risk_percent, comment
            )
            return self._from_result(instrument, action, result)

        if action in (Action.ADD_BUY, Action.ADD_SELL):
            result = broker.add_to_position(
                instrument, action.side == Side.BUY, config.risk_percent, comment
            )
            return self._from_result(instrument, action, result)

        if action in (Action.CLOSE_BUY, Action.CLOSE_SELL):
            return self._close_side(broker, instrument, action)

        # CLOSE_ALL
        profit = broker.get_total_profit(instrument)
        if broker.close_all_positions(instrument):
            return True, profit, "closed all positions"
        logger.error("close_all_positions(%s) reported failure", instrument)
        return False, 0.0, "close-all failed"

    def _close_side(self, broker, instrument: str, action: Action) -> tuple[bool, float, str]:
        want_buy = action.side == Side.BUY
        tickets = [p.ticket for p in broker.list_positions(instrument) if p.is_buy == want_buy]
        if not tickets:
            return False, 0.0, f"no {action.side.value} positions to close"

        profit = 0.0
        closed = 0
        failures: list[str] = []
        for ticket in tickets:
            result = broker.close_position(ticket)
            if result.success:
                closed += 1
                profit += result.profit
            else:
                failures.append(self._log_failure(instrument, action, result))

        detail = f"closed {closed}/{len(tickets)} {action.side.value} positions"
        if failures:
            detail += "; " + "; ".join(failures)
        return closed > 0, profit, detail

    def _from_result(
        self, instrument: str, action: Action, result: ExecutionResult
    ) -> tuple[bool, float, str]:
        if result.success:
            return True, result.profit, f"ticket {result.ticket} @ {result.price:.5f}"
        return False, 0.0, self._log_failure(instrument, action, result)

    @staticmethod
    def _log_failure(instrument: str, action: Action, result: ExecutionResult) -> str:
        text = format_error(result.error_code, result.message)
        logger.error(
            "%s on %s failed: %s%s",
            action.value, instrument, text,
            " (recoverable, next tick re-evaluates)" if is_recoverable(result.error_code) else "",
        )
        return text

    @staticmethod
    def _count(broker, instrument: str) -> int:
        if broker is None:
            return 0
        try:
            return broker.get_position_count(instrument)
        except Exception as exc:
            logger.warning("Position count for %s failed: %s", instrument, exc)
            return 0
