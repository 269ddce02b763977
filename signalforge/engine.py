"""SignalForge — Decision engine (facade over the decision core).

Owns the instrument registry, the cache layer, cooldowns, bookkeeping and the
collaborators, and exposes the three host events: ``on_tick``, ``on_timer``
and ``on_trade_transaction``.  Everything runs synchronously on the caller's
thread; the host must not deliver a second event while one is in progress.
"""

import dataclasses
import logging
import math
from collections import Counter
from dataclasses import dataclass
from typing import Optional

from signalforge.bookkeeping.daily_stats import DailyStats, DailyStatsTracker
from signalforge.bookkeeping.profiler import Profiler
from signalforge.bookkeeping.trade_log import TradeLog, TradeLogEntry
from signalforge.broker.models import Quote, TradeTransaction
from signalforge.cache.layer import CacheLayer, CacheTTLs
from signalforge.cache.ttl_cache import Clock, utc_now
from signalforge.config import Config
from signalforge.decision.analyzer import MarketAnalyzer
from signalforge.decision.conditions import evaluate_conditions
from signalforge.decision.cooldown import CooldownBook
from signalforge.decision.dispatcher import Dispatcher
from signalforge.decision.models import (
    LOGGABLE_ACTIONS,
    Action,
    CachedDecision,
    CooldownRecord,
    DecisionRecord,
    Direction,
    ExecutionReport,
    MarketAnalysis,
    PositionSnapshot,
)
from signalforge.decision.state_machine import DecisionStateMachine
from signalforge.decision.validator import validate_action
from signalforge.models.instrument_config import InstrumentConfig
from signalforge.strategy.models import IndicatorSnapshot
from signalforge.strategy.registry import get_signal_provider

logger = logging.getLogger("signalforge.engine")
decision_logger = logging.getLogger("signalforge.decision")


@dataclass(frozen=True)
class EngineSettings:
    """Behaviour switches for one engine instance."""

    ttls: CacheTTLs = CacheTTLs()
    testing_mode: bool = False
    cooldown_gating_enabled: bool = False
    ranging_detection_enabled: bool = False
    min_confidence_threshold: float = 0.0
    decision_confidence_tolerance: float = 1.0
    trade_log_capacity: int = 100
    signal_provider: str = "moving_average"
    ranging_volatility_pct: float = 0.05

    @classmethod
    def from_config(cls, config: Config) -> "EngineSettings":
        return cls(
            ttls=config.cache_ttls,
            testing_mode=config.testing_mode,
            cooldown_gating_enabled=config.cooldown_gating_enabled,
            ranging_detection_enabled=config.ranging_detection_enabled,
            min_confidence_threshold=config.min_confidence_threshold,
            decision_confidence_tolerance=config.decision_confidence_tolerance,
            trade_log_capacity=config.trade_log_capacity,
            signal_provider=config.signal_provider,
            ranging_volatility_pct=config.ranging_volatility_pct,
        )


class DecisionEngine:
    """Per-instrument decide → validate → dispatch pipeline.

    Args:
        settings: Behaviour switches; defaults match a production setup with
            cooldown gating and ranging detection off.
        clock: UTC time source shared by caches, cooldowns and statistics.
    """

    def __init__(self, settings: Optional[EngineSettings] = None, clock: Clock = utc_now) -> None:
        self._settings = settings or EngineSettings()
        self._clock = clock
        self._initialized = False
        self._debug = False

        self._configs: dict[str, InstrumentConfig] = {}
        self._records: dict[str, DecisionRecord] = {}

        self._cache = CacheLayer(self._settings.ttls, self._settings.testing_mode, clock)
        self._cooldowns = CooldownBook(self._settings.cooldown_gating_enabled, clock)
        self._machine = DecisionStateMachine(self._cooldowns, self._settings.min_confidence_threshold)
        self._analyzer = MarketAnalyzer(self._settings.ranging_volatility_pct)
        self._trade_log = TradeLog(self._settings.trade_log_capacity)
        self._stats = DailyStatsTracker(clock)
        self._dispatcher = Dispatcher(self._cache, self._cooldowns, self._trade_log, self._stats, clock)
        self._profiler = Profiler()
        self._action_counts: Counter = Counter()
        self._ranging_detection = self._settings.ranging_detection_enabled

        self._broker = None
        self._risk = None
        self._signals = None
        self._indicators = None
        self._audit = None
        self._calendar = None

    # ── Lifecycle ────────────────────────────────────────────────────────

    def initialize(
        self,
        broker,
        risk=None,
        signals=None,
        indicators=None,
        audit=None,
        calendar=None,
    ) -> bool:
        """Attach collaborators and start accepting events.

        ``broker`` is required.  Without ``signals`` the provider named in the
        settings is built from the registry, reading this engine's cached
        indicators.  Returns ``False`` (and stays uninitialized) on failure.
        """
        if broker is None:
            logger.error("Cannot initialize engine without an execution collaborator")
            return False
        if signals is None:
            try:
                signals = get_signal_provider(
                    self._settings.signal_provider,
                    indicators=self.get_indicators,
                    ranging_volatility_pct=self._settings.ranging_volatility_pct,
                )
            except KeyError as exc:
                logger.error("Cannot initialize engine: %s", exc)
                return False

        self._broker = broker
        self._risk = risk
        self._signals = signals
        self._indicators = indicators
        self._audit = audit
        self._calendar = calendar

        if indicators is not None:
            for instrument in self._configs:
                indicators.subscribe(instrument)

        self._stats.check_rollover()
        self._initialized = True
        logger.info(
            "Engine initialized — %d instrument(s), provider=%s, risk=%s, testing_mode=%s",
            len(self._configs), type(signals).__name__,
            type(risk).__name__ if risk is not None else "none",
            self._cache.testing_mode,
        )
        self._note("engine initialized")
        return True

    def deinitialize(self) -> None:
        """Release every instrument and detach collaborators."""
        for instrument in list(self._configs):
            self.remove_instrument(instrument)
        self._cache.invalidate_all()
        self._note("engine deinitialized")
        self._initialized = False
        self._broker = None
        self._risk = None
        self._signals = None
        self._indicators = None
        self._audit = None
        self._calendar = None
        logger.info("Engine deinitialized")

    @property
    def initialized(self) -> bool:
        return self._initialized

    # ── Registration ─────────────────────────────────────────────────────

    def add_instrument(self, config: InstrumentConfig) -> bool:
        """Register *config*.  Returns ``False`` if the instrument already exists."""
        instrument = config.instrument
        if instrument in self._configs:
            logger.warning("Instrument %s already registered — use update_instrument()", instrument)
            return False
        self._purge(instrument)
        self._configs[instrument] = config
        if self._indicators is not None:
            try:
                self._indicators.subscribe(instrument)
            except Exception as exc:
                logger.warning("Indicator subscription for %s failed: %s", instrument, exc)
        logger.info(
            "Registered %s (buy=%.1f sell=%.1f add=%.1f close=%.1f close_all=%.1f max=%d)",
            instrument, config.buy_threshold, config.sell_threshold,
            config.add_position_threshold, config.close_position_threshold,
            config.close_all_threshold, config.max_positions,
        )
        return True

    def remove_instrument(self, instrument: str) -> bool:
        """De-register *instrument* and drop everything tied to it."""
        if self._configs.pop(instrument, None) is None:
            logger.warning("remove_instrument: %s is not registered", instrument)
            return False
        if self._indicators is not None:
            try:
                self._indicators.release(instrument)
            except Exception as exc:
                logger.warning("Indicator release for %s failed: %s", instrument, exc)
        self._purge(instrument)
        logger.info("Removed %s", instrument)
        return True

    def update_instrument(self, config: InstrumentConfig) -> bool:
        """Replace the config of a registered instrument."""
        if config.instrument not in self._configs:
            logger.warning("update_instrument: %s is not registered", config.instrument)
            return False
        self._configs[config.instrument] = config
        self._cache.decision.invalidate(config.instrument)
        logger.info("Updated %s config", config.instrument)
        return True

    def quick_initialize(
        self,
        broker,
        instrument: str,
        buy_threshold: float = 65.0,
        sell_threshold: float = 65.0,
        risk_percent: float = 1.0,
        cooldown_minutes: float = 5.0,
        max_positions: int = 3,
        **collaborators,
    ) -> bool:
        """Initialize (if needed) and register a single instrument in one call."""
        if not self._initialized and not self.initialize(broker, **collaborators):
            return False
        try:
            config = InstrumentConfig(
                instrument=instrument,
                buy_threshold=buy_threshold,
                sell_threshold=sell_threshold,
                risk_percent=risk_percent,
                cooldown_seconds=int(cooldown_minutes * 60),
                max_positions=max_positions,
            )
        except ValueError as exc:
            logger.error("quick_initialize(%s) rejected: %s", instrument, exc)
            return False
        return self.add_instrument(config)

    def has_instrument(self, instrument: str) -> bool:
        return instrument in self._configs

    @property
    def instrument_count(self) -> int:
        return len(self._configs)

    @property
    def instruments(self) -> list[str]:
        """Registered instruments in registration order."""
        return list(self._configs)

    def _purge(self, instrument: str) -> None:
        self._cache.purge(instrument)
        self._cooldowns.purge(instrument)
        self._records.pop(instrument, None)

    # ── Queries ──────────────────────────────────────────────────────────

    def get_instrument_config(self, instrument: str) -> Optional[InstrumentConfig]:
        return self._configs.get(instrument)

    def get_last_decision(self, instrument: str) -> Optional[DecisionRecord]:
        return self._records.get(instrument)

    def get_cooldown(self, instrument: str) -> Optional[CooldownRecord]:
        return self._cooldowns.get(instrument)

    def get_position_snapshot(self, instrument: str) -> Optional[PositionSnapshot]:
        """Cached snapshot, rebuilt from the collaborator when stale."""
        snapshot, hit = self._cache.position.try_get(instrument)
        if hit:
            return snapshot
        if self._broker is None:
            return None
        try:
            snapshot = PositionSnapshot.from_positions(self._broker.list_positions(instrument))
        except Exception as exc:
            logger.warning("list_positions(%s) failed: %s", instrument, exc)
            return None
        self._cache.position.put(instrument, snapshot)
        return snapshot

    def get_indicators(self, instrument: str) -> Optional[IndicatorSnapshot]:
        """Cached indicator snapshot, recomputed when stale."""
        snapshot, hit = self._cache.indicators.try_get(instrument)
        if hit:
            return snapshot
        return self._compute_indicators(instrument)

    def get_price(self, instrument: str) -> Optional[Quote]:
        quote, hit = self._cache.price.try_get(instrument)
        if hit:
            return quote
        if self._broker is None:
            return None
        try:
            quote = self._broker.get_quote(instrument)
        except Exception as exc:
            logger.debug("get_quote(%s) failed: %s", instrument, exc)
            return None
        self._cache.price.put(instrument, quote)
        return quote

    def get_market_analysis(self, instrument: str) -> MarketAnalysis:
        """Cached analysis, rebuilt from indicators / provider when stale."""
        analysis, hit = self._cache.analysis.try_get(instrument)
        if hit:
            return analysis
        quote = self.get_price(instrument)
        analysis = self._analyzer.analyze(
            instrument,
            self.get_indicators(instrument),
            self._clock(),
            provider=self._signals,
            price=quote.mid if quote is not None else None,
        )
        self._cache.analysis.put(instrument, analysis)
        return analysis

    def get_trade_history(self, n: int = 10) -> list[TradeLogEntry]:
        return self._trade_log.get_trade_history(n)

    def get_daily_stats(self) -> DailyStats:
        return self._stats.current

    def get_decision_accuracy(self) -> float:
        """Lifetime winning closes as a percentage of executed closes."""
        return self._stats.decision_accuracy

    @property
    def cache(self) -> CacheLayer:
        return self._cache

    @property
    def profiler(self) -> Profiler:
        return self._profiler

    @property
    def decision_count(self) -> int:
        return sum(self._action_counts.values())

    # ── Decision path ────────────────────────────────────────────────────

    def decide(self, instrument: str, confidence: float, direction: Direction) -> Action:
        """Decide the action for *instrument* given the current signal.

        Returns ``Action.NONE`` without touching any state when the engine is
        not initialized, the instrument is unknown, or confidence is not a
        number within ``[0, 100]``.
        """
        if not self._initialized:
            logger.warning("decide(%s) called before initialize()", instrument)
            return Action.NONE
        config = self._configs.get(instrument)
        if config is None:
            logger.warning("decide(%s): instrument not registered", instrument)
            return Action.NONE
        if not _valid_confidence(confidence):
            logger.warning("decide(%s): confidence %r outside [0, 100]", instrument, confidence)
            return Action.NONE
        try:
            direction = Direction(direction)
        except ValueError:
            logger.warning("decide(%s): unknown direction %r", instrument, direction)
            return Action.NONE

        with self._profiler.measure("decide"):
            cached, hit = self._cache.decision.try_get(instrument)
            if (
                hit
                and cached.direction == direction
                and abs(cached.confidence - confidence) < self._settings.decision_confidence_tolerance
            ):
                return self._replay(instrument, cached, confidence)

            snapshot = self.get_position_snapshot(instrument)
            if snapshot is None:
                logger.warning("decide(%s): position snapshot unavailable", instrument)
                return Action.NONE

            analysis = self.get_market_analysis(instrument)
            ranging = self._ranging_detection and analysis.is_ranging

            candidate, reason = self._machine.route(
                config, confidence, direction, snapshot, ranging, self._broker
            )
            now = self._clock()
            conditions = evaluate_conditions(
                config, confidence, direction, candidate, now,
                broker=self._broker,
                cooldowns=self._cooldowns,
                calendar=self._calendar,
                risk=self._risk,
            )
            action = candidate
            if candidate.is_actionable and not validate_action(
                candidate, confidence, config, self._broker
            ):
                action = Action.HOLD
                reason = f"{reason}; {candidate.value} failed validation"

            self._action_counts[action] += 1
            self._profiler.incr("decisions")
            record = DecisionRecord(
                instrument=instrument,
                action=action,
                confidence=confidence,
                direction=direction,
                decided_at=now,
                reason=reason,
                conditions=conditions,
                snapshot=snapshot,
                analysis=analysis,
            )
            self._records[instrument] = record
            self._cache.decision.put(instrument, CachedDecision(action, confidence, direction))

        if action in LOGGABLE_ACTIONS:
            self._audit_decision(record)
        if self._debug:
            decision_logger.debug(
                "%s %s conf=%.1f dir=%s state=%s — %s (gates failed: %s)",
                instrument, action.value, confidence, direction.value,
                snapshot.state.value, reason, ", ".join(conditions.failed()) or "none",
            )
        return action

    def _replay(self, instrument: str, cached: CachedDecision, confidence: float) -> Action:
        self._action_counts[cached.action] += 1
        self._profiler.incr("decisions")
        self._profiler.incr("decision_cache_replays")
        previous = self._records.get(instrument)
        if previous is not None:
            self._records[instrument] = dataclasses.replace(
                previous, confidence=confidence, decided_at=self._clock(), from_cache=True
            )
        return cached.action

    def validate(self, instrument: str, action: Action, confidence: float) -> bool:
        return validate_action(action, confidence, self._configs.get(instrument), self._broker)

    def dispatch(self, instrument: str, action: Action, confidence: float) -> Optional[ExecutionReport]:
        """Execute *action* for *instrument*; ``None`` for non-actionable values."""
        config = self._configs.get(instrument)
        if config is None:
            logger.warning("dispatch(%s): instrument not registered", instrument)
            return None
        with self._profiler.measure("dispatch"):
            report = self._dispatcher.dispatch(config, action, confidence, self._broker)
        if report is not None:
            self._profiler.incr("executions" if report.executed else "failed_executions")
            self._audit_execution(report)
        return report

    def process_instrument(self, instrument: str) -> Action:
        """Pull the signal for *instrument*, decide, and dispatch if actionable."""
        if self._signals is None:
            return Action.NONE
        try:
            confidence = float(self._signals.get_confidence(instrument))
            direction = self._signals.get_direction(instrument)
        except Exception as exc:
            logger.error("Signal provider failed for %s: %s", instrument, exc)
            return Action.NONE

        action = self.decide(instrument, confidence, direction)
        if action.is_actionable:
            self.dispatch(instrument, action, confidence)
        return action

    # ── Host events ──────────────────────────────────────────────────────

    def on_tick(self) -> dict[str, Action]:
        """Price-tick handler: refresh stale indicators, then decide per instrument."""
        if not self._initialized:
            return {}
        with self._profiler.measure("tick"):
            self.refresh_indicators()
            return {instrument: self.process_instrument(instrument) for instrument in list(self._configs)}

    def on_timer(self) -> dict:
        """Timer handler: day rollover check plus a periodic status summary."""
        if not self._initialized:
            return {}
        self._stats.check_rollover()
        status = self.get_status()
        stats = status["daily_stats"]
        logger.info(
            "Status — %d instrument(s), %d decision(s), trades today=%d, profit=%.2f, accuracy=%.1f%%",
            status["instrument_count"], status["decisions_total"],
            stats["trades"], stats["total_profit"], status["decision_accuracy"],
        )
        return status

    def on_trade_transaction(self, transaction: Optional[TradeTransaction] = None) -> None:
        """A position changed outside the dispatch path: expire every cache."""
        if not self._initialized:
            return
        self._cache.invalidate_all()
        if transaction is not None:
            logger.info(
                "External %s on %s (ticket %s) — caches invalidated",
                transaction.kind, transaction.instrument, transaction.ticket,
            )
        else:
            logger.info("Trade transaction — caches invalidated")

    def refresh_indicators(self) -> int:
        """Recompute indicators whose cache entry has expired.  Returns the count."""
        if self._indicators is None:
            return 0
        refreshed = 0
        for instrument in self._configs:
            _, hit = self._cache.indicators.try_get(instrument)
            if not hit and self._compute_indicators(instrument) is not None:
                refreshed += 1
        return refreshed

    def _compute_indicators(self, instrument: str) -> Optional[IndicatorSnapshot]:
        if self._indicators is None or instrument not in self._configs:
            return None
        try:
            snapshot = self._indicators.compute(instrument)
        except Exception as exc:
            logger.warning("Indicator computation for %s failed: %s", instrument, exc)
            return None
        if snapshot is not None:
            self._cache.indicators.put(instrument, snapshot)
        return snapshot

    # ── Controls ─────────────────────────────────────────────────────────

    def set_signal_provider(self, provider) -> None:
        """Swap the signal provider; analysis and decision caches are expired."""
        self._signals = provider
        self._cache.analysis.invalidate_all()
        self._cache.decision.invalidate_all()
        logger.info("Signal provider set to %s", type(provider).__name__)

    @property
    def testing_mode(self) -> bool:
        return self._cache.testing_mode

    def set_testing_mode(self, enabled: bool) -> None:
        self._cache.set_testing_mode(enabled)

    def set_cooldown_gating(self, enabled: bool) -> None:
        self._cooldowns.gating_enabled = enabled
        self._cache.decision.invalidate_all()
        logger.info("Cooldown gating %s", "enabled" if enabled else "disabled")

    def set_ranging_detection(self, enabled: bool) -> None:
        self._ranging_detection = enabled
        self._cache.decision.invalidate_all()
        logger.info("Ranging detection %s", "enabled" if enabled else "disabled")

    def set_debug_mode(self, enabled: bool) -> None:
        """Log every decision at DEBUG on ``signalforge.decision``."""
        self._debug = enabled
        decision_logger.setLevel(logging.DEBUG if enabled else logging.NOTSET)
        logger.info("Debug mode %s", "enabled" if enabled else "disabled")

    def set_min_confidence_threshold(self, threshold: float) -> bool:
        if not _valid_confidence(threshold):
            logger.warning("Ignoring min confidence threshold %r (outside 0–100)", threshold)
            return False
        self._machine.min_confidence = float(threshold)
        self._cache.decision.invalidate_all()
        logger.info("Min confidence threshold set to %.1f", threshold)
        return True

    def reset_statistics(self) -> None:
        """Zero decision counters, daily/lifetime stats, profiler and cache counters."""
        self._action_counts.clear()
        self._stats.reset()
        self._profiler.reset()
        self._cache.reset_counters()
        logger.info("Statistics reset")

    def get_status(self) -> dict:
        status = {
            "initialized": self._initialized,
            "testing_mode": self._cache.testing_mode,
            "debug_mode": self._debug,
            "cooldown_gating_enabled": self._cooldowns.gating_enabled,
            "ranging_detection_enabled": self._ranging_detection,
            "min_confidence_threshold": self._machine.min_confidence,
            "instrument_count": len(self._configs),
            "instruments": list(self._configs),
            "decisions_total": self.decision_count,
            "actions": {action.value: count for action, count in self._action_counts.items()},
            "decision_accuracy": round(self.get_decision_accuracy(), 2),
            "daily_stats": self._stats.current.to_dict(),
            "trade_log": {"size": len(self._trade_log), "capacity": self._trade_log.capacity},
            "cache": self._cache.stats(),
            "profiler": self._profiler.snapshot(),
            "signal_provider": type(self._signals).__name__ if self._signals is not None else None,
            "risk": None,
        }
        if self._risk is not None:
            status["risk"] = {
                "drawdown_pct": round(self._risk.drawdown_pct, 2),
                "circuit_breaker_active": self._risk.circuit_breaker_active,
            }
        return status

    # ── Audit ────────────────────────────────────────────────────────────

    def _audit_decision(self, record: DecisionRecord) -> None:
        if self._audit is None:
            return
        try:
            self._audit.start("decision", instrument=record.instrument, action=record.action.value)
            self._audit.append("confidence", round(record.confidence, 2))
            self._audit.append("direction", record.direction.value)
            self._audit.append("reason", record.reason)
            if record.conditions is not None:
                self._audit.append("all_passed", record.conditions.all_passed)
                self._audit.append("failed", ",".join(record.conditions.failed()) or "-")
            self._audit.flush()
        except Exception as exc:
            logger.warning("Audit sink failed: %s", exc)

    def _audit_execution(self, report: ExecutionReport) -> None:
        if self._audit is None:
            return
        try:
            self._audit.start("execution", instrument=report.instrument, action=report.action.value)
            self._audit.append("executed", report.executed)
            self._audit.append("positions", f"{report.positions_before}->{report.positions_after}")
            self._audit.append("profit", round(report.profit, 2))
            self._audit.append("detail", report.detail)
            self._audit.flush()
        except Exception as exc:
            logger.warning("Audit sink failed: %s", exc)

    def _note(self, message: str) -> None:
        if self._audit is None:
            return
        try:
            self._audit.note(message)
        except Exception as exc:
            logger.warning("Audit sink failed: %s", exc)


def _valid_confidence(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if math.isnan(value):
        return False
    return 0.0 <= value <= 100.0
