"""SignalForge — application configuration.

Loads .env variables into a typed config object and instrument definitions
from ``instruments.json``.  Validates required variables on startup.
"""

import json
import logging
import os
import pathlib
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from signalforge.cache.layer import CacheTTLs
from signalforge.models.instrument_config import InstrumentConfig

logger = logging.getLogger("signalforge")

_OANDA_REQUIRED_VARS = [
    "OANDA_ACCOUNT_ID",
    "OANDA_API_TOKEN",
]

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    execution_backend: str  # "paper" or "oanda"
    log_level: str
    api_port: int
    instruments_path: str
    default_instrument: str
    # Decision behaviour
    testing_mode: bool
    cooldown_gating_enabled: bool
    ranging_detection_enabled: bool
    min_confidence_threshold: float
    decision_confidence_tolerance: float
    signal_provider: str
    # Cache TTLs (seconds)
    price_ttl: float
    position_ttl: float
    analysis_ttl: float
    decision_ttl: float
    indicator_ttl: float
    # Bookkeeping
    trade_log_capacity: int
    # Host loop
    poll_interval_seconds: float
    timer_interval_seconds: float
    # Default signal provider
    ema_fast: int
    ema_slow: int
    atr_period: int
    ranging_volatility_pct: float
    # Trading hours (UTC, start inclusive / end exclusive; 0–24 = always)
    session_start_utc: int
    session_end_utc: int
    # Execution
    max_drawdown_pct: float
    sizing_stop_pips: float
    paper_equity: float
    oanda_account_id: str = ""
    oanda_api_token: str = ""
    oanda_environment: str = "practice"  # "practice" or "live"
    # Paper market-data feed
    paper_feed_seed: int = 42
    paper_feed_drift_pct: float = 0.0
    paper_feed_volatility_pct: float = 0.05

    @property
    def oanda_base_url(self) -> str:
        """Return the OANDA v20 API base URL based on environment."""
        if self.oanda_environment == "live":
            return "https://api-fxtrade.oanda.com"
        return "https://api-fxpractice.oanda.com"

    @property
    def cache_ttls(self) -> CacheTTLs:
        return CacheTTLs(
            price=self.price_ttl,
            position=self.position_ttl,
            analysis=self.analysis_ttl,
            decision=self.decision_ttl,
            indicators=self.indicator_ttl,
        )

    @property
    def has_trading_hours(self) -> bool:
        """``False`` when the session window covers the whole day."""
        return not (self.session_start_utc == 0 and self.session_end_utc == 24)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` naming the missing variable when the OANDA backend
    is selected without credentials, or when a value is out of range.
    """
    load_dotenv(dotenv_path=env_path)

    backend = os.environ.get("EXECUTION_BACKEND", "paper").lower()
    if backend not in ("paper", "oanda"):
        raise ValueError(f"EXECUTION_BACKEND must be 'paper' or 'oanda', got '{backend}'")
    if backend == "oanda":
        missing = [v for v in _OANDA_REQUIRED_VARS if not os.environ.get(v)]
        if missing:
            raise ValueError(
                f"Missing required environment variable(s): {', '.join(missing)}"
            )

    config = Config(
        execution_backend=backend,
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        api_port=int(os.environ.get("API_PORT", "8080")),
        instruments_path=os.environ.get("INSTRUMENTS_PATH", "instruments.json"),
        default_instrument=os.environ.get("DEFAULT_INSTRUMENT", "EUR_USD"),
        testing_mode=_env_bool("TESTING_MODE", False),
        cooldown_gating_enabled=_env_bool("COOLDOWN_GATING", False),
        ranging_detection_enabled=_env_bool("RANGING_DETECTION", False),
        min_confidence_threshold=float(os.environ.get("MIN_CONFIDENCE", "0")),
        decision_confidence_tolerance=float(os.environ.get("DECISION_CONFIDENCE_TOLERANCE", "1.0")),
        signal_provider=os.environ.get("SIGNAL_PROVIDER", "moving_average"),
        price_ttl=float(os.environ.get("PRICE_CACHE_TTL", "0.5")),
        position_ttl=float(os.environ.get("POSITION_CACHE_TTL", "1.5")),
        analysis_ttl=float(os.environ.get("ANALYSIS_CACHE_TTL", "5")),
        decision_ttl=float(os.environ.get("DECISION_CACHE_TTL", "5")),
        indicator_ttl=float(os.environ.get("INDICATOR_CACHE_TTL", "60")),
        trade_log_capacity=int(os.environ.get("TRADE_LOG_CAPACITY", "100")),
        poll_interval_seconds=float(os.environ.get("POLL_INTERVAL_SECONDS", "1")),
        timer_interval_seconds=float(os.environ.get("TIMER_INTERVAL_SECONDS", "60")),
        ema_fast=int(os.environ.get("EMA_FAST", "21")),
        ema_slow=int(os.environ.get("EMA_SLOW", "50")),
        atr_period=int(os.environ.get("ATR_PERIOD", "14")),
        ranging_volatility_pct=float(os.environ.get("RANGING_VOLATILITY_PCT", "0.05")),
        session_start_utc=int(os.environ.get("SESSION_START_UTC", "0")),
        session_end_utc=int(os.environ.get("SESSION_END_UTC", "24")),
        max_drawdown_pct=float(os.environ.get("MAX_DRAWDOWN_PCT", "10.0")),
        sizing_stop_pips=float(os.environ.get("SIZING_STOP_PIPS", "30")),
        paper_equity=float(os.environ.get("PAPER_EQUITY", "10000")),
        oanda_account_id=os.environ.get("OANDA_ACCOUNT_ID", ""),
        oanda_api_token=os.environ.get("OANDA_API_TOKEN", ""),
        oanda_environment=os.environ.get("OANDA_ENVIRONMENT", "practice"),
        paper_feed_seed=int(os.environ.get("PAPER_FEED_SEED", "42")),
        paper_feed_drift_pct=float(os.environ.get("PAPER_FEED_DRIFT_PCT", "0")),
        paper_feed_volatility_pct=float(os.environ.get("PAPER_FEED_VOLATILITY_PCT", "0.05")),
    )

    if config.trade_log_capacity < 1:
        raise ValueError(f"TRADE_LOG_CAPACITY must be >= 1, got {config.trade_log_capacity}")
    if config.ema_fast >= config.ema_slow:
        raise ValueError(
            f"EMA_FAST ({config.ema_fast}) must be shorter than EMA_SLOW ({config.ema_slow})"
        )
    return config


def load_instruments(
    path: Optional[str] = None,
    default_instrument: str = "EUR_USD",
) -> list[InstrumentConfig]:
    """Load instrument definitions from a JSON file.

    Expected shape::

        {"instruments": [{"instrument": "EUR_USD", "buy_threshold": 65, ...}]}

    Falls back to a single default-threshold instrument when the file does
    not exist.  Entries with ``"enabled": false`` are skipped.
    """
    file_path = pathlib.Path(path or "instruments.json")
    if not file_path.exists():
        logger.info(
            "No %s found — using default thresholds for %s", file_path, default_instrument
        )
        return [InstrumentConfig(instrument=default_instrument)]

    data = json.loads(file_path.read_text(encoding="utf-8"))
    configs = [InstrumentConfig.from_dict(item) for item in data.get("instruments", [])]
    return [c for c in configs if c.enabled]
