"""Internal API routers — /status, /instruments, /decisions, /trades, /control endpoints.

No business logic.  Reads engine state and forwards registration / control
calls to the ``DecisionEngine`` injected via ``configure_routers()``.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query

from signalforge.models.instrument_config import InstrumentConfig

logger = logging.getLogger("signalforge")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_engine = None  # Set via configure_routers()
_loop = None    # Set via configure_routers()


def configure_routers(engine, tick_loop=None) -> None:
    """Inject dependencies from the application startup.

    Args:
        engine: A ``DecisionEngine`` (or duck-type for tests).
        tick_loop: Optional ``TickLoop`` whose state is reported by /status.
    """
    global _engine, _loop  # noqa: PLW0603
    _engine = engine
    _loop = tick_loop


def _not_configured() -> dict:
    return {"error": "Engine not configured"}


# ── Status ───────────────────────────────────────────────────────────────


@router.get("/status")
async def get_status():
    """Return engine status (instruments, counters, cache stats, daily stats)."""
    if _engine is None:
        return _not_configured()
    status = _engine.get_status()
    if _loop is not None:
        status["loop"] = {"running": _loop.running, "cycle_count": _loop.cycle_count}
    return status


# ── Instruments ──────────────────────────────────────────────────────────


@router.get("/instruments")
async def list_instruments():
    """Return every registered instrument config, in registration order."""
    if _engine is None:
        return _not_configured()
    return {
        "instruments": [
            _engine.get_instrument_config(name).to_dict() for name in _engine.instruments
        ]
    }


@router.post("/instruments")
async def add_instrument(body: dict):
    """Register an instrument from a JSON config body."""
    if _engine is None:
        return _not_configured()
    try:
        config = InstrumentConfig.from_dict(body)
    except (TypeError, ValueError) as exc:
        return {"error": str(exc)}
    if not _engine.add_instrument(config):
        return {"error": f"Instrument already registered: {config.instrument}"}
    return {"status": "ok", "instrument": config.to_dict()}


@router.get("/instruments/{instrument}")
async def get_instrument(instrument: str):
    if _engine is None:
        return _not_configured()
    config = _engine.get_instrument_config(instrument)
    if config is None:
        return {"error": f"Unknown instrument: {instrument}"}
    return config.to_dict()


@router.put("/instruments/{instrument}")
async def update_instrument(instrument: str, body: dict):
    """Replace thresholds for a registered instrument; omitted fields are kept."""
    if _engine is None:
        return _not_configured()
    current = _engine.get_instrument_config(instrument)
    if current is None:
        return {"error": f"Unknown instrument: {instrument}"}
    try:
        config = InstrumentConfig.from_dict({**current.to_dict(), **body, "instrument": instrument})
    except (TypeError, ValueError) as exc:
        return {"error": str(exc)}
    _engine.update_instrument(config)
    return {"status": "ok", "instrument": config.to_dict()}


@router.delete("/instruments/{instrument}")
async def remove_instrument(instrument: str):
    if _engine is None:
        return _not_configured()
    if not _engine.remove_instrument(instrument):
        return {"error": f"Unknown instrument: {instrument}"}
    return {"status": "ok", "removed": instrument}


# ── Per-instrument state ─────────────────────────────────────────────────


@router.get("/decisions/{instrument}")
async def get_decision(instrument: str):
    """Return the last decision record (action, reason, gates, snapshots)."""
    if _engine is None:
        return _not_configured()
    if not _engine.has_instrument(instrument):
        return {"error": f"Unknown instrument: {instrument}"}
    record = _engine.get_last_decision(instrument)
    return {"instrument": instrument, "decision": record.to_dict() if record else None}


@router.get("/positions/{instrument}")
async def get_positions(instrument: str):
    if _engine is None:
        return _not_configured()
    if not _engine.has_instrument(instrument):
        return {"error": f"Unknown instrument: {instrument}"}
    snapshot = _engine.get_position_snapshot(instrument)
    if snapshot is None:
        return {"error": f"Positions unavailable for {instrument}"}
    return {"instrument": instrument, "positions": snapshot.to_dict()}


@router.get("/analysis/{instrument}")
async def get_analysis(instrument: str):
    if _engine is None:
        return _not_configured()
    if not _engine.has_instrument(instrument):
        return {"error": f"Unknown instrument: {instrument}"}
    return {"instrument": instrument, "analysis": _engine.get_market_analysis(instrument).to_dict()}


# ── Bookkeeping ──────────────────────────────────────────────────────────


@router.get("/trades")
async def get_trades(limit: int = Query(default=20, ge=1, le=1000)):
    """Return the most recent trade-log entries, newest first."""
    if _engine is None:
        return {"trades": [], "total": 0}
    trades = [entry.to_dict() for entry in _engine.get_trade_history(limit)]
    return {"trades": trades, "total": len(trades)}


@router.get("/stats/daily")
async def get_daily_stats():
    if _engine is None:
        return _not_configured()
    return {
        **_engine.get_daily_stats().to_dict(),
        "decision_accuracy": round(_engine.get_decision_accuracy(), 2),
    }


# ── Controls ─────────────────────────────────────────────────────────────


@router.post("/control/testing-mode")
async def set_testing_mode(body: dict):
    """Toggle cache-free operation: ``{"enabled": true}``."""
    if _engine is None:
        return _not_configured()
    enabled = bool(body.get("enabled", False))
    _engine.set_testing_mode(enabled)
    return {"status": "ok", "testing_mode": enabled}


@router.post("/control/reset-stats")
async def reset_stats():
    if _engine is None:
        return _not_configured()
    _engine.reset_statistics()
    return {"status": "ok"}


@router.post("/control/invalidate-caches")
async def invalidate_caches(instrument: Optional[str] = Query(default=None)):
    """Expire every cache entry, or only the ones belonging to *instrument*."""
    if _engine is None:
        return _not_configured()
    if instrument is None:
        _engine.cache.invalidate_all()
    else:
        _engine.cache.invalidate_instrument(instrument)
    logger.info("Caches invalidated via API (%s)", instrument or "all")
    return {"status": "ok", "instrument": instrument}
