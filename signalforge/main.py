"""SignalForge — application entry point.

Boots the FastAPI internal server and provides the CLI entry point that wires
an execution backend, the decision engine and the tick loop together.
"""

import logging

from fastapi import FastAPI

from signalforge.api.routers import router

app = FastAPI(title="SignalForge Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("signalforge")


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}


def warn_if_live(backend: str, environment: str) -> bool:
    """Log a prominent warning when orders would reach a live account.

    Returns ``True`` for the OANDA backend on the live environment.
    """
    if backend == "oanda" and environment == "live":
        logger.warning("LIVE TRADING — Real money at risk! Starting in 5 seconds...")
        return True
    return False


def build_broker(config):
    """Return the execution collaborator selected by ``config.execution_backend``."""
    if config.execution_backend == "oanda":
        from signalforge.broker.oanda_client import OandaExecutor

        return OandaExecutor(config)

    from signalforge.broker.paper_client import PaperBroker

    return PaperBroker(
        equity=config.paper_equity,
        max_drawdown_pct=config.max_drawdown_pct,
        stop_distance_pips=config.sizing_stop_pips,
    )


def build_paper_feed(config, broker, instruments):
    """Return a primed random-walk feed for the paper backend's instruments."""
    from signalforge.broker.paper_feed import RandomWalkFeed

    feed = RandomWalkFeed(
        broker,
        instruments,
        seed=config.paper_feed_seed,
        drift_pct=config.paper_feed_drift_pct,
        volatility_pct=config.paper_feed_volatility_pct,
        history=max(200, 2 * config.ema_slow),
    )
    feed.prime()
    return feed


def build_engine(config, broker, testing_mode: bool = False):
    """Construct and initialize a ``DecisionEngine`` with every instrument registered."""
    import dataclasses

    from signalforge.audit import LoggingAuditSink
    from signalforge.config import load_instruments
    from signalforge.engine import DecisionEngine, EngineSettings
    from signalforge.risk.drawdown import DrawdownGuard
    from signalforge.strategy.candle_indicators import CandleIndicatorSource
    from signalforge.strategy.session_filter import SessionCalendar

    settings = EngineSettings.from_config(config)
    if testing_mode:
        settings = dataclasses.replace(settings, testing_mode=True)
    engine = DecisionEngine(settings)

    # The OANDA guard is seeded on the first account read.
    broker.is_trading_allowed()
    risk = broker.guard or DrawdownGuard(config.paper_equity, config.max_drawdown_pct)
    calendar = (
        SessionCalendar(config.session_start_utc, config.session_end_utc)
        if config.has_trading_hours else None
    )
    indicators = CandleIndicatorSource(
        broker, ema_fast=config.ema_fast, ema_slow=config.ema_slow, atr_period=config.atr_period,
    )
    if not engine.initialize(
        broker,
        risk=risk,
        indicators=indicators,
        audit=LoggingAuditSink(),
        calendar=calendar,
    ):
        raise RuntimeError("Decision engine failed to initialize")

    for instrument_config in load_instruments(config.instruments_path, config.default_instrument):
        engine.add_instrument(instrument_config)
    return engine


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and start the engine (and API server)."""
    import argparse
    import asyncio
    import signal
    import time

    from signalforge.api.routers import configure_routers
    from signalforge.config import load_config
    from signalforge.runner import TickLoop

    parser = argparse.ArgumentParser(description="SignalForge decision engine")
    parser.add_argument(
        "--backend",
        choices=["paper", "oanda"],
        default=None,
        help="Execution backend (default: EXECUTION_BACKEND or paper)",
    )
    parser.add_argument(
        "--engine-only",
        action="store_true",
        help="Run the tick loop without the API server",
    )
    parser.add_argument(
        "--testing-mode",
        action="store_true",
        help="Disable every cache (each decision recomputes from collaborators)",
    )
    parser.add_argument(
        "--max-cycles",
        type=int,
        default=0,
        help="Stop after this many ticks (0 = run until interrupted)",
    )
    parser.add_argument("--env-file", default=None, help="Path to a .env file")
    args = parser.parse_args()

    if args.backend:
        import os

        os.environ["EXECUTION_BACKEND"] = args.backend

    config = load_config(args.env_file)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if warn_if_live(config.execution_backend, config.oanda_environment):
        time.sleep(5)

    broker = build_broker(config)
    engine = build_engine(config, broker, testing_mode=args.testing_mode)
    feed = None
    if config.execution_backend == "paper":
        feed = build_paper_feed(config, broker, engine.instruments)
    loop = TickLoop(
        engine,
        broker=broker,
        feed=feed,
        poll_interval=config.poll_interval_seconds,
        timer_interval=config.timer_interval_seconds,
    )
    configure_routers(engine, tick_loop=loop)

    def handle_shutdown(signum, frame):
        logger.info("Shutdown signal received — stopping gracefully.")
        loop.stop()

    signal.signal(signal.SIGINT, handle_shutdown)

    if args.engine_only:
        asyncio.run(_run_loop_only(loop, args.max_cycles))
    else:
        asyncio.run(_run_with_api(loop, args.max_cycles, config.api_port))
    engine.deinitialize()


async def _run_with_api(loop, max_cycles: int, port: int = 8080) -> None:
    """Start the API server and the tick loop concurrently."""
    import asyncio

    import uvicorn

    uvi_config = uvicorn.Config(app, host="0.0.0.0", port=port, log_level="info")
    server = uvicorn.Server(uvi_config)

    async def _run_loop():
        await loop.run(max_cycles=max_cycles)
        server.should_exit = True

    logger.info("API available at http://localhost:%d", port)
    results = await asyncio.gather(server.serve(), _run_loop(), return_exceptions=True)
    logger.info("SignalForge stopped. Results: %s", results)


async def _run_loop_only(loop, max_cycles: int) -> None:
    logger.info("Starting SignalForge tick loop (no API).")
    cycles = await loop.run(max_cycles=max_cycles)
    logger.info("SignalForge stopped after %d cycle(s).", cycles)


if __name__ == "__main__":
    _run_cli()
