"""SignalForge — Host event loop.

Delivers ``on_trade_transaction`` / ``on_tick`` / ``on_timer`` events to a
``DecisionEngine`` strictly one after another.  The engine itself is
synchronous; this loop only schedules it.
"""

import asyncio
import logging
import time
from typing import Optional

from signalforge.engine import DecisionEngine

logger = logging.getLogger("signalforge")


class TickLoop:
    """Polling driver for one engine.

    Args:
        engine: An initialized ``DecisionEngine``.
        broker: Optional collaborator exposing ``drain_transactions()``;
            external position changes it reports are forwarded before each
            tick.
        feed: Optional market-data source whose ``step()`` runs first in
            every cycle (the paper backend's random walk).
        poll_interval: Seconds between ticks.
        timer_interval: Seconds between ``on_timer`` calls.
    """

    def __init__(
        self,
        engine: DecisionEngine,
        broker=None,
        feed=None,
        poll_interval: float = 1.0,
        timer_interval: float = 60.0,
    ) -> None:
        self._engine = engine
        self._broker = broker
        self._feed = feed
        self._poll_interval = poll_interval
        self._timer_interval = timer_interval
        self._running = False
        self._cycle_count = 0
        self._last_timer: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    def stop(self) -> None:
        """Signal the loop to stop after the current cycle."""
        self._running = False

    # ── Polling loop ─────────────────────────────────────────────────────

    async def run(self, max_cycles: int = 0) -> int:
        """Run until stopped (or *max_cycles* reached, 0 = unlimited).

        Returns the number of cycles completed.
        """
        self._running = True
        self._last_timer = time.monotonic()
        cycle = 0

        while self._running:
            cycle += 1
            self._cycle_count += 1
            try:
                self.run_once()
            except Exception as exc:
                logger.error("Cycle %d error: %s", cycle, exc)

            if max_cycles > 0 and cycle >= max_cycles:
                break

            # Interruptible sleep — checks _running at least once a second
            remaining = self._poll_interval
            while remaining > 0 and self._running:
                step = min(1.0, remaining)
                await asyncio.sleep(step)
                remaining -= step

        self._running = False
        logger.info("Tick loop stopped after %d cycle(s)", cycle)
        return cycle

    def run_once(self) -> None:
        """Advance the feed, forward pending transactions, tick, and fire the timer when due."""
        if self._feed is not None:
            self._feed.step()

        drain = getattr(self._broker, "drain_transactions", None)
        if drain is not None:
            for transaction in drain():
                self._engine.on_trade_transaction(transaction)

        actions = self._engine.on_tick()
        acted = {i: a.value for i, a in actions.items() if a.is_actionable}
        if acted:
            logger.info("Cycle %d: %s", self._cycle_count, acted)
        else:
            logger.debug("Cycle %d: no actionable decisions", self._cycle_count)

        now = time.monotonic()
        if self._last_timer is None or now - self._last_timer >= self._timer_interval:
            self._last_timer = now
            self._engine.on_timer()
