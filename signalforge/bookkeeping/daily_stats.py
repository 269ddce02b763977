"""Daily statistics with day-rollover detection.

Only executed actions are recorded.  Realized profit is counted on close
actions: positive profit is a win, negative a loss.  Lifetime win / close
counters survive rollovers and feed ``decision_accuracy``.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from signalforge.cache.ttl_cache import Clock, utc_now
from signalforge.decision.models import Action, Side

logger = logging.getLogger("signalforge.bookkeeping")

_CLOSE_ACTIONS = frozenset({Action.CLOSE_BUY, Action.CLOSE_SELL, Action.CLOSE_ALL})


@dataclass
class DailyStats:
    """Counters for one UTC calendar day."""

    stat_day: date
    trades: int = 0
    wins: int = 0
    losses: int = 0
    total_profit: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    buy_trades: int = 0
    sell_trades: int = 0

    @property
    def win_rate(self) -> float:
        """Percentage of decided closes that were wins."""
        decided = self.wins + self.losses
        if decided == 0:
            return 0.0
        return self.wins / decided * 100.0

    def to_dict(self) -> dict:
        return {
            "stat_day": self.stat_day.isoformat(),
            "trades": self.trades,
            "wins": self.wins,
            "losses": self.losses,
            "total_profit": round(self.total_profit, 2),
            "largest_win": round(self.largest_win, 2),
            "largest_loss": round(self.largest_loss, 2),
            "buy_trades": self.buy_trades,
            "sell_trades": self.sell_trades,
            "win_rate": round(self.win_rate, 2),
        }


@dataclass
class _Lifetime:
    closed_trades: int = 0
    wins: int = 0


class DailyStatsTracker:
    """Owns the current ``DailyStats`` and resets it when the date changes."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._stats = DailyStats(stat_day=clock().date())
        self._lifetime = _Lifetime()

    @property
    def current(self) -> DailyStats:
        return self._stats

    def check_rollover(self, now: Optional[datetime] = None) -> bool:
        """Start a fresh day if *now* is past the current stat day."""
        today = (now or self._clock()).date()
        if today == self._stats.stat_day:
            return False
        previous = self._stats
        self._stats = DailyStats(stat_day=today)
        logger.info(
            "Day rollover %s → %s (trades=%d, profit=%.2f)",
            previous.stat_day, today, previous.trades, previous.total_profit,
        )
        return True

    def record_trade(self, action: Action, profit: float = 0.0, now: Optional[datetime] = None) -> None:
        """Count one executed action, rolling the day over first if needed."""
        self.check_rollover(now)
        stats = self._stats
        stats.trades += 1

        side = action.side
        if side == Side.BUY:
            stats.buy_trades += 1
        elif side == Side.SELL:
            stats.sell_trades += 1

        if action not in _CLOSE_ACTIONS:
            return

        self._lifetime.closed_trades += 1
        stats.total_profit += profit
        if profit > 0:
            stats.wins += 1
            stats.largest_win = max(stats.largest_win, profit)
            self._lifetime.wins += 1
        elif profit < 0:
            stats.losses += 1
            stats.largest_loss = min(stats.largest_loss, profit)

    @property
    def decision_accuracy(self) -> float:
        """Lifetime winning closes as a percentage of all closes."""
        if self._lifetime.closed_trades == 0:
            return 0.0
        return self._lifetime.wins / self._lifetime.closed_trades * 100.0

    def reset(self) -> None:
        self._stats = DailyStats(stat_day=self._clock().date())
        self._lifetime = _Lifetime()
