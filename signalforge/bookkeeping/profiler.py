"""Lightweight profiling counters for the decision path."""

import time
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass


@dataclass
class _Timing:
    calls: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0


class Profiler:
    """Named event counters plus call timings (``perf_counter`` based)."""

    def __init__(self) -> None:
        self._counters: Counter = Counter()
        self._timings: dict[str, _Timing] = {}

    def incr(self, name: str, amount: int = 1) -> None:
        self._counters[name] += amount

    def count(self, name: str) -> int:
        return self._counters[name]

    @contextmanager
    def measure(self, name: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            timing = self._timings.setdefault(name, _Timing())
            timing.calls += 1
            timing.total_ms += elapsed_ms
            timing.max_ms = max(timing.max_ms, elapsed_ms)

    def reset(self) -> None:
        self._counters.clear()
        self._timings.clear()

    def snapshot(self) -> dict:
        return {
            "counters": dict(self._counters),
            "timings": {
                name: {
                    "calls": t.calls,
                    "avg_ms": round(t.total_ms / t.calls, 4) if t.calls else 0.0,
                    "max_ms": round(t.max_ms, 4),
                }
                for name, t in self._timings.items()
            },
        }
