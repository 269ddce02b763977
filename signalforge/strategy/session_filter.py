"""Session filter — checks if a UTC time is within the trading window."""

from datetime import datetime


def is_in_session(
    utc_hour: int,
    session_start: int = 7,
    session_end: int = 21,
) -> bool:
    """Return True if *utc_hour* falls within the session window.

    Default window: 07:00–21:00 UTC (inclusive start, exclusive end).  A
    window whose start is after its end wraps midnight (e.g. 22 → 6).

    Args:
        utc_hour: The hour in UTC (0–23).
        session_start: Session start hour (inclusive).
        session_end: Session end hour (exclusive).
    """
    if session_start <= session_end:
        return session_start <= utc_hour < session_end
    return utc_hour >= session_start or utc_hour < session_end


class SessionCalendar:
    """``TradingCalendar`` backed by a fixed UTC hour window."""

    def __init__(self, session_start: int = 7, session_end: int = 21) -> None:
        for name, value in (("session_start", session_start), ("session_end", session_end)):
            if not 0 <= value <= 24:
                raise ValueError(f"{name} must be within 0–24, got {value}")
        self.session_start = session_start
        self.session_end = session_end

    def is_open(self, now: datetime) -> bool:
        return is_in_session(now.hour, self.session_start, self.session_end)

    def __repr__(self) -> str:
        return f"SessionCalendar({self.session_start:02d}:00–{self.session_end:02d}:00 UTC)"
