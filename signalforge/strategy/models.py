"""Strategy data models — indicator snapshots consumed by signal providers."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Latest indicator values for one instrument."""

    instrument: str
    price: float
    ma_fast: float
    ma_slow: float
    atr: float
    adx: Optional[float] = None
    computed_at: Optional[datetime] = None

    @property
    def separation(self) -> float:
        """Distance between the moving averages in ATR units."""
        if self.atr <= 0:
            return 0.0
        return abs(self.ma_fast - self.ma_slow) / self.atr

    @property
    def volatility_pct(self) -> float:
        """ATR as a percentage of price."""
        if self.price <= 0:
            return 0.0
        return self.atr / self.price * 100.0

    def to_dict(self) -> dict:
        return {
            "instrument": self.instrument,
            "price": self.price,
            "ma_fast": self.ma_fast,
            "ma_slow": self.ma_slow,
            "atr": self.atr,
            "adx": self.adx,
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
        }
