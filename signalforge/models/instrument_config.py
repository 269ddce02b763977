"""Instrument configuration dataclass.

Represents one registered instrument in the decision engine.
"""

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class InstrumentConfig:
    """Thresholds and limits for a single instrument.

    Confidence thresholds are on the 0–100 scale.  The object is immutable;
    ``DecisionEngine.update_instrument`` swaps in a replacement.

    Raises ``ValueError`` on construction when the thresholds are out of
    range or inconsistent.
    """

    instrument: str
    buy_threshold: float = 65.0
    sell_threshold: float = 65.0
    add_position_threshold: float = 80.0
    close_position_threshold: float = 40.0
    close_all_threshold: float = 20.0
    cooldown_seconds: int = 300
    max_positions: int = 3
    risk_percent: float = 1.0
    enabled: bool = True

    def __post_init__(self) -> None:
        if not self.instrument:
            raise ValueError("instrument must be a non-empty identifier")
        for name in (
            "buy_threshold",
            "sell_threshold",
            "add_position_threshold",
            "close_position_threshold",
            "close_all_threshold",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 100.0:
                raise ValueError(f"{name} must be within 0–100, got {value}")
        if self.close_all_threshold > self.close_position_threshold:
            raise ValueError(
                "close_all_threshold must not exceed close_position_threshold "
                f"({self.close_all_threshold} > {self.close_position_threshold})"
            )
        if self.max_positions < 1:
            raise ValueError(f"max_positions must be >= 1, got {self.max_positions}")
        if self.cooldown_seconds < 0:
            raise ValueError(
                f"cooldown_seconds must be >= 0, got {self.cooldown_seconds}"
            )
        if self.risk_percent <= 0:
            raise ValueError(f"risk_percent must be positive, got {self.risk_percent}")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "InstrumentConfig":
        """Build from a JSON-style dict, ignoring unknown keys."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)
