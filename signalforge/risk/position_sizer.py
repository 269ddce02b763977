"""Position sizing — pure math, no I/O.

Converts an instrument's ``risk_percent`` into an order size for the
execution adapters.
"""


def calculate_units(
    equity: float,
    risk_pct: float,
    stop_distance_pips: float,
    pip_value: float = 0.0001,
) -> float:
    """Return the position size in units that risks *risk_pct* of *equity*.

    Formula::

        risk_amount = equity × risk_pct / 100
        units       = risk_amount / (stop_distance_pips × pip_value)

    Raises:
        ValueError: If any input is non-positive.
    """
    for name, value in (
        ("equity", equity),
        ("risk_pct", risk_pct),
        ("stop_distance_pips", stop_distance_pips),
        ("pip_value", pip_value),
    ):
        if value <= 0:
            raise ValueError(f"{name} must be positive, got {value}")

    risk_amount = equity * (risk_pct / 100.0)
    return risk_amount / (stop_distance_pips * pip_value)


# Pip sizes for the instruments the adapters know about
INSTRUMENT_PIP_VALUES: dict[str, float] = {
    "EUR_USD": 0.0001,
    "GBP_USD": 0.0001,
    "USD_JPY": 0.01,
    "USD_CHF": 0.0001,
    "AUD_USD": 0.0001,
    "NZD_USD": 0.0001,
    "USD_CAD": 0.0001,
    "XAU_USD": 0.01,
    "XAG_USD": 0.001,
}
