"""Technical indicators — ATR, EMA, ADX. Pure functions, no I/O."""

from signalforge.broker.models import Candle


def calculate_atr(candles: list[Candle], period: int = 14) -> float:
    """Calculate the Average True Range over *period* candles.

    Uses the standard True Range definition:
        TR = max(high - low, |high - prev_close|, |low - prev_close|)

    Requires at least ``period + 1`` candles.  Returns the simple average
    of the last *period* true ranges.

    Raises ``ValueError`` if insufficient data.
    """
    if len(candles) < period + 1:
        raise ValueError(
            f"Need at least {period + 1} candles for ATR({period}), "
            f"got {len(candles)}"
        )

    true_ranges = [_true_range(candles[i], candles[i - 1].close) for i in range(1, len(candles))]
    recent = true_ranges[-period:]
    return sum(recent) / len(recent)


def calculate_ema(candles: list[Candle], period: int) -> list[float]:
    """Calculate an Exponential Moving Average series over closes.

    ``EMA_today = close × k + EMA_yesterday × (1 - k)`` with
    ``k = 2 / (period + 1)``, seeded with the SMA of the first *period*
    closes.  Entries before the seed are ``float('nan')``.

    Raises ``ValueError`` if fewer than *period* candles are provided.
    """
    if len(candles) < period:
        raise ValueError(
            f"Need at least {period} candles for EMA({period}), "
            f"got {len(candles)}"
        )

    k = 2.0 / (period + 1)
    closes = [c.close for c in candles]
    ema: list[float] = [float("nan")] * len(closes)
    ema[period - 1] = sum(closes[:period]) / period

    for i in range(period, len(closes)):
        ema[i] = closes[i] * k + ema[i - 1] * (1 - k)

    return ema


# ── ADX ──────────────────────────────────────────────────────────────────


def calculate_adx(candles: list[Candle], period: int = 14) -> float:
    """Return the latest Average Directional Index value.

    Wilder-smoothed +DM / -DM / TR give +DI and -DI; DX is
    ``100 × |+DI − −DI| / (+DI + −DI)``; ADX is the Wilder-smoothed DX.

    Requires at least ``2 × period + 1`` candles.
    """
    min_candles = 2 * period + 1
    if len(candles) < min_candles:
        raise ValueError(
            f"Need at least {min_candles} candles for ADX({period}), "
            f"got {len(candles)}"
        )

    plus_dm: list[float] = []
    minus_dm: list[float] = []
    tr: list[float] = []
    for i in range(1, len(candles)):
        up_move = candles[i].high - candles[i - 1].high
        down_move = candles[i - 1].low - candles[i].low
        plus_dm.append(up_move if (up_move > down_move and up_move > 0) else 0.0)
        minus_dm.append(down_move if (down_move > up_move and down_move > 0) else 0.0)
        tr.append(_true_range(candles[i], candles[i - 1].close))

    s_pdm = sum(plus_dm[:period])
    s_mdm = sum(minus_dm[:period])
    s_tr = sum(tr[:period])
    dx_values = [_dx(s_pdm, s_mdm, s_tr)]

    for i in range(period, len(tr)):
        s_pdm = s_pdm - s_pdm / period + plus_dm[i]
        s_mdm = s_mdm - s_mdm / period + minus_dm[i]
        s_tr = s_tr - s_tr / period + tr[i]
        dx_values.append(_dx(s_pdm, s_mdm, s_tr))

    adx = sum(dx_values[:period]) / period
    for value in dx_values[period:]:
        adx = (adx * (period - 1) + value) / period
    return adx


def _true_range(candle: Candle, prev_close: float) -> float:
    return max(
        candle.high - candle.low,
        abs(candle.high - prev_close),
        abs(candle.low - prev_close),
    )


def _dx(s_pdm: float, s_mdm: float, s_tr: float) -> float:
    if s_tr == 0:
        return 0.0
    plus_di = 100.0 * s_pdm / s_tr
    minus_di = 100.0 * s_mdm / s_tr
    di_sum = plus_di + minus_di
    if di_sum == 0:
        return 0.0
    return 100.0 * abs(plus_di - minus_di) / di_sum
