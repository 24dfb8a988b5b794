"""
Technical indicators for POST /api/indicators

Computes RSI, MACD and Bollinger Bands over the `value` column of a series
and returns only the most recent reading of each.

Conventions:
- EMA seeded with the SMA of the first `period` values
- RSI uses Wilder smoothing, rounded to 2 decimals
- Bollinger width uses the population standard deviation
"""

from typing import Dict, List, Optional, Sequence

import numpy as np

RSI_PERIOD = 14
MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9
BOLLINGER_PERIOD = 20
BOLLINGER_STD_DEV = 2.0


def ema(values: np.ndarray, period: int) -> np.ndarray:
    """EMA series starting at index period-1 (length n - period + 1)"""
    if period <= 0 or len(values) < period:
        return np.empty(0)
    k = 2.0 / (period + 1)
    out = np.empty(len(values) - period + 1)
    out[0] = values[:period].mean()
    for i, price in enumerate(values[period:], start=1):
        out[i] = (price - out[i - 1]) * k + out[i - 1]
    return out


def rsi(values: np.ndarray, period: int = RSI_PERIOD) -> Optional[float]:
    if len(values) <= period:
        return None
    deltas = np.diff(values)
    gains = np.clip(deltas, 0, None)
    losses = np.clip(-deltas, 0, None)

    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        return 100.0
    if avg_gain == 0:
        return 0.0
    rs = avg_gain / avg_loss
    return round(float(100 - 100 / (1 + rs)), 2)


def macd(
    values: np.ndarray,
    fast: int = MACD_FAST,
    slow: int = MACD_SLOW,
    signal: int = MACD_SIGNAL,
) -> Optional[Dict[str, float]]:
    slow_ema = ema(values, slow)
    if slow_ema.size == 0:
        return None
    fast_ema = ema(values, fast)[slow - fast:]
    macd_line = fast_ema - slow_ema

    result = {"MACD": float(macd_line[-1])}
    signal_line = ema(macd_line, signal)
    if signal_line.size:
        result["signal"] = float(signal_line[-1])
        result["histogram"] = float(macd_line[-1] - signal_line[-1])
    return result


def bollinger(
    values: np.ndarray,
    period: int = BOLLINGER_PERIOD,
    std_dev: float = BOLLINGER_STD_DEV,
) -> Optional[Dict[str, float]]:
    if len(values) < period:
        return None
    window = values[-period:]
    middle = float(window.mean())
    deviation = float(window.std())
    upper = middle + std_dev * deviation
    lower = middle - std_dev * deviation
    width = upper - lower
    pb = float((values[-1] - lower) / width) if width else 0.0
    return {"middle": middle, "upper": upper, "lower": lower, "pb": pb}


CALCULATORS = {
    "rsi": rsi,
    "macd": macd,
    "bollinger": bollinger,
}


def calculate_indicators(values: Sequence[float], indicators: List[str]) -> Dict[str, object]:
    """
    Last value of each requested indicator

    Unknown names are ignored; an indicator without enough data is left out.
    """
    series = np.asarray(values, dtype=float)
    results: Dict[str, object] = {}
    for name in indicators:
        calculator = CALCULATORS.get(name.lower())
        if calculator is None:
            continue
        value = calculator(series)
        if value is not None:
            results[name.lower()] = value
    return results
