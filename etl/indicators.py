"""
Technical indicator engine.

Pure functions over an ordered close-price series. Every helper returns a list
aligned with its input where undefined positions are None; compute_indicators
turns those into IndicatorPoint records for the defined positions only.

Windows count available bars, not calendar days: holidays and other gaps are
simply absent from the series.
"""

import math
from typing import List, Optional, Sequence

from etl.config import DEFAULT_INDICATORS, IndicatorConfig
from models import DailyBar, IndicatorKind, IndicatorPoint

Series = List[Optional[float]]


def sma(closes: Sequence[float], n: int) -> Series:
    """Simple moving average; defined from the n-th bar on."""
    out: Series = [None] * len(closes)
    for i in range(n - 1, len(closes)):
        out[i] = math.fsum(closes[i - n + 1:i + 1]) / n
    return out


def ema(values: Sequence[Optional[float]], n: int) -> Series:
    """
    Exponential moving average with k = 2/(n+1), seeded with the SMA of the
    first n defined values. Leading None values (e.g. an indicator that is
    itself still warming up) are skipped.
    """
    out: Series = [None] * len(values)
    k = 2.0 / (n + 1)
    start = next((i for i, v in enumerate(values) if v is not None), None)
    if start is None or len(values) - start < n:
        return out

    seed_at = start + n - 1
    prev = math.fsum(values[start:seed_at + 1]) / n
    out[seed_at] = prev
    for i in range(seed_at + 1, len(values)):
        prev = values[i] * k + prev * (1 - k)
        out[i] = prev
    return out


def rsi(closes: Sequence[float], n: int) -> Series:
    """
    Wilder's RSI. Average gain/loss over the first n price changes seed the
    recurrence, so the first value lands on bar n+1.
    """
    out: Series = [None] * len(closes)
    if len(closes) <= n:
        return out

    gains = []
    losses = []
    for i in range(1, n + 1):
        change = closes[i] - closes[i - 1]
        gains.append(max(change, 0.0))
        losses.append(max(-change, 0.0))
    avg_gain = math.fsum(gains) / n
    avg_loss = math.fsum(losses) / n
    out[n] = _rsi_value(avg_gain, avg_loss)

    for i in range(n + 1, len(closes)):
        change = closes[i] - closes[i - 1]
        avg_gain = (avg_gain * (n - 1) + max(change, 0.0)) / n
        avg_loss = (avg_loss * (n - 1) + max(-change, 0.0)) / n
        out[i] = _rsi_value(avg_gain, avg_loss)
    return out


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)


def macd(closes: Sequence[float], fast: int, slow: int, signal: int) -> tuple:
    """MACD line (EMA fast - EMA slow) and its signal line (EMA of the line)."""
    fast_ema = ema(closes, fast)
    slow_ema = ema(closes, slow)
    line: Series = [
        f - s if f is not None and s is not None else None
        for f, s in zip(fast_ema, slow_ema)
    ]
    return line, ema(line, signal)


# ---------------------------------------------------------------------------
# IndicatorPoint assembly
# ---------------------------------------------------------------------------

def _points(symbol, bars, values, kind, period, params) -> List[IndicatorPoint]:
    return [
        IndicatorPoint(
            symbol=symbol,
            trade_date=bar.trade_date,
            kind=kind,
            period=period,
            params=params,
            value=value,
        )
        for bar, value in zip(bars, values)
        if value is not None
    ]


def compute_indicators(
    symbol: str,
    bars: Sequence[DailyBar],
    config: IndicatorConfig = DEFAULT_INDICATORS,
    history: Sequence[float] = (),
) -> List[IndicatorPoint]:
    """
    Compute the configured indicators for one symbol's ascending bar series.

    history holds the stored closes that precede bars; they seed the windows
    and recurrences, but points are only produced for the dates in bars.
    """
    closes = [float(c) for c in history] + [float(bar.close) for bar in bars]
    skip = len(closes) - len(bars)
    points: List[IndicatorPoint] = []

    def emit(values, kind, period, params):
        return _points(symbol, bars, values[skip:], kind, period, params)

    for n in config.sma:
        points += emit(sma(closes, n), IndicatorKind.SMA, n, str(n))
    for n in config.ema:
        points += emit(ema(closes, n), IndicatorKind.EMA, n, str(n))
    for n in config.rsi:
        points += emit(rsi(closes, n), IndicatorKind.RSI, n, str(n))
    for fast, slow, signal in config.macd:
        params = f"{fast},{slow},{signal}"
        line, signal_line = macd(closes, fast, slow, signal)
        points += emit(line, IndicatorKind.MACD, None, params)
        points += emit(signal_line, IndicatorKind.MACD_SIGNAL, None, params)

    return points
