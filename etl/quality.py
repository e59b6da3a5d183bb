"""
Data quality gate.

Runs a fixed set of checks over a symbol's normalized bars and computed
indicators before load. NULL / RANGE / DUPLICATE checks block the symbol's
load when their failure ratio exceeds the threshold; CONTINUITY is advisory.
"""

import datetime
import logging
import math
from typing import List, Sequence

import numpy as np

from etl.errors import QualityBlockedError
from etl.normalizer import bar_violation
from models import (
    CheckKind,
    DailyBar,
    IndicatorKind,
    IndicatorPoint,
    QualityCheckResult,
    QualityVerdict,
    Verdict,
)

logger = logging.getLogger(__name__)

PRICES_TABLE = "daily_prices"
INDICATORS_TABLE = "technical_indicators"
BLOCKING_CHECKS = (CheckKind.NULL_CHECK, CheckKind.RANGE_CHECK, CheckKind.DUPLICATE_CHECK)
MAX_DETAILS = 20


def _result(symbol, table, kind, checked, failures, description) -> QualityCheckResult:
    return QualityCheckResult(
        symbol=symbol,
        target_table=table,
        check_kind=kind,
        records_checked=checked,
        records_failed=len(failures),
        blocking=kind in BLOCKING_CHECKS,
        description=description,
        details=failures[:MAX_DETAILS],
    )


class QualityGate:
    """
    Evaluates quality checks and decides whether a symbol batch may load.

    :param threshold: highest tolerated failure ratio for blocking checks
                      (0.0 means zero tolerance)
    :param max_gap_days: consecutive missing weekdays before CONTINUITY flags
    """

    def __init__(self, threshold: float = 0.0, max_gap_days: int = 10):
        self.threshold = threshold
        self.max_gap_days = max_gap_days

    # ------------------------------------------------------------------
    # daily_prices checks
    # ------------------------------------------------------------------

    def check_bar_nulls(self, symbol: str, bars: Sequence[DailyBar]) -> QualityCheckResult:
        failures = []
        for bar in bars:
            missing = [f for f in ("close", "volume") if getattr(bar, f) is None]
            if missing:
                failures.append(f"{bar.trade_date}: null {', '.join(missing)}")
        return _result(symbol, PRICES_TABLE, CheckKind.NULL_CHECK, len(bars), failures,
                       "close and volume are not null")

    def check_bar_ranges(self, symbol: str, bars: Sequence[DailyBar]) -> QualityCheckResult:
        failures = []
        for bar in bars:
            violation = bar_violation(bar.open, bar.high, bar.low, bar.close, bar.volume)
            if violation:
                failures.append(f"{bar.trade_date}: {violation[1]}")
        return _result(symbol, PRICES_TABLE, CheckKind.RANGE_CHECK, len(bars), failures,
                       "prices positive, high/low bound open/close, volume non-negative")

    def check_bar_duplicates(self, symbol: str, bars: Sequence[DailyBar]) -> QualityCheckResult:
        seen = set()
        failures = []
        for bar in bars:
            key = (bar.symbol, bar.trade_date)
            if key in seen:
                failures.append(f"{bar.trade_date}: duplicate bar")
            seen.add(key)
        return _result(symbol, PRICES_TABLE, CheckKind.DUPLICATE_CHECK, len(bars), failures,
                       "one bar per (symbol, trade_date)")

    def check_continuity(self, symbol: str, bars: Sequence[DailyBar]) -> QualityCheckResult:
        failures = []
        dates = sorted(bar.trade_date for bar in bars)
        for prev, cur in zip(dates, dates[1:]):
            missing = int(np.busday_count(prev + datetime.timedelta(days=1), cur))
            if missing > self.max_gap_days:
                failures.append(f"{prev} -> {cur}: {missing} trading days missing")
        return _result(symbol, PRICES_TABLE, CheckKind.CONTINUITY_CHECK, max(len(dates) - 1, 0),
                       failures, f"no gap longer than {self.max_gap_days} trading days")

    # ------------------------------------------------------------------
    # technical_indicators checks
    # ------------------------------------------------------------------

    def check_indicator_nulls(self, symbol: str, points: Sequence[IndicatorPoint]) -> QualityCheckResult:
        failures = [
            f"{p.trade_date} {p.kind.value}({p.params}): value {p.value}"
            for p in points
            if p.value is None or not math.isfinite(p.value)
        ]
        return _result(symbol, INDICATORS_TABLE, CheckKind.NULL_CHECK, len(points), failures,
                       "indicator values present and finite")

    def check_indicator_ranges(self, symbol: str, points: Sequence[IndicatorPoint]) -> QualityCheckResult:
        oscillators = [p for p in points if p.kind == IndicatorKind.RSI]
        failures = [
            f"{p.trade_date} RSI({p.params}): {p.value}"
            for p in oscillators
            if not 0.0 <= p.value <= 100.0
        ]
        return _result(symbol, INDICATORS_TABLE, CheckKind.RANGE_CHECK, len(oscillators), failures,
                       "RSI within [0, 100]")

    def check_indicator_duplicates(self, symbol: str, points: Sequence[IndicatorPoint]) -> QualityCheckResult:
        seen = set()
        failures = []
        for p in points:
            key = (p.symbol, p.trade_date, p.kind, p.params)
            if key in seen:
                failures.append(f"{p.trade_date} {p.kind.value}({p.params}): duplicate")
            seen.add(key)
        return _result(symbol, INDICATORS_TABLE, CheckKind.DUPLICATE_CHECK, len(points), failures,
                       "one value per (symbol, date, kind, period)")

    # ------------------------------------------------------------------
    # Verdict
    # ------------------------------------------------------------------

    def evaluate(
        self,
        symbol: str,
        bars: Sequence[DailyBar],
        indicators: Sequence[IndicatorPoint] = (),
    ) -> QualityVerdict:
        results: List[QualityCheckResult] = [
            self.check_bar_nulls(symbol, bars),
            self.check_bar_ranges(symbol, bars),
            self.check_bar_duplicates(symbol, bars),
            self.check_continuity(symbol, bars),
            self.check_indicator_nulls(symbol, indicators),
            self.check_indicator_ranges(symbol, indicators),
            self.check_indicator_duplicates(symbol, indicators),
        ]

        blocked_by = [
            f"{r.target_table}.{r.check_kind.value}"
            for r in results
            if r.blocking and r.failure_ratio > self.threshold
        ]
        for r in results:
            if not r.blocking and r.records_failed:
                logger.warning(f"{symbol}: advisory {r.check_kind.value} flagged {r.records_failed} gap(s)")

        return QualityVerdict(
            symbol=symbol,
            threshold=self.threshold,
            verdict=Verdict.BLOCKED if blocked_by else Verdict.PASSED,
            results=results,
            blocked_by=blocked_by,
        )

    def enforce(self, verdict: QualityVerdict) -> None:
        """Raise QualityBlockedError if the verdict blocks the load."""
        if verdict.blocked:
            raise QualityBlockedError(verdict)
