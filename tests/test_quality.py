"""Tests for the data quality gate."""

import datetime
from decimal import Decimal

import pytest

from etl.errors import QualityBlockedError
from etl.quality import QualityGate
from models import CheckKind, DailyBar, IndicatorKind, IndicatorPoint, Verdict


def _bar(day, close="100", **overrides):
    fields = dict(
        symbol="AAPL",
        trade_date=day,
        open=Decimal(close),
        high=Decimal(close) + 1,
        low=Decimal(close) - 1,
        close=Decimal(close),
        volume=1000,
    )
    fields.update(overrides)
    return DailyBar(**fields)


def _rsi(day, value):
    return IndicatorPoint(symbol="AAPL", trade_date=day, kind=IndicatorKind.RSI, period=14, params="14", value=value)


def _result(verdict, table, kind):
    return next(r for r in verdict.results if r.target_table == table and r.check_kind == kind)


D1 = datetime.date(2024, 1, 2)
D2 = datetime.date(2024, 1, 3)
D3 = datetime.date(2024, 1, 4)


class TestBarChecks:
    def test_clean_batch_passes(self):
        verdict = QualityGate().evaluate("AAPL", [_bar(D1), _bar(D2), _bar(D3)])
        assert verdict.verdict == Verdict.PASSED
        assert verdict.blocked_by == []
        assert len(verdict.results) == 7

    def test_null_volume_blocks_at_zero_threshold(self):
        verdict = QualityGate().evaluate("AAPL", [_bar(D1), _bar(D2, volume=None)])
        assert verdict.blocked
        assert verdict.blocked_by == ["daily_prices.NULL_CHECK"]
        null = _result(verdict, "daily_prices", CheckKind.NULL_CHECK)
        assert null.records_checked == 2
        assert null.records_failed == 1
        assert null.records_passed == 1

    def test_threshold_tolerates_ratio(self):
        bars = [_bar(D1), _bar(D2), _bar(D3, volume=None)]
        assert not QualityGate(threshold=0.5).evaluate("AAPL", bars).blocked
        assert QualityGate(threshold=0.2).evaluate("AAPL", bars).blocked

    def test_range_violation(self):
        bad = _bar(D2, high=Decimal("90"))
        verdict = QualityGate().evaluate("AAPL", [_bar(D1), bad])
        assert "daily_prices.RANGE_CHECK" in verdict.blocked_by

    def test_duplicate_bars(self):
        verdict = QualityGate().evaluate("AAPL", [_bar(D1), _bar(D1)])
        assert "daily_prices.DUPLICATE_CHECK" in verdict.blocked_by

    def test_continuity_is_advisory(self):
        later = datetime.date(2024, 3, 1)
        verdict = QualityGate(max_gap_days=10).evaluate("AAPL", [_bar(D1), _bar(later)])
        continuity = _result(verdict, "daily_prices", CheckKind.CONTINUITY_CHECK)
        assert continuity.records_failed == 1
        assert not continuity.blocking
        assert not verdict.blocked

    def test_weekend_is_not_a_gap(self):
        friday, monday = datetime.date(2024, 1, 5), datetime.date(2024, 1, 8)
        verdict = QualityGate(max_gap_days=0).evaluate("AAPL", [_bar(friday), _bar(monday)])
        assert _result(verdict, "daily_prices", CheckKind.CONTINUITY_CHECK).records_failed == 0

    def test_empty_batch_passes(self):
        verdict = QualityGate().evaluate("AAPL", [])
        assert verdict.verdict == Verdict.PASSED
        assert all(r.failure_ratio == 0.0 for r in verdict.results)


class TestIndicatorChecks:
    def test_rsi_out_of_range(self):
        verdict = QualityGate().evaluate("AAPL", [_bar(D1)], [_rsi(D1, 101.0)])
        assert verdict.blocked_by == ["technical_indicators.RANGE_CHECK"]

    def test_nan_value(self):
        verdict = QualityGate().evaluate("AAPL", [_bar(D1)], [_rsi(D1, float("nan"))])
        assert "technical_indicators.NULL_CHECK" in verdict.blocked_by

    def test_duplicate_points(self):
        verdict = QualityGate().evaluate("AAPL", [_bar(D1)], [_rsi(D1, 50.0), _rsi(D1, 51.0)])
        assert "technical_indicators.DUPLICATE_CHECK" in verdict.blocked_by

    def test_same_date_different_params_not_duplicate(self):
        other = IndicatorPoint(symbol="AAPL", trade_date=D1, kind=IndicatorKind.SMA, period=20, params="20", value=1.0)
        longer = IndicatorPoint(symbol="AAPL", trade_date=D1, kind=IndicatorKind.SMA, period=50, params="50", value=1.0)
        assert not QualityGate().evaluate("AAPL", [_bar(D1)], [other, longer]).blocked


class TestEnforce:
    def test_raises_when_blocked(self):
        gate = QualityGate()
        verdict = gate.evaluate("AAPL", [_bar(D1, volume=None)])
        with pytest.raises(QualityBlockedError) as exc:
            gate.enforce(verdict)
        assert exc.value.verdict is verdict
        assert "AAPL" in str(exc.value)

    def test_passes_silently(self):
        gate = QualityGate()
        gate.enforce(gate.evaluate("AAPL", [_bar(D1)]))
