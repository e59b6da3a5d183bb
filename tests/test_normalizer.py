"""Tests for the raw bar normalizer."""

import datetime
from decimal import Decimal

import pytest

from etl.errors import ValidationError
from etl.normalizer import bar_violation, coerce_record, derive_fields, normalize_bars, to_date, to_decimal, to_volume
from models import RejectReason


class TestCoercion:
    def test_decimal_from_string(self):
        assert to_decimal("185.10") == Decimal("185.10")

    def test_decimal_strips_thousands_separator(self):
        assert to_decimal("1,234.5") == Decimal("1234.5")

    @pytest.mark.parametrize("value", [None, "", "None", "null", "-", "NaN", "abc", "inf", True])
    def test_decimal_unparsable_is_none(self, value):
        assert to_decimal(value) is None

    def test_volume_truncates(self):
        assert to_volume("1000.7") == 1000

    def test_date_accepts_timestamp_string(self):
        assert to_date("2024-01-02 00:00:00") == datetime.date(2024, 1, 2)

    def test_date_invalid(self):
        assert to_date("02/01/2024") is None


class TestBarViolation:
    def test_valid_bar(self):
        d = Decimal
        assert bar_violation(d("10"), d("11"), d("9"), d("10.5"), 100) is None

    def test_non_positive_price(self):
        reason, _ = bar_violation(None, None, None, Decimal("-5"), 100)
        assert reason == RejectReason.NON_POSITIVE_PRICE

    def test_high_below_low(self):
        d = Decimal
        reason, _ = bar_violation(d("10"), d("9"), d("11"), d("10"), 100)
        assert reason == RejectReason.HIGH_BELOW_LOW

    def test_close_above_high(self):
        d = Decimal
        reason, _ = bar_violation(d("10"), d("11"), d("9"), d("12"), 100)
        assert reason == RejectReason.HIGH_LOW_INCONSISTENT

    def test_negative_volume(self):
        reason, _ = bar_violation(None, None, None, Decimal("10"), -1)
        assert reason == RejectReason.NEGATIVE_VOLUME

    def test_null_components_skipped(self):
        assert bar_violation(None, None, None, Decimal("10"), None) is None


class TestCoerceRecord:
    def test_missing_close(self, raw_bar):
        with pytest.raises(ValidationError) as exc:
            coerce_record("AAPL", datetime.date(2024, 1, 2), raw_bar(close=""))
        assert exc.value.reason == RejectReason.MISSING_CLOSE
        assert exc.value.trade_date == "2024-01-02"

    def test_builds_bar(self, raw_bar):
        bar = coerce_record("AAPL", datetime.date(2024, 1, 2), raw_bar())
        assert bar.close == Decimal("186.10")
        assert bar.volume == 52000000
        assert bar.daily_return is None


class TestNormalizeBars:
    def test_orders_by_date(self, raw_bar):
        result = normalize_bars("AAPL", [
            raw_bar(date="2024-01-04"),
            raw_bar(date="2024-01-02"),
            raw_bar(date="2024-01-03"),
        ])
        assert [b.trade_date.day for b in result.bars] == [2, 3, 4]
        assert result.records_read == 3
        assert result.rejected == 0

    def test_duplicate_date_last_wins(self, raw_bar):
        result = normalize_bars("AAPL", [
            raw_bar(close="186.10"),
            raw_bar(close="186.50"),
        ])
        assert len(result.bars) == 1
        assert result.bars[0].close == Decimal("186.50")
        assert result.duplicates == 1

    def test_negative_close_rejects_one_record(self, raw_series):
        raw = raw_series("AAPL", [100, 101, 102])
        raw[1]["close"] = "-5"
        result = normalize_bars("AAPL", raw)
        assert result.rejected == 1
        assert result.rejections[0].reason == RejectReason.NON_POSITIVE_PRICE
        assert len(result.bars) == 2

    def test_symbol_mismatch(self, raw_bar):
        result = normalize_bars("AAPL", [raw_bar(), raw_bar(symbol="MSFT", date="2024-01-03")])
        assert len(result.bars) == 1
        assert result.rejections[0].reason == RejectReason.SYMBOL_MISMATCH

    def test_invalid_date(self, raw_bar):
        result = normalize_bars("AAPL", [raw_bar(date="not-a-date")])
        assert result.bars == []
        assert result.rejections[0].reason == RejectReason.INVALID_DATE

    def test_symbol_case_normalized(self, raw_bar):
        result = normalize_bars("aapl", [raw_bar(symbol="aapl")])
        assert result.symbol == "AAPL"
        assert result.bars[0].symbol == "AAPL"

    def test_derived_fields(self, raw_bar):
        result = normalize_bars("AAPL", [
            raw_bar(date="2024-01-02", open="100", high="101", low="99", close="100"),
            raw_bar(date="2024-01-03", open="100", high="111", low="99", close="110"),
        ])
        first, second = result.bars
        assert first.daily_return is None
        assert second.daily_return == Decimal("0.100000")
        assert second.price_change == Decimal("10")
        assert second.price_change_pct == Decimal("10.0000")

    def test_derived_return_from_prior_close(self, raw_bar):
        bars = normalize_bars("AAPL", [raw_bar(open="110", high="111", low="109", close="110")]).bars
        derive_fields(bars, prev_close=Decimal("100"))
        assert bars[0].daily_return == Decimal("0.100000")
        assert bars[0].price_change == Decimal("0")

    def test_return_skips_rejected_bar(self, raw_series):
        raw = raw_series("AAPL", [100, 50, 110])
        raw[1]["close"] = None
        result = normalize_bars("AAPL", raw)
        # 110 vs 100: the rejected day is simply absent
        assert result.bars[1].daily_return == Decimal("0.100000")

    def test_empty_batch(self):
        result = normalize_bars("AAPL", [])
        assert result.bars == []
        assert result.records_read == 0
