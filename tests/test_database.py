"""Tests for DatabaseManager with real SQLite in tmpdir."""

import datetime
import sqlite3
from decimal import Decimal

import pytest

from etl.errors import StoreError
from models import (
    CheckKind,
    DailyBar,
    ExecutionRun,
    IndicatorKind,
    IndicatorPoint,
    MarketOverview,
    QualityCheckResult,
    RunStatus,
    Stock,
)


def _bar(day, close="100", **overrides):
    fields = dict(symbol="AAPL", trade_date=day, open=Decimal(close), high=Decimal(close) + 1,
                  low=Decimal(close) - 1, close=Decimal(close), volume=1000)
    fields.update(overrides)
    return DailyBar(**fields)


D1 = datetime.date(2024, 1, 2)
D2 = datetime.date(2024, 1, 3)


# ---------------------------------------------------------------------------
# Stocks
# ---------------------------------------------------------------------------

class TestStocks:
    def test_upsert_and_get(self, tmp_db):
        tmp_db.upsert_stocks([Stock(symbol="aapl", company_name="Apple Inc.")])
        row = tmp_db.get_stock("AAPL")
        assert row["company_name"] == "Apple Inc."
        assert row["is_active"] == 1

    def test_blank_metadata_keeps_existing(self, tmp_db):
        tmp_db.upsert_stocks([Stock(symbol="AAPL", company_name="Apple Inc.", sector="Technology")])
        tmp_db.upsert_stocks([Stock(symbol="AAPL")])
        row = tmp_db.get_stock("AAPL")
        assert row["company_name"] == "Apple Inc."
        assert row["sector"] == "Technology"

    def test_ensure_stock_idempotent(self, tmp_db):
        first = tmp_db.ensure_stock("MSFT")
        assert tmp_db.ensure_stock("msft") == first
        assert tmp_db.count_rows("stocks") == 1

    def test_deactivate_keeps_row(self, tmp_db):
        tmp_db.upsert_stocks([Stock(symbol="AAPL"), Stock(symbol="IBM")])
        assert tmp_db.deactivate_stock("IBM") is True
        assert tmp_db.get_active_symbols() == ["AAPL"]
        assert tmp_db.get_stock("IBM") is not None
        assert tmp_db.deactivate_stock("NOPE") is False


# ---------------------------------------------------------------------------
# Daily prices
# ---------------------------------------------------------------------------

class TestDailyPrices:
    def test_insert_then_update_counts(self, tmp_db):
        with tmp_db.transaction():
            stock_id = tmp_db.ensure_stock("AAPL")
            assert tmp_db.upsert_daily_prices(stock_id, [_bar(D1), _bar(D2)]) == (2, 0)
        with tmp_db.transaction():
            assert tmp_db.upsert_daily_prices(stock_id, [_bar(D2, close="105")]) == (0, 1)
        rows = tmp_db.get_daily_prices("AAPL")
        assert len(rows) == 2
        assert rows[1]["close_price"] == pytest.approx(105.0)

    def test_empty_batch(self, tmp_db):
        assert tmp_db.upsert_daily_prices(1, []) == (0, 0)

    def test_check_constraint_rolls_back(self, tmp_db):
        stock_id = tmp_db.ensure_stock("AAPL")
        tmp_db.conn.commit()
        # Bypass the model to hit the table constraint directly
        bad = _bar(D2).model_copy(update={"close": Decimal("-1")})
        with pytest.raises(StoreError):
            with tmp_db.transaction():
                tmp_db.upsert_daily_prices(stock_id, [_bar(D1)])
                tmp_db.upsert_daily_prices(stock_id, [bad])
        assert tmp_db.count_rows("daily_prices") == 0

    def test_close_history(self, tmp_db):
        assert tmp_db.get_close_history("AAPL", D2) == []
        with tmp_db.transaction():
            stock_id = tmp_db.ensure_stock("AAPL")
            tmp_db.upsert_daily_prices(stock_id, [_bar(D2, close="101.5"), _bar(D1, close="100")])
        assert tmp_db.get_close_history("aapl", D2) == [100.0]
        assert tmp_db.get_close_history("AAPL", datetime.date(2024, 1, 4)) == [100.0, 101.5]

    def test_recompute_daily_returns(self, tmp_db):
        with tmp_db.transaction():
            stock_id = tmp_db.ensure_stock("AAPL")
            tmp_db.upsert_daily_prices(stock_id, [_bar(D1, close="100"), _bar(D2, close="110")])
        with tmp_db.transaction():
            n = tmp_db.recompute_daily_returns(stock_id, D1)
        assert n == 2
        rows = tmp_db.get_daily_prices("AAPL")
        assert rows[0]["daily_return"] is None
        assert rows[1]["daily_return"] == pytest.approx(0.1)


# ---------------------------------------------------------------------------
# Indicators and overview
# ---------------------------------------------------------------------------

class TestIndicators:
    def _macd(self, day, value):
        return IndicatorPoint(symbol="AAPL", trade_date=day, kind=IndicatorKind.MACD,
                              period=None, params="12,26,9", value=value)

    def test_null_period_upserts_in_place(self, tmp_db):
        with tmp_db.transaction():
            stock_id = tmp_db.ensure_stock("AAPL")
            assert tmp_db.upsert_indicators(stock_id, [self._macd(D1, 1.5)]) == (1, 0)
        with tmp_db.transaction():
            assert tmp_db.upsert_indicators(stock_id, [self._macd(D1, 2.5)]) == (0, 1)
        rows = tmp_db.get_indicators("AAPL", "MACD")
        assert len(rows) == 1
        assert rows[0]["time_period"] is None
        assert rows[0]["indicator_value"] == pytest.approx(2.5)

    def test_periods_are_distinct_keys(self, tmp_db):
        points = [
            IndicatorPoint(symbol="AAPL", trade_date=D1, kind=IndicatorKind.SMA, period=n, params=str(n), value=1.0)
            for n in (10, 20)
        ]
        with tmp_db.transaction():
            stock_id = tmp_db.ensure_stock("AAPL")
            assert tmp_db.upsert_indicators(stock_id, points) == (2, 0)
        assert tmp_db.count_rows("technical_indicators") == 2


class TestMarketOverview:
    def test_upsert_and_metadata_refresh(self, tmp_db):
        overview = MarketOverview(symbol="AAPL", overview_date=D1, company_name="Apple Inc.",
                                  sector="Technology", market_cap=3_000_000_000_000, pe_ratio=29.5)
        with tmp_db.transaction():
            stock_id = tmp_db.ensure_stock("AAPL")
            assert tmp_db.upsert_market_overview(stock_id, overview) == (1, 0)
            tmp_db.update_stock_metadata(stock_id, overview)
        with tmp_db.transaction():
            assert tmp_db.upsert_market_overview(stock_id, overview) == (0, 1)
        assert tmp_db.get_stock("AAPL")["sector"] == "Technology"
        assert tmp_db.count_rows("market_overview") == 1


# ---------------------------------------------------------------------------
# Execution and quality logs
# ---------------------------------------------------------------------------

class TestExecutionLog:
    def test_create_update(self, tmp_db):
        run = ExecutionRun(server_name="host", since_date=D1)
        run.run_id = tmp_db.create_execution(run)
        row = tmp_db.get_execution(run.run_id)
        assert row["status"] == "RUNNING"
        assert row["since_date"] == "2024-01-02"

        run.records_read = 10
        run.finish(RunStatus.WARNING, "1 records rejected")
        tmp_db.update_execution(run)
        row = tmp_db.get_execution(run.run_id)
        assert row["status"] == "WARNING"
        assert row["records_read"] == 10
        assert row["end_time"] is not None
        assert row["duration_seconds"] >= 0

    def test_status_check_constraint(self, tmp_db):
        with pytest.raises(StoreError):
            tmp_db._commit(
                "INSERT INTO etl_execution_log (job_name, start_time, status) VALUES (?, ?, ?)",
                ("job", "2024-01-02 00:00:00", "BOGUS"),
            )

    def test_execution_summary_view(self, tmp_db):
        for status in (RunStatus.SUCCESS, RunStatus.WARNING, RunStatus.FAILED):
            run = ExecutionRun()
            run.run_id = tmp_db.create_execution(run)
            run.finish(status)
            tmp_db.update_execution(run)
        row = tmp_db.query("SELECT * FROM execution_summary")[0]
        assert row["total_executions"] == 3
        assert row["successful_runs"] == 1
        assert row["warning_runs"] == 1
        assert row["failed_runs"] == 1


class TestQualityLog:
    def test_insert_and_read(self, tmp_db):
        run = ExecutionRun()
        run.run_id = tmp_db.create_execution(run)
        result = QualityCheckResult(symbol="AAPL", target_table="daily_prices", check_kind=CheckKind.NULL_CHECK,
                                    records_checked=4, records_failed=1, details=["2024-01-02: null volume"])
        assert tmp_db.insert_quality_results(run.run_id, [result]) == 1
        rows = tmp_db.get_quality_results(run.run_id)
        assert rows[0]["records_passed"] == 3
        assert rows[0]["failure_percentage"] == pytest.approx(25.0)
        assert rows[0]["is_blocking"] == 1
        assert "null volume" in rows[0]["error_details"]


class TestViewsAndHelpers:
    def test_latest_prices_view(self, tmp_db):
        with tmp_db.transaction():
            stock_id = tmp_db.ensure_stock("AAPL")
            tmp_db.upsert_daily_prices(stock_id, [_bar(D1, close="100"), _bar(D2, close="101")])
        rows = tmp_db.query("SELECT * FROM latest_prices")
        assert len(rows) == 1
        assert rows[0]["price_date"] == "2024-01-03"

    def test_count_rows_rejects_unknown_table(self, tmp_db):
        with pytest.raises(ValueError):
            tmp_db.count_rows("sqlite_master; DROP TABLE stocks")

    def test_unopenable_path_raises_store_error(self, tmp_path):
        from database import DatabaseManager
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(StoreError):
            DatabaseManager(db_path=str(blocker / "sub" / "test.db"))
