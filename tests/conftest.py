"""Shared fixtures for the test suite."""

import datetime
import os
import tempfile

import pytest
from unittest.mock import MagicMock

# Keep pipeline.log out of the working tree
os.environ.setdefault("ETL_LOG_DIR", tempfile.mkdtemp(prefix="etl-logs-"))

from database import DatabaseManager


def weekdays(start: datetime.date, count: int) -> list:
    """The first `count` Monday-Friday dates from start onwards."""
    days = []
    day = start
    while len(days) < count:
        if day.weekday() < 5:
            days.append(day)
        day += datetime.timedelta(days=1)
    return days


def make_raw_series(symbol, closes, start=datetime.date(2024, 1, 2)):
    """Raw provider records (string values) for consecutive weekdays."""
    records = []
    for day, close in zip(weekdays(start, len(closes)), closes):
        records.append({
            "symbol": symbol,
            "date": day.isoformat(),
            "open": f"{close:.2f}",
            "high": f"{close + 1:.2f}",
            "low": f"{close - 0.5:.2f}",
            "close": f"{close:.2f}",
            "adjusted_close": f"{close:.2f}",
            "volume": "1000000",
        })
    return records


@pytest.fixture
def db_path(tmp_path):
    """Path to a fresh SQLite DB with the schema created."""
    path = str(tmp_path / "test.db")
    DatabaseManager(db_path=path).close()
    return path


@pytest.fixture
def tmp_db(db_path):
    """Fresh DatabaseManager backed by a real SQLite DB in tmp_path."""
    db = DatabaseManager(db_path=db_path)
    yield db
    db.close()


@pytest.fixture
def raw_bar():
    """Factory fixture: call with overrides to get one raw provider record."""
    def _make(**overrides):
        record = {
            "symbol": "AAPL",
            "date": "2024-01-02",
            "open": "185.00",
            "high": "187.50",
            "low": "184.20",
            "close": "186.10",
            "adjusted_close": "185.90",
            "volume": "52000000",
        }
        record.update(overrides)
        return record
    return _make


@pytest.fixture
def raw_series():
    return make_raw_series


@pytest.fixture
def mock_provider():
    """Factory for a mocked EquityDataProvider serving fixed raw series per symbol."""
    def _make(series=None, overview=None):
        series = series or {}
        provider = MagicMock()
        provider.name = "MockProvider"
        provider.get_daily_bars.side_effect = (
            lambda ticker, start_date=None, end_date=None: [dict(r) for r in series.get(ticker, [])]
        )
        provider.get_overview.return_value = overview
        return provider
    return _make


@pytest.fixture
def mock_response():
    """Factory for mock HTTP responses."""
    def _make(status_code=200, json_data=None):
        resp = MagicMock()
        resp.status_code = status_code
        resp.json.return_value = json_data or {}
        return resp
    return _make
