"""
SQLite database layer for the daily equity ETL.

Provides the relational store for stocks, daily bars, technical indicators,
fundamentals and the run/quality audit logs, plus the read-only views the
dashboard pulls from.

Market-data writes (bars, indicators, overview) never commit on their own: the
load coordinator wraps one symbol batch in transaction() so the batch commits
or rolls back as a unit. Bookkeeping writes (stocks, run log, quality log)
commit immediately.

Usage:
    from database import DatabaseManager
    db = DatabaseManager()
    with db.transaction():
        stock_id = db.ensure_stock("AAPL")
        inserted, updated = db.upsert_daily_prices(stock_id, bars)
    db.close()
"""

import json
import os
import sqlite3
import sys
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Iterable, Optional

sys.path.append(str(Path(__file__).parent))

from etl.config import settings
from etl.errors import StoreError
from models import DailyBar, ExecutionRun, IndicatorPoint, MarketOverview, QualityCheckResult, Stock


DEFAULT_DB_PATH = settings.DB_PATH


# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

SCHEMA_SQL = """
-- Reference data
CREATE TABLE IF NOT EXISTS stocks (
    stock_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol        TEXT NOT NULL UNIQUE,
    company_name  TEXT DEFAULT '',
    sector        TEXT DEFAULT '',
    industry      TEXT DEFAULT '',
    exchange      TEXT DEFAULT '',
    currency      TEXT DEFAULT 'USD',
    is_active     INTEGER DEFAULT 1,
    created_at    TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at    TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Daily OHLCV bars
CREATE TABLE IF NOT EXISTS daily_prices (
    price_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    stock_id          INTEGER NOT NULL REFERENCES stocks(stock_id) ON DELETE CASCADE,
    price_date        TEXT NOT NULL,
    open_price        REAL,
    high_price        REAL,
    low_price         REAL,
    close_price       REAL NOT NULL,
    adjusted_close    REAL,
    volume            INTEGER,
    daily_return      REAL,
    price_change      REAL,
    price_change_pct  REAL,
    created_at        TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at        TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(stock_id, price_date),
    CONSTRAINT chk_positive_prices
        CHECK (open_price > 0 AND high_price > 0 AND low_price > 0 AND close_price > 0),
    CONSTRAINT chk_high_low CHECK (high_price >= low_price),
    CONSTRAINT chk_high_is_highest CHECK (high_price >= open_price AND high_price >= close_price),
    CONSTRAINT chk_low_is_lowest CHECK (low_price <= open_price AND low_price <= close_price),
    CONSTRAINT chk_positive_volume CHECK (volume >= 0)
);

-- Indicators; params_key is the canonical period/parameter string
-- ('20' for SMA(20), '12,26,9' for MACD) so MACD rows with a NULL
-- time_period still collide on reload.
CREATE TABLE IF NOT EXISTS technical_indicators (
    indicator_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    stock_id         INTEGER NOT NULL REFERENCES stocks(stock_id) ON DELETE CASCADE,
    indicator_date   TEXT NOT NULL,
    indicator_type   TEXT NOT NULL,
    indicator_value  REAL NOT NULL,
    time_period      INTEGER,
    params_key       TEXT NOT NULL,
    series_type      TEXT DEFAULT 'close',
    created_at       TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at       TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(stock_id, indicator_date, indicator_type, params_key)
);

-- Fundamentals
CREATE TABLE IF NOT EXISTS market_overview (
    overview_id         INTEGER PRIMARY KEY AUTOINCREMENT,
    stock_id            INTEGER NOT NULL REFERENCES stocks(stock_id) ON DELETE CASCADE,
    overview_date       TEXT NOT NULL,
    market_cap          INTEGER,
    pe_ratio            REAL,
    peg_ratio           REAL,
    book_value          REAL,
    dividend_per_share  REAL,
    dividend_yield      REAL,
    eps                 REAL,
    revenue_per_share   REAL,
    profit_margin       REAL,
    week_52_high        REAL,
    week_52_low         REAL,
    moving_avg_50       REAL,
    moving_avg_200      REAL,
    shares_outstanding  INTEGER,
    created_at          TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at          TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(stock_id, overview_date)
);

-- Audit
CREATE TABLE IF NOT EXISTS etl_execution_log (
    execution_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    job_name            TEXT NOT NULL,
    transformation_name TEXT,
    execution_type      TEXT DEFAULT 'JOB',
    start_time          TEXT NOT NULL,
    end_time            TEXT,
    duration_seconds    INTEGER CHECK (duration_seconds IS NULL OR duration_seconds >= 0),
    status              TEXT NOT NULL CHECK (status IN ('RUNNING', 'SUCCESS', 'FAILED', 'WARNING')),
    records_read        INTEGER DEFAULT 0,
    records_processed   INTEGER DEFAULT 0,
    records_inserted    INTEGER DEFAULT 0,
    records_updated     INTEGER DEFAULT 0,
    records_rejected    INTEGER DEFAULT 0,
    error_message       TEXT,
    error_stacktrace    TEXT,
    server_name         TEXT,
    since_date          TEXT,
    until_date          TEXT,
    created_at          TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS data_quality_log (
    quality_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    execution_id        INTEGER REFERENCES etl_execution_log(execution_id),
    symbol              TEXT,
    table_name          TEXT NOT NULL,
    check_type          TEXT NOT NULL,
    check_description   TEXT,
    records_checked     INTEGER,
    records_passed      INTEGER,
    records_failed      INTEGER,
    failure_ratio       REAL,
    failure_percentage  REAL,
    is_blocking         INTEGER DEFAULT 1,
    error_details       TEXT,
    check_timestamp     TEXT DEFAULT CURRENT_TIMESTAMP
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_stocks_active ON stocks(is_active);
CREATE INDEX IF NOT EXISTS idx_daily_prices_date ON daily_prices(price_date);
CREATE INDEX IF NOT EXISTS idx_daily_prices_stock_date ON daily_prices(stock_id, price_date DESC);
CREATE INDEX IF NOT EXISTS idx_tech_indicators_composite
    ON technical_indicators(stock_id, indicator_type, indicator_date DESC);
CREATE INDEX IF NOT EXISTS idx_market_overview_date ON market_overview(overview_date);
CREATE INDEX IF NOT EXISTS idx_etl_log_job_name ON etl_execution_log(job_name);
CREATE INDEX IF NOT EXISTS idx_etl_log_start_time ON etl_execution_log(start_time DESC);
CREATE INDEX IF NOT EXISTS idx_quality_log_execution_id ON data_quality_log(execution_id);

-- Dashboard views (read-only rollups)
CREATE VIEW IF NOT EXISTS latest_prices AS
SELECT
    s.symbol,
    s.company_name,
    s.sector,
    dp.price_date,
    dp.close_price,
    dp.volume,
    dp.daily_return,
    dp.price_change_pct
FROM stocks s
JOIN daily_prices dp ON s.stock_id = dp.stock_id
JOIN (
    SELECT stock_id, MAX(price_date) AS max_date
    FROM daily_prices
    GROUP BY stock_id
) latest ON dp.stock_id = latest.stock_id AND dp.price_date = latest.max_date
WHERE s.is_active = 1
ORDER BY s.symbol;

CREATE VIEW IF NOT EXISTS stock_performance_summary AS
SELECT
    s.symbol,
    s.company_name,
    COUNT(dp.price_id)     AS trading_days,
    MIN(dp.price_date)     AS first_date,
    MAX(dp.price_date)     AS last_date,
    AVG(dp.close_price)    AS avg_price,
    MIN(dp.low_price)      AS period_low,
    MAX(dp.high_price)     AS period_high,
    AVG(dp.volume)         AS avg_volume,
    AVG(dp.daily_return)   AS avg_daily_return
FROM stocks s
LEFT JOIN daily_prices dp ON s.stock_id = dp.stock_id
WHERE s.is_active = 1
GROUP BY s.stock_id, s.symbol, s.company_name
ORDER BY s.symbol;

CREATE VIEW IF NOT EXISTS execution_summary AS
SELECT
    job_name,
    COUNT(*)                                              AS total_executions,
    SUM(CASE WHEN status = 'SUCCESS' THEN 1 ELSE 0 END)   AS successful_runs,
    SUM(CASE WHEN status = 'WARNING' THEN 1 ELSE 0 END)   AS warning_runs,
    SUM(CASE WHEN status = 'FAILED' THEN 1 ELSE 0 END)    AS failed_runs,
    AVG(duration_seconds)                                 AS avg_duration_seconds,
    MAX(start_time)                                       AS last_execution,
    SUM(records_processed)                                AS total_records_processed
FROM etl_execution_log
GROUP BY job_name
ORDER BY last_execution DESC;
"""

TABLES = (
    "stocks", "daily_prices", "technical_indicators", "market_overview",
    "etl_execution_log", "data_quality_log",
)


def _num(value) -> Optional[float]:
    """Decimal -> float for binding; None passes through."""
    return None if value is None else float(value)


class DatabaseManager:
    """SQLite database manager for the ETL pipeline."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH, timeout: int = settings.DB_TIMEOUT):
        self.db_path = db_path
        try:
            if os.path.dirname(db_path):
                os.makedirs(os.path.dirname(db_path), exist_ok=True)
            self.conn = sqlite3.connect(db_path, timeout=timeout)
            self.conn.execute("PRAGMA journal_mode=WAL")
            self.conn.execute("PRAGMA foreign_keys=ON")
            self.conn.row_factory = sqlite3.Row
            self._create_schema()
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"Cannot open store at {db_path}: {e}") from e

    def _create_schema(self):
        self.conn.executescript(SCHEMA_SQL)
        self.conn.commit()

    def close(self):
        self.conn.close()

    @contextmanager
    def transaction(self):
        """Commit everything written inside the block, or roll all of it back."""
        try:
            with self.conn:
                yield self
        except sqlite3.Error as e:
            raise StoreError(f"Transaction rolled back: {e}") from e

    def _commit(self, sql: str, params=()) -> sqlite3.Cursor:
        try:
            cur = self.conn.execute(sql, params)
            self.conn.commit()
            return cur
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StoreError(str(e)) from e

    # ------------------------------------------------------------------
    # Stocks
    # ------------------------------------------------------------------

    def upsert_stocks(self, stocks: list[Stock]) -> int:
        """Insert or refresh Stock records. Blank metadata never overwrites stored values."""
        sql = """
            INSERT INTO stocks
                (symbol, company_name, sector, industry, exchange, currency, is_active)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(symbol) DO UPDATE SET
                company_name = COALESCE(NULLIF(excluded.company_name, ''), stocks.company_name),
                sector       = COALESCE(NULLIF(excluded.sector, ''), stocks.sector),
                industry     = COALESCE(NULLIF(excluded.industry, ''), stocks.industry),
                exchange     = COALESCE(NULLIF(excluded.exchange, ''), stocks.exchange),
                currency     = COALESCE(NULLIF(excluded.currency, ''), stocks.currency),
                is_active    = excluded.is_active,
                updated_at   = CURRENT_TIMESTAMP
        """
        rows = [
            (s.symbol.upper(), s.company_name, s.sector, s.industry, s.exchange,
             s.currency, 1 if s.is_active else 0)
            for s in stocks
        ]
        try:
            self.conn.executemany(sql, rows)
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StoreError(str(e)) from e
        return len(rows)

    def ensure_stock(self, symbol: str) -> int:
        """Return stock_id for symbol, inserting a bare row if needed. Does not commit."""
        symbol = symbol.upper()
        self.conn.execute("INSERT OR IGNORE INTO stocks (symbol) VALUES (?)", (symbol,))
        return self.get_stock_id(symbol)

    def get_stock_id(self, symbol: str) -> Optional[int]:
        cur = self.conn.execute("SELECT stock_id FROM stocks WHERE symbol = ?", (symbol.upper(),))
        row = cur.fetchone()
        return row["stock_id"] if row else None

    def get_stock(self, symbol: str) -> dict | None:
        cur = self.conn.execute("SELECT * FROM stocks WHERE symbol = ?", (symbol.upper(),))
        row = cur.fetchone()
        return dict(row) if row else None

    def get_active_symbols(self) -> list[str]:
        cur = self.conn.execute("SELECT symbol FROM stocks WHERE is_active = 1 ORDER BY symbol")
        return [r["symbol"] for r in cur.fetchall()]

    def deactivate_stock(self, symbol: str) -> bool:
        """Soft-delete: keep the history, drop the symbol from the active universe."""
        cur = self._commit(
            "UPDATE stocks SET is_active = 0, updated_at = CURRENT_TIMESTAMP WHERE symbol = ?",
            (symbol.upper(),),
        )
        return cur.rowcount > 0

    def update_stock_metadata(self, stock_id: int, overview: MarketOverview) -> None:
        """Refresh descriptive columns from a fundamentals snapshot. Does not commit."""
        self.conn.execute(
            """
            UPDATE stocks SET
                company_name = COALESCE(NULLIF(?, ''), company_name),
                sector       = COALESCE(NULLIF(?, ''), sector),
                industry     = COALESCE(NULLIF(?, ''), industry),
                exchange     = COALESCE(NULLIF(?, ''), exchange),
                currency     = COALESCE(NULLIF(?, ''), currency),
                updated_at   = CURRENT_TIMESTAMP
            WHERE stock_id = ?
            """,
            (overview.company_name, overview.sector, overview.industry,
             overview.exchange, overview.currency, stock_id),
        )

    # ------------------------------------------------------------------
    # Daily prices
    # ------------------------------------------------------------------

    def upsert_daily_prices(self, stock_id: int, bars: list[DailyBar]) -> tuple[int, int]:
        """
        Upsert bars keyed on (stock_id, price_date). Does not commit.
        Returns (inserted, updated), told apart by the keys present beforehand.
        """
        if not bars:
            return 0, 0
        dates = [b.trade_date.isoformat() for b in bars]
        cur = self.conn.execute(
            "SELECT price_date FROM daily_prices WHERE stock_id = ? AND price_date BETWEEN ? AND ?",
            (stock_id, min(dates), max(dates)),
        )
        existing = {r["price_date"] for r in cur.fetchall()}

        sql = """
            INSERT INTO daily_prices
                (stock_id, price_date, open_price, high_price, low_price, close_price,
                 adjusted_close, volume, daily_return, price_change, price_change_pct)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(stock_id, price_date) DO UPDATE SET
                open_price       = excluded.open_price,
                high_price       = excluded.high_price,
                low_price        = excluded.low_price,
                close_price      = excluded.close_price,
                adjusted_close   = excluded.adjusted_close,
                volume           = excluded.volume,
                daily_return     = excluded.daily_return,
                price_change     = excluded.price_change,
                price_change_pct = excluded.price_change_pct,
                updated_at       = CURRENT_TIMESTAMP
        """
        params = [
            (stock_id, b.trade_date.isoformat(), _num(b.open), _num(b.high), _num(b.low),
             _num(b.close), _num(b.adjusted_close), b.volume, _num(b.daily_return),
             _num(b.price_change), _num(b.price_change_pct))
            for b in bars
        ]
        self.conn.executemany(sql, params)
        updated = len(set(dates) & existing)
        return len(set(dates)) - updated, updated

    def recompute_daily_returns(self, stock_id: int, from_date: date) -> int:
        """
        Recompute stored daily_return for every bar on or after from_date using
        the stored close of the preceding bar. Does not commit.
        """
        iso = from_date.isoformat()
        cur = self.conn.execute(
            """
            SELECT price_date, close_price FROM daily_prices
            WHERE stock_id = ? AND price_date >= COALESCE(
                (SELECT MAX(price_date) FROM daily_prices WHERE stock_id = ? AND price_date < ?), ?)
            ORDER BY price_date
            """,
            (stock_id, stock_id, iso, iso),
        )
        rows = cur.fetchall()
        updates = []
        prev_close = None
        for r in rows:
            if r["price_date"] >= iso:
                ret = round((r["close_price"] - prev_close) / prev_close, 6) if prev_close else None
                updates.append((ret, stock_id, r["price_date"]))
            prev_close = r["close_price"]
        self.conn.executemany(
            "UPDATE daily_prices SET daily_return = ?, updated_at = CURRENT_TIMESTAMP "
            "WHERE stock_id = ? AND price_date = ?",
            updates,
        )
        return len(updates)

    def get_daily_prices(self, symbol: str, since: Optional[date] = None) -> list[dict]:
        sql = """
            SELECT dp.* FROM daily_prices dp
            JOIN stocks s ON s.stock_id = dp.stock_id
            WHERE s.symbol = ? AND dp.price_date >= ?
            ORDER BY dp.price_date
        """
        cur = self.conn.execute(sql, (symbol.upper(), since.isoformat() if since else ""))
        return [dict(r) for r in cur.fetchall()]

    def get_close_history(self, symbol: str, before: date) -> list[float]:
        """Stored closes for a symbol dated strictly before `before`, oldest first."""
        try:
            cur = self.conn.execute(
                """
                SELECT dp.close_price FROM daily_prices dp
                JOIN stocks s ON s.stock_id = dp.stock_id
                WHERE s.symbol = ? AND dp.price_date < ?
                ORDER BY dp.price_date
                """,
                (symbol.upper(), before.isoformat()),
            )
            return [r["close_price"] for r in cur.fetchall()]
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    # ------------------------------------------------------------------
    # Technical indicators
    # ------------------------------------------------------------------

    def upsert_indicators(self, stock_id: int, points: list[IndicatorPoint]) -> tuple[int, int]:
        """Upsert indicator values keyed on (stock, date, type, params). Does not commit."""
        if not points:
            return 0, 0
        dates = [p.trade_date.isoformat() for p in points]
        cur = self.conn.execute(
            """
            SELECT indicator_date, indicator_type, params_key FROM technical_indicators
            WHERE stock_id = ? AND indicator_date BETWEEN ? AND ?
            """,
            (stock_id, min(dates), max(dates)),
        )
        existing = {(r["indicator_date"], r["indicator_type"], r["params_key"]) for r in cur.fetchall()}

        sql = """
            INSERT INTO technical_indicators
                (stock_id, indicator_date, indicator_type, indicator_value, time_period, params_key)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(stock_id, indicator_date, indicator_type, params_key) DO UPDATE SET
                indicator_value = excluded.indicator_value,
                time_period     = excluded.time_period,
                updated_at      = CURRENT_TIMESTAMP
        """
        params = [
            (stock_id, p.trade_date.isoformat(), p.kind.value, p.value, p.period, p.params)
            for p in points
        ]
        self.conn.executemany(sql, params)
        keys = {(p[1], p[2], p[5]) for p in params}
        updated = len(keys & existing)
        return len(keys) - updated, updated

    def get_indicators(self, symbol: str, kind: str = None) -> list[dict]:
        sql = """
            SELECT ti.* FROM technical_indicators ti
            JOIN stocks s ON s.stock_id = ti.stock_id
            WHERE s.symbol = ?
        """
        params = [symbol.upper()]
        if kind:
            sql += " AND ti.indicator_type = ?"
            params.append(kind)
        sql += " ORDER BY ti.indicator_date, ti.indicator_type, ti.params_key"
        cur = self.conn.execute(sql, params)
        return [dict(r) for r in cur.fetchall()]

    # ------------------------------------------------------------------
    # Market overview
    # ------------------------------------------------------------------

    def upsert_market_overview(self, stock_id: int, overview: MarketOverview) -> tuple[int, int]:
        """Upsert one fundamentals snapshot keyed on (stock_id, overview_date). Does not commit."""
        iso = overview.overview_date.isoformat()
        cur = self.conn.execute(
            "SELECT 1 FROM market_overview WHERE stock_id = ? AND overview_date = ?",
            (stock_id, iso),
        )
        existed = cur.fetchone() is not None

        columns = [
            "market_cap", "pe_ratio", "peg_ratio", "book_value", "dividend_per_share",
            "dividend_yield", "eps", "revenue_per_share", "profit_margin", "week_52_high",
            "week_52_low", "moving_avg_50", "moving_avg_200", "shares_outstanding",
        ]
        updates = ",\n                ".join(f"{c} = excluded.{c}" for c in columns)
        sql = f"""
            INSERT INTO market_overview (stock_id, overview_date, {", ".join(columns)})
            VALUES ({", ".join("?" * (len(columns) + 2))})
            ON CONFLICT(stock_id, overview_date) DO UPDATE SET
                {updates},
                updated_at = CURRENT_TIMESTAMP
        """
        self.conn.execute(sql, [stock_id, iso] + [getattr(overview, c) for c in columns])
        return (0, 1) if existed else (1, 0)

    # ------------------------------------------------------------------
    # Execution log
    # ------------------------------------------------------------------

    def create_execution(self, run: ExecutionRun) -> int:
        """Insert a RUNNING execution row and return its id."""
        cur = self._commit(
            """
            INSERT INTO etl_execution_log
                (job_name, execution_type, start_time, status, server_name, since_date, until_date)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (run.job_name, run.execution_type, run.start_time.isoformat(sep=" "),
             run.status.value, run.server_name,
             run.since_date.isoformat() if run.since_date else None,
             run.until_date.isoformat() if run.until_date else None),
        )
        return cur.lastrowid

    def update_execution(self, run: ExecutionRun) -> None:
        """Write counters, status and timing for an execution row."""
        self._commit(
            """
            UPDATE etl_execution_log SET
                status = ?, end_time = ?, duration_seconds = ?,
                records_read = ?, records_processed = ?, records_inserted = ?,
                records_updated = ?, records_rejected = ?,
                error_message = ?, error_stacktrace = ?
            WHERE execution_id = ?
            """,
            (run.status.value,
             run.end_time.isoformat(sep=" ") if run.end_time else None,
             run.duration_seconds,
             run.records_read, run.records_processed, run.records_inserted,
             run.records_updated, run.records_rejected,
             run.error_message, run.error_stacktrace, run.run_id),
        )

    def get_execution(self, execution_id: int) -> dict | None:
        cur = self.conn.execute("SELECT * FROM etl_execution_log WHERE execution_id = ?", (execution_id,))
        row = cur.fetchone()
        return dict(row) if row else None

    # ------------------------------------------------------------------
    # Data quality log
    # ------------------------------------------------------------------

    def insert_quality_results(self, execution_id: Optional[int], results: Iterable[QualityCheckResult]) -> int:
        """Append quality check rows for a run. Commits immediately."""
        sql = """
            INSERT INTO data_quality_log
                (execution_id, symbol, table_name, check_type, check_description,
                 records_checked, records_passed, records_failed, failure_ratio,
                 failure_percentage, is_blocking, error_details)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        rows = [
            (execution_id, r.symbol, r.target_table, r.check_kind.value, r.description,
             r.records_checked, r.records_passed, r.records_failed, r.failure_ratio,
             round(r.failure_ratio * 100, 2), 1 if r.blocking else 0,
             json.dumps(r.details) if r.details else None)
            for r in results
        ]
        try:
            self.conn.executemany(sql, rows)
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise StoreError(str(e)) from e
        return len(rows)

    def get_quality_results(self, execution_id: int) -> list[dict]:
        cur = self.conn.execute(
            "SELECT * FROM data_quality_log WHERE execution_id = ? ORDER BY quality_id",
            (execution_id,),
        )
        return [dict(r) for r in cur.fetchall()]

    # ------------------------------------------------------------------
    # Generic query
    # ------------------------------------------------------------------

    def count_rows(self, table: str) -> int:
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")
        cur = self.conn.execute(f"SELECT COUNT(*) AS n FROM {table}")
        return cur.fetchone()["n"]

    def query(self, sql: str, params: tuple = ()) -> list[dict]:
        """Execute a raw SQL query and return results as list of dicts."""
        cur = self.conn.execute(sql, params)
        return [dict(r) for r in cur.fetchall()]


if __name__ == "__main__":
    db = DatabaseManager()
    n = db.upsert_stocks([Stock(symbol=s) for s in settings.SEED_UNIVERSE])
    print(f"Initialized {db.db_path} with {n} seed stocks")
    db.close()
