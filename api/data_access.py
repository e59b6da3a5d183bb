"""
Data access layer for the equity ETL store.
Provides read-only access to the SQLite database and its dashboard views.
"""

import sqlite3
from pathlib import Path
from typing import Dict, List, Optional

from .config import settings


class ViewReader:
    """
    Read-only queries over the dashboard views and audit logs.
    Safe to share across API worker threads.
    """

    def __init__(self, db_path: str = None):
        """
        Open a read-only connection.

        Args:
            db_path: Path to the ETL database (defaults to config setting)
        """
        self.db_path = db_path or settings.DB_PATH

        if not Path(self.db_path).exists():
            raise FileNotFoundError(f"Database not found: {self.db_path}")

        self.conn = sqlite3.connect(
            f"file:{self.db_path}?mode=ro",
            uri=True,
            check_same_thread=False,
            timeout=settings.DB_TIMEOUT
        )
        self.conn.row_factory = sqlite3.Row

    def close(self):
        """Close database connection."""
        self.conn.close()

    def _all(self, sql: str, params: tuple = ()) -> List[Dict]:
        cur = self.conn.execute(sql, params)
        return [dict(row) for row in cur.fetchall()]

    # ----------------------------------------------------------------
    # Dashboard views
    # ----------------------------------------------------------------

    def get_latest_prices(self) -> List[Dict]:
        """Most recent bar per active stock."""
        return self._all("SELECT * FROM latest_prices")

    def get_performance_summary(self, symbol: Optional[str] = None) -> List[Dict]:
        if symbol:
            return self._all("SELECT * FROM stock_performance_summary WHERE symbol = ?", (symbol.upper(),))
        return self._all("SELECT * FROM stock_performance_summary")

    def get_execution_summary(self) -> List[Dict]:
        return self._all("SELECT * FROM execution_summary")

    # ----------------------------------------------------------------
    # Stocks and series
    # ----------------------------------------------------------------

    def get_stock(self, symbol: str) -> Optional[Dict]:
        cur = self.conn.execute("SELECT * FROM stocks WHERE symbol = ?", (symbol.upper(),))
        row = cur.fetchone()
        return dict(row) if row else None

    def get_prices(
        self,
        symbol: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = settings.MAX_LIMIT
    ) -> List[Dict]:
        """
        Daily bars for a symbol, oldest first.

        Args:
            symbol: Stock symbol
            start_date: Optional first date (YYYY-MM-DD)
            end_date: Optional last date (YYYY-MM-DD)
            limit: Max rows returned (most recent kept)
        """
        sql = """
            SELECT dp.price_date, dp.open_price, dp.high_price, dp.low_price,
                   dp.close_price, dp.adjusted_close, dp.volume, dp.daily_return,
                   dp.price_change, dp.price_change_pct
            FROM daily_prices dp
            JOIN stocks s ON s.stock_id = dp.stock_id
            WHERE s.symbol = ?
        """
        params = [symbol.upper()]
        if start_date:
            sql += " AND dp.price_date >= ?"
            params.append(start_date)
        if end_date:
            sql += " AND dp.price_date <= ?"
            params.append(end_date)
        sql += " ORDER BY dp.price_date DESC LIMIT ?"
        params.append(limit)
        return list(reversed(self._all(sql, tuple(params))))

    def get_indicators(
        self,
        symbol: str,
        indicator_type: str,
        params_key: Optional[str] = None,
        start_date: Optional[str] = None,
        limit: int = settings.MAX_LIMIT
    ) -> List[Dict]:
        """Indicator series for one kind (and optionally one parameter set), oldest first."""
        sql = """
            SELECT ti.indicator_date, ti.indicator_type, ti.time_period,
                   ti.params_key, ti.indicator_value
            FROM technical_indicators ti
            JOIN stocks s ON s.stock_id = ti.stock_id
            WHERE s.symbol = ? AND ti.indicator_type = ?
        """
        params = [symbol.upper(), indicator_type.upper()]
        if params_key:
            sql += " AND ti.params_key = ?"
            params.append(params_key)
        if start_date:
            sql += " AND ti.indicator_date >= ?"
            params.append(start_date)
        sql += " ORDER BY ti.indicator_date DESC, ti.params_key LIMIT ?"
        params.append(limit)
        return list(reversed(self._all(sql, tuple(params))))

    # ----------------------------------------------------------------
    # Execution audit
    # ----------------------------------------------------------------

    def get_executions(self, job_name: Optional[str] = None, limit: int = 50) -> List[Dict]:
        sql = "SELECT * FROM etl_execution_log"
        params = []
        if job_name:
            sql += " WHERE job_name = ?"
            params.append(job_name)
        sql += " ORDER BY execution_id DESC LIMIT ?"
        params.append(limit)
        return self._all(sql, tuple(params))

    def get_execution(self, execution_id: int) -> Optional[Dict]:
        cur = self.conn.execute("SELECT * FROM etl_execution_log WHERE execution_id = ?", (execution_id,))
        row = cur.fetchone()
        return dict(row) if row else None

    def get_quality_results(self, execution_id: int, symbol: Optional[str] = None) -> List[Dict]:
        sql = "SELECT * FROM data_quality_log WHERE execution_id = ?"
        params = [execution_id]
        if symbol:
            sql += " AND symbol = ?"
            params.append(symbol.upper())
        sql += " ORDER BY quality_id"
        return self._all(sql, tuple(params))

    def get_database_stats(self) -> Dict:
        """Row counts for the health endpoint."""
        stats = {}
        for table in ("stocks", "daily_prices", "technical_indicators", "etl_execution_log"):
            cur = self.conn.execute(f"SELECT COUNT(*) FROM {table}")
            stats[table] = cur.fetchone()[0]
        return stats
