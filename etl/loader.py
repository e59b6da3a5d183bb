"""
Load coordinator.

The only writer of the store. Upserts one symbol batch (bars, indicators,
fundamentals) per transaction, and keeps the execution and quality audit logs.
"""

import logging
import socket
from datetime import date
from typing import Iterable, List, Optional

from database import DEFAULT_DB_PATH, DatabaseManager
from etl.errors import StoreError
from models import (
    DailyBar,
    ExecutionRun,
    IndicatorPoint,
    LoadOutcome,
    MarketOverview,
    QualityVerdict,
    RunStatus,
    Stock,
)

logger = logging.getLogger(__name__)


class LoadCoordinator:
    """
    Idempotent loader for normalized bars and indicators.

    :param db_path: SQLite database path; every call opens its own connection
                    so worker threads never share one
    :param store_retries: extra attempts for a symbol batch after a StoreError
    :param cascade_returns: after loading, recompute stored daily_return for
                            the loaded range and every later stored bar
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, store_retries: int = 1, cascade_returns: bool = False):
        self.db_path = db_path
        self.store_retries = store_retries
        self.cascade_returns = cascade_returns

    def _connect(self) -> DatabaseManager:
        return DatabaseManager(db_path=self.db_path)

    # ------------------------------------------------------------------
    # Symbol batches
    # ------------------------------------------------------------------

    def load(
        self,
        symbol: str,
        bars: List[DailyBar],
        indicators: List[IndicatorPoint],
        verdict: QualityVerdict,
        overview: Optional[MarketOverview] = None,
    ) -> LoadOutcome:
        """
        Upsert one symbol batch. A BLOCKED verdict skips the write and reports
        every candidate row as rejected. Raises StoreError once retries are spent.
        """
        if verdict.blocked:
            rejected = len(bars) + len(indicators)
            logger.warning(f"{symbol}: load skipped, {rejected} rows rejected ({', '.join(verdict.blocked_by)})")
            return LoadOutcome(rejected=rejected, blocked=True)

        attempts = self.store_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return self._load_batch(symbol, bars, indicators, overview)
            except StoreError as e:
                if attempt == attempts:
                    logger.error(f"{symbol}: store write failed after {attempts} attempt(s): {e}")
                    raise
                logger.warning(f"{symbol}: store write failed (attempt {attempt}/{attempts}), retrying: {e}")

    def _load_batch(self, symbol, bars, indicators, overview) -> LoadOutcome:
        outcome = LoadOutcome()
        db = self._connect()
        try:
            with db.transaction():
                stock_id = db.ensure_stock(symbol)

                inserted, updated = db.upsert_daily_prices(stock_id, bars)
                outcome.inserted += inserted
                outcome.updated += updated

                inserted, updated = db.upsert_indicators(stock_id, indicators)
                outcome.inserted += inserted
                outcome.updated += updated

                if overview is not None:
                    inserted, updated = db.upsert_market_overview(stock_id, overview)
                    outcome.inserted += inserted
                    outcome.updated += updated
                    db.update_stock_metadata(stock_id, overview)

                if self.cascade_returns and bars:
                    n = db.recompute_daily_returns(stock_id, bars[0].trade_date)
                    logger.debug(f"{symbol}: recomputed daily_return for {n} stored bars")
        finally:
            db.close()

        logger.info(f"{symbol}: loaded {outcome.inserted} new, {outcome.updated} updated rows")
        return outcome

    def stored_closes(self, symbol: str, before: date) -> List[float]:
        """Closes already in the store ahead of a reload window, oldest first."""
        db = self._connect()
        try:
            return db.get_close_history(symbol, before)
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Universe
    # ------------------------------------------------------------------

    def register_universe(self, symbols: Iterable[str]) -> int:
        """Make sure every symbol has an active stocks row."""
        db = self._connect()
        try:
            return db.upsert_stocks([Stock(symbol=s) for s in symbols])
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Run bookkeeping
    # ------------------------------------------------------------------

    def start_run(
        self,
        job_name: str,
        since_date: Optional[date] = None,
        until_date: Optional[date] = None,
        symbols_total: int = 0,
    ) -> ExecutionRun:
        run = ExecutionRun(
            job_name=job_name,
            server_name=socket.gethostname(),
            since_date=since_date,
            until_date=until_date,
            symbols_total=symbols_total,
        )
        db = self._connect()
        try:
            run.run_id = db.create_execution(run)
        finally:
            db.close()
        logger.info(f"Run {run.run_id} ({job_name}) started")
        return run

    def record_progress(self, run: ExecutionRun) -> None:
        """Persist the merged counters of a RUNNING run."""
        db = self._connect()
        try:
            db.update_execution(run)
        finally:
            db.close()

    def record_quality(self, run_id: Optional[int], verdict: QualityVerdict) -> int:
        """Append the verdict's check results to the quality log."""
        db = self._connect()
        try:
            return db.insert_quality_results(run_id, verdict.results)
        finally:
            db.close()

    def finish_run(
        self,
        run: ExecutionRun,
        status: RunStatus,
        error_message: str = None,
        stacktrace: str = None,
    ) -> ExecutionRun:
        run.finish(status, error_message, stacktrace)
        db = self._connect()
        try:
            db.update_execution(run)
        finally:
            db.close()
        logger.info(f"Run {run.run_id} finished {status.value} in {run.duration_seconds}s")
        return run
