"""
Daily Equity ETL Pipeline

Fetches raw daily bars (and fundamentals) for a universe of symbols, then per
symbol: normalize -> compute indicators -> quality gate -> load. Symbols run in
parallel worker threads; their results are merged into one ExecutionRun.

Usage:
    python -m etl.pipeline                                   # Symbols from input.txt
    python -m etl.pipeline --tickers AAPL MSFT JPM           # Specific symbols
    python -m etl.pipeline --since 2024-01-01 --until 2024-12-31
    python -m etl.pipeline --concurrency 8 --quality-threshold 0.01
    python -m etl.pipeline --report                          # Also write an Excel report

Exit status: 0 SUCCESS, 1 WARNING, 2 FAILED.
"""

import argparse
import datetime
import logging
import os
import sys
import threading
import traceback
from decimal import Decimal
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout, as_completed
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import pydantic
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from database import DEFAULT_DB_PATH, DatabaseManager
from etl.config import RunConfig, settings
from etl.errors import FetchError, QualityBlockedError, RunCancelled, StoreError
from etl.indicators import compute_indicators
from etl.loader import LoadCoordinator
from etl.normalizer import derive_fields, normalize_bars
from etl.quality import QualityGate
from models import ExecutionRun, MarketOverview, QualityVerdict, RunStatus, SymbolResult
from sources.equity.providers.base import DataNotFoundError, EquityDataProvider, ProviderError
from utils import log
from utils.excel_formatter import STATUS_FILLS, ExcelFormatter
from utils.input_parser import DEFAULT_INPUT_FILE, normalize_symbols, parse_input_file

logger = log.setup_verbose_logging("etl")
# Provider modules log under sources.*
log.setup_verbose_logging("sources", level=logging.INFO)

EXIT_CODES = {
    RunStatus.SUCCESS: 0,
    RunStatus.WARNING: 1,
    RunStatus.FAILED: 2,
}


class PipelineOrchestrator:
    """
    Runs the transform-and-load stages over a symbol universe.

    Each symbol is processed start to finish by one worker; the orchestrator
    thread is the only one that touches the ExecutionRun counters.
    """

    def __init__(
        self,
        provider: EquityDataProvider,
        db_path: str = DEFAULT_DB_PATH,
        config: RunConfig = None,
    ):
        self.provider = provider
        self.db_path = db_path
        self.config = config or RunConfig()
        self.gate = QualityGate(self.config.quality_threshold, self.config.max_gap_days)
        self.loader = LoadCoordinator(
            db_path=db_path,
            store_retries=self.config.store_retries,
            cascade_returns=self.config.cascade_returns,
        )
        self.results: List[SymbolResult] = []
        self.verdicts: Dict[str, QualityVerdict] = {}
        self._cancel = threading.Event()
        self._cancel_reason: Optional[str] = None

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self, reason: str = "operator abort") -> None:
        """Stop starting new symbols; in-flight batches finish their transaction."""
        if not self._cancel.is_set():
            self._cancel_reason = reason
            self._cancel.set()
            logger.warning(f"Run cancelled: {reason}")

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(
        self,
        universe: List[str],
        since_date: Optional[datetime.date] = None,
        until_date: Optional[datetime.date] = None,
    ) -> ExecutionRun:
        """
        Execute one run over the universe. Raises StoreError only if the run
        cannot even be registered; every later failure lands in the returned
        ExecutionRun.
        """
        universe = normalize_symbols(universe)
        self.results = []
        self.verdicts = {}
        self._cancel.clear()
        self._cancel_reason = None

        run = self.loader.start_run(self.config.job_name, since_date, until_date, len(universe))
        try:
            self.loader.register_universe(universe)
            self._execute(run, universe, since_date, until_date)
        except KeyboardInterrupt:
            self.cancel("operator abort (keyboard interrupt)")
        except Exception as e:
            logger.exception(f"Run {run.run_id} aborted")
            return self._finish(run, RunStatus.FAILED, f"{type(e).__name__}: {e}", traceback.format_exc())

        status, message = self._final_status()
        return self._finish(run, status, message)

    def _execute(self, run, universe, since_date, until_date) -> None:
        store_failures = 0
        total = len(universe)
        with ThreadPoolExecutor(max_workers=self.config.concurrency, thread_name_prefix="etl") as executor:
            futures = {
                executor.submit(self._process_symbol, symbol, run.run_id, since_date, until_date): symbol
                for symbol in universe
            }
            pending = set(futures)
            try:
                for future in as_completed(futures, timeout=self.config.run_timeout):
                    pending.discard(future)
                    store_failures += self._collect(run, future.result(), total)
                    if store_failures >= self.config.store_failure_limit:
                        self.cancel(f"store unavailable: {store_failures} symbol batches failed to write")
            except FuturesTimeout:
                self.cancel(f"run timeout after {self.config.run_timeout}s")
            except KeyboardInterrupt:
                self.cancel("operator abort (keyboard interrupt)")

            # Queued symbols see the cancel flag and return at once; in-flight
            # ones finish their current transaction
            for future in list(pending):
                self._collect(run, future.result(), total)

    def _collect(self, run: ExecutionRun, result: SymbolResult, total: int) -> int:
        """Merge one symbol result on the orchestrator thread. Returns 1 on a store failure."""
        self.results.append(result)
        run.merge(result)
        if result.verdict is not None:
            self.verdicts[result.symbol] = result.verdict
        try:
            self.loader.record_progress(run)
        except StoreError as e:
            logger.error(f"Could not record progress for run {run.run_id}: {e}")

        log.symbol_outcome(
            len(self.results), total, result.symbol, result.status.value,
            counts={
                "read": result.records_read,
                "inserted": result.inserted,
                "updated": result.updated,
                "rejected": result.rejected,
            },
            note=result.error,
            skipped=result.cancelled,
        )
        return 1 if result.store_failed else 0

    def _final_status(self) -> tuple:
        """Decide the terminal status from the merged symbol results."""
        if self.cancelled:
            return RunStatus.FAILED, f"cancelled: {self._cancel_reason}"

        attempted = [r for r in self.results if not r.cancelled]
        fetch_failed = [r for r in attempted if r.fetch_failed]
        if attempted and len(fetch_failed) == len(attempted):
            return RunStatus.FAILED, f"fetch outage: all {len(attempted)} symbols failed to fetch"

        store_failed = [r for r in attempted if r.store_failed]
        reached_load = [r for r in attempted if not r.fetch_failed and not r.blocked]
        if store_failed and (
            len(store_failed) >= self.config.store_failure_limit or len(store_failed) == len(reached_load)
        ):
            symbols = ", ".join(r.symbol for r in store_failed)
            return RunStatus.FAILED, f"store unavailable for {symbols}"

        problems = [r for r in attempted if r.status != RunStatus.SUCCESS]
        if problems:
            summary = "; ".join(f"{r.symbol}: {r.error or r.status.value}" for r in problems)
            return RunStatus.WARNING, summary
        return RunStatus.SUCCESS, None

    def _finish(self, run, status, message, stacktrace=None) -> ExecutionRun:
        try:
            self.loader.finish_run(run, status, message, stacktrace)
        except StoreError as e:
            logger.error(f"Could not record final status for run {run.run_id}: {e}")
        return run

    # ------------------------------------------------------------------
    # Per-symbol stages
    # ------------------------------------------------------------------

    def _process_symbol(self, symbol, run_id, since_date, until_date) -> SymbolResult:
        result = SymbolResult(symbol=symbol)
        try:
            self._check_cancel("fetch")
            return self._run_stages(result, run_id, since_date, until_date)
        except RunCancelled as e:
            result.cancelled = True
            result.status = RunStatus.FAILED
            result.error = str(e)
            return result
        except Exception as e:
            logger.exception(f"{symbol}: unexpected failure")
            result.status = RunStatus.FAILED
            result.error = f"{type(e).__name__}: {e}"
            return result

    def _check_cancel(self, stage: str) -> None:
        if self.cancelled:
            raise RunCancelled(f"cancelled before {stage}: {self._cancel_reason}")

    def _run_stages(self, result, run_id, since_date, until_date) -> SymbolResult:
        symbol = result.symbol

        # Fetch
        try:
            raw = self.fetch(symbol, since_date, until_date)
        except FetchError as e:
            logger.warning(f"{symbol}: fetch failed: {e}")
            result.status = RunStatus.FAILED
            result.fetch_failed = True
            result.error = f"fetch failed: {e}"
            return result

        # Normalize
        normalized = normalize_bars(symbol, raw)
        result.records_read = normalized.records_read
        result.records_processed = len(normalized.bars)
        result.rejected = normalized.rejected
        bars = normalized.bars
        if not bars:
            logger.warning(f"{symbol}: no valid bars in {normalized.records_read} raw records")

        # Warm up from stored history so a reload window continues the series
        history = []
        if bars:
            try:
                history = self.loader.stored_closes(symbol, bars[0].trade_date)
            except StoreError as e:
                result.status = RunStatus.FAILED
                result.store_failed = True
                result.error = f"history read failed: {e}"
                return result
        if history:
            derive_fields(bars, Decimal(str(history[-1])))
            logger.debug(f"{symbol}: seeded from {len(history)} stored closes before {bars[0].trade_date}")

        # Indicators
        points = compute_indicators(symbol, bars, self.config.indicators, history)
        result.indicators = len(points)

        overview = self.fetch_overview(symbol) if self.config.fetch_fundamentals else None

        # Quality
        verdict = self.gate.evaluate(symbol, bars, points)
        result.verdict = verdict
        failed = [
            (f"{r.target_table}.{r.check_kind.value}", r.records_failed, r.records_checked, r.blocking)
            for r in verdict.results
            if r.records_failed
        ]
        if failed:
            log.quality_failures(symbol, failed)
        try:
            self.loader.record_quality(run_id, verdict)
            self.gate.enforce(verdict)
        except QualityBlockedError as e:
            result.blocked = True
            result.error = str(e)
        except StoreError as e:
            result.status = RunStatus.FAILED
            result.store_failed = True
            result.error = f"quality log write failed: {e}"
            return result

        # Load
        self._check_cancel("load")
        try:
            outcome = self.loader.load(symbol, bars, points, verdict, overview)
        except StoreError as e:
            result.status = RunStatus.FAILED
            result.store_failed = True
            result.error = f"load failed: {e}"
            return result

        result.inserted = outcome.inserted
        result.updated = outcome.updated
        result.rejected += outcome.rejected
        if outcome.blocked or result.rejected:
            result.status = RunStatus.WARNING
            if not result.error:
                result.error = f"{result.rejected} records rejected"
        return result

    def fetch(self, symbol, since_date=None, until_date=None) -> list:
        """Fetch raw bars, retrying transient provider errors with exponential backoff."""
        retryer = Retrying(
            stop=stop_after_attempt(self.config.fetch_attempts),
            wait=wait_exponential(multiplier=self.config.fetch_backoff, max=self.config.fetch_backoff_max),
            retry=retry_if_exception_type(ProviderError) & retry_if_not_exception_type(DataNotFoundError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retryer(
            self.provider.get_daily_bars,
            symbol,
            start_date=since_date.isoformat() if since_date else None,
            end_date=until_date.isoformat() if until_date else None,
        )

    def fetch_overview(self, symbol) -> Optional[MarketOverview]:
        """Fundamentals are best effort: provider and validation failures are logged, never fatal."""
        try:
            data = self.provider.get_overview(symbol)
            return MarketOverview(**data) if data else None
        except (FetchError, pydantic.ValidationError) as e:
            logger.warning(f"{symbol}: fundamentals unavailable: {e}")
            return None

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def save_report(self, run: ExecutionRun, location: str = settings.REPORT_DIR) -> str:
        """Write symbol outcomes and quality checks for a run to an Excel workbook."""
        ef = ExcelFormatter()
        ef.add_to_sheet(
            pd.DataFrame([r.model_dump(mode="json", exclude={"verdict"}) for r in self.results]),
            sheet_name="Symbols",
            fills={"status": STATUS_FILLS},
        )

        checks = [
            {
                "symbol": c.symbol,
                "table": c.target_table,
                "check": c.check_kind.value,
                "checked": c.records_checked,
                "failed": c.records_failed,
                "failure_ratio": round(c.failure_ratio, 6),
                "blocking": c.blocking,
            }
            for verdict in self.verdicts.values()
            for c in verdict.results
        ]
        if checks:
            ef.add_to_sheet(pd.DataFrame(checks), sheet_name="Quality")

        return ef.save(f"ETL_RUN_{run.run_id}_{run.start_time.strftime('%Y%m%d_%H%M%S')}.xlsx", location)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def run(
    universe: List[str],
    since_date: Optional[datetime.date] = None,
    until_date: Optional[datetime.date] = None,
    concurrency: int = settings.CONCURRENCY,
    quality_threshold: float = settings.QUALITY_THRESHOLD,
    provider: Optional[EquityDataProvider] = None,
    db_path: str = DEFAULT_DB_PATH,
    report: bool = False,
    **options,
) -> int:
    """
    Run the pipeline once and return the process exit code
    (0 SUCCESS, 1 WARNING, 2 FAILED).

    Extra keyword options are RunConfig fields (run_timeout, cascade_returns, ...).
    """
    start = datetime.datetime.now()
    config = RunConfig(concurrency=concurrency, quality_threshold=quality_threshold, **options)

    log.header(f"DAILY EQUITY ETL: {len(universe)} symbols")
    if provider is None:
        from sources.equity.providers.alpha_vantage import AlphaVantageProvider
        try:
            provider = AlphaVantageProvider()
        except ValueError as e:
            log.err(str(e))
            return EXIT_CODES[RunStatus.FAILED]
    log.step(f"Provider {provider.name} | concurrency {config.concurrency} | "
             f"quality threshold {config.quality_threshold:.2%} | window {since_date or '...'} to {until_date or '...'}")

    orchestrator = PipelineOrchestrator(provider, db_path=db_path, config=config)
    try:
        execution = orchestrator.run(universe, since_date, until_date)
    except StoreError as e:
        log.err(f"Store unavailable, run not started: {e}")
        logger.error(f"Store unavailable: {e}")
        return EXIT_CODES[RunStatus.FAILED]

    if report:
        orchestrator.save_report(execution)

    log.summary_table(f"Run {execution.run_id} Summary", [
        ("Status", log.status(execution.status.value)),
        ("Symbols", f"{execution.symbols_completed}/{execution.symbols_total}"),
        ("Records read", str(execution.records_read)),
        ("Records processed", str(execution.records_processed)),
        ("Inserted", str(execution.records_inserted)),
        ("Updated", str(execution.records_updated)),
        ("Rejected", str(execution.records_rejected)),
        ("Elapsed", str(datetime.datetime.now() - start)),
    ])
    if execution.status == RunStatus.SUCCESS:
        log.ok("ETL run complete")
    elif execution.status == RunStatus.WARNING:
        log.warn(f"ETL run finished with warnings: {execution.error_message}")
    else:
        log.err(f"ETL run failed: {execution.error_message}")
    return EXIT_CODES[execution.status]


def resolve_universe(tickers=None, input_file=None, db_path: str = DEFAULT_DB_PATH) -> List[str]:
    """CLI tickers, else an input file, else active stocks in the store, else the seed list."""
    if tickers:
        return normalize_symbols(tickers)
    if input_file:
        return parse_input_file(input_file)
    if os.path.exists(DEFAULT_INPUT_FILE):
        log.info(f"Reading symbols from {DEFAULT_INPUT_FILE}")
        return parse_input_file()
    db = DatabaseManager(db_path=db_path)
    try:
        active = db.get_active_symbols()
    finally:
        db.close()
    return active or list(settings.SEED_UNIVERSE)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Load daily equity bars, indicators and fundamentals")
    parser.add_argument("--tickers", nargs="+", help="Specific symbols to process")
    parser.add_argument("--input-file", type=str, help="Path to file with symbol list (default: input.txt)")
    parser.add_argument("--since", type=datetime.date.fromisoformat, help="First trade date (YYYY-MM-DD)")
    parser.add_argument("--until", type=datetime.date.fromisoformat, help="Last trade date (YYYY-MM-DD)")
    parser.add_argument("--concurrency", type=int, default=settings.CONCURRENCY,
                        help=f"Parallel symbol workers (default: {settings.CONCURRENCY})")
    parser.add_argument("--quality-threshold", type=float, default=settings.QUALITY_THRESHOLD,
                        help="Tolerated failure ratio for blocking checks (default: 0.0)")
    parser.add_argument("--timeout", type=float, help="Global run timeout in seconds")
    parser.add_argument("--cascade-returns", action="store_true",
                        help="Recompute stored daily_return after corrective reloads")
    parser.add_argument("--no-fundamentals", action="store_true", help="Skip the fundamentals fetch")
    parser.add_argument("--report", action="store_true", help="Write an Excel run report")
    parser.add_argument("--db-path", type=str, default=DEFAULT_DB_PATH, help="SQLite database path")
    args = parser.parse_args(argv)

    universe = resolve_universe(args.tickers, args.input_file, args.db_path)
    code = run(
        universe,
        since_date=args.since,
        until_date=args.until,
        concurrency=args.concurrency,
        quality_threshold=args.quality_threshold,
        db_path=args.db_path,
        report=args.report,
        run_timeout=args.timeout,
        cascade_returns=args.cascade_returns,
        fetch_fundamentals=not args.no_fundamentals,
    )
    sys.exit(code)


if __name__ == "__main__":
    main()
