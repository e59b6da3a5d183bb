"""
Pydantic data models for the daily equity ETL.

These models are the typed records passed between pipeline stages
(normalizer -> indicator engine -> quality gate -> load coordinator) and
mirror the tables created by database.py.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class IndicatorKind(str, Enum):
    SMA = "SMA"
    EMA = "EMA"
    RSI = "RSI"
    MACD = "MACD"
    MACD_SIGNAL = "MACD_SIGNAL"


class CheckKind(str, Enum):
    NULL_CHECK = "NULL_CHECK"
    RANGE_CHECK = "RANGE_CHECK"
    DUPLICATE_CHECK = "DUPLICATE_CHECK"
    CONTINUITY_CHECK = "CONTINUITY_CHECK"


class RunStatus(str, Enum):
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    FAILED = "FAILED"


class Verdict(str, Enum):
    PASSED = "PASSED"
    BLOCKED = "BLOCKED"


class RejectReason(str, Enum):
    MISSING_CLOSE = "MISSING_CLOSE"
    INVALID_DATE = "INVALID_DATE"
    SYMBOL_MISMATCH = "SYMBOL_MISMATCH"
    NON_POSITIVE_PRICE = "NON_POSITIVE_PRICE"
    HIGH_BELOW_LOW = "HIGH_BELOW_LOW"
    HIGH_LOW_INCONSISTENT = "HIGH_LOW_INCONSISTENT"
    NEGATIVE_VOLUME = "NEGATIVE_VOLUME"


TERMINAL_STATUSES = (RunStatus.SUCCESS, RunStatus.WARNING, RunStatus.FAILED)


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------

class Stock(BaseModel):
    """A ticker in the tracked universe. Soft-deactivated, never deleted."""
    symbol: str
    company_name: str = ""
    sector: str = ""
    industry: str = ""
    exchange: str = ""
    currency: str = "USD"
    is_active: bool = True


# ---------------------------------------------------------------------------
# Market data
# ---------------------------------------------------------------------------

class DailyBar(BaseModel):
    """
    One normalized trading day for a symbol.
    Derived fields are filled in by the normalizer over the ordered series.
    """
    symbol: str
    trade_date: date
    open: Optional[Decimal] = None
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    close: Decimal
    adjusted_close: Optional[Decimal] = None
    volume: Optional[int] = None
    daily_return: Optional[Decimal] = None
    price_change: Optional[Decimal] = None
    price_change_pct: Optional[Decimal] = None


class IndicatorPoint(BaseModel):
    """A single indicator value for (symbol, trade_date, kind, period)."""
    symbol: str
    trade_date: date
    kind: IndicatorKind
    period: Optional[int] = None
    params: str
    value: float


class MarketOverview(BaseModel):
    """Fundamentals snapshot for a symbol on a given date."""
    symbol: str
    overview_date: date
    company_name: str = ""
    sector: str = ""
    industry: str = ""
    exchange: str = ""
    currency: str = ""
    market_cap: Optional[int] = None
    pe_ratio: Optional[float] = None
    peg_ratio: Optional[float] = None
    book_value: Optional[float] = None
    dividend_per_share: Optional[float] = None
    dividend_yield: Optional[float] = None
    eps: Optional[float] = None
    revenue_per_share: Optional[float] = None
    profit_margin: Optional[float] = None
    week_52_high: Optional[float] = None
    week_52_low: Optional[float] = None
    moving_avg_50: Optional[float] = None
    moving_avg_200: Optional[float] = None
    shares_outstanding: Optional[int] = None


class Rejection(BaseModel):
    """A raw record dropped by the normalizer, with the reason."""
    symbol: str
    trade_date: Optional[str] = None
    reason: RejectReason
    detail: str = ""


# ---------------------------------------------------------------------------
# Quality
# ---------------------------------------------------------------------------

class QualityCheckResult(BaseModel):
    """Outcome of one check over one target table for one symbol batch."""
    symbol: str
    target_table: str
    check_kind: CheckKind
    records_checked: int = 0
    records_failed: int = 0
    blocking: bool = True
    description: str = ""
    details: list[str] = []

    @property
    def records_passed(self) -> int:
        return self.records_checked - self.records_failed

    @property
    def failure_ratio(self) -> float:
        if not self.records_checked:
            return 0.0
        return self.records_failed / self.records_checked


class QualityVerdict(BaseModel):
    symbol: str
    threshold: float = 0.0
    verdict: Verdict = Verdict.PASSED
    results: list[QualityCheckResult] = []
    blocked_by: list[str] = []

    @property
    def blocked(self) -> bool:
        return self.verdict == Verdict.BLOCKED


# ---------------------------------------------------------------------------
# Load and run bookkeeping
# ---------------------------------------------------------------------------

class LoadOutcome(BaseModel):
    inserted: int = 0
    updated: int = 0
    rejected: int = 0
    blocked: bool = False


class SymbolResult(BaseModel):
    """Per-symbol outcome, merged into the ExecutionRun by the orchestrator."""
    symbol: str
    status: RunStatus = RunStatus.SUCCESS
    records_read: int = 0
    records_processed: int = 0
    inserted: int = 0
    updated: int = 0
    rejected: int = 0
    indicators: int = 0
    blocked: bool = False
    fetch_failed: bool = False
    store_failed: bool = False
    cancelled: bool = False
    error: Optional[str] = None
    verdict: Optional[QualityVerdict] = None


class ExecutionRun(BaseModel):
    """
    One end-to-end pipeline execution.
    Counters are only touched through merge(); once a terminal status is set
    the record is frozen.
    """
    run_id: Optional[int] = None
    job_name: str = "daily_stock_etl"
    execution_type: str = "JOB"
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    status: RunStatus = RunStatus.RUNNING
    records_read: int = 0
    records_processed: int = 0
    records_inserted: int = 0
    records_updated: int = 0
    records_rejected: int = 0
    symbols_total: int = 0
    symbols_completed: int = 0
    error_message: Optional[str] = None
    error_stacktrace: Optional[str] = None
    server_name: str = ""
    since_date: Optional[date] = None
    until_date: Optional[date] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def duration_seconds(self) -> Optional[int]:
        if self.end_time is None:
            return None
        return max(0, int((self.end_time - self.start_time).total_seconds()))

    def merge(self, result: SymbolResult) -> None:
        if self.is_terminal:
            raise RuntimeError(f"Run {self.run_id} is {self.status.value}; counters are frozen")
        self.records_read += result.records_read
        self.records_processed += result.records_processed
        self.records_inserted += result.inserted
        self.records_updated += result.updated
        self.records_rejected += result.rejected
        self.symbols_completed += 1

    def finish(self, status: RunStatus, error_message: str = None, stacktrace: str = None) -> None:
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"{status.value} is not a terminal status")
        if self.is_terminal:
            raise RuntimeError(f"Run {self.run_id} already finished as {self.status.value}")
        self.status = status
        self.end_time = datetime.now()
        self.error_message = error_message
        self.error_stacktrace = stacktrace
