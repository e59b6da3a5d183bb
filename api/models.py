"""
Pydantic response models for the equity ETL read API.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel


class LatestPrice(BaseModel):
    """Row of the latest_prices view."""
    symbol: str
    company_name: Optional[str] = None
    sector: Optional[str] = None
    price_date: str
    close_price: float
    volume: Optional[int] = None
    daily_return: Optional[float] = None
    price_change_pct: Optional[float] = None


class PerformanceSummary(BaseModel):
    """Row of the stock_performance_summary view."""
    symbol: str
    company_name: Optional[str] = None
    trading_days: int
    first_date: Optional[str] = None
    last_date: Optional[str] = None
    avg_price: Optional[float] = None
    period_low: Optional[float] = None
    period_high: Optional[float] = None
    avg_volume: Optional[float] = None
    avg_daily_return: Optional[float] = None


class ExecutionSummary(BaseModel):
    """Row of the execution_summary view."""
    job_name: str
    total_executions: int
    successful_runs: int
    warning_runs: int
    failed_runs: int
    avg_duration_seconds: Optional[float] = None
    last_execution: Optional[str] = None
    total_records_processed: Optional[int] = None


class PriceBar(BaseModel):
    price_date: str
    open_price: Optional[float] = None
    high_price: Optional[float] = None
    low_price: Optional[float] = None
    close_price: float
    adjusted_close: Optional[float] = None
    volume: Optional[int] = None
    daily_return: Optional[float] = None
    price_change: Optional[float] = None
    price_change_pct: Optional[float] = None


class PriceHistoryResponse(BaseModel):
    """Daily bar series for one symbol."""
    symbol: str
    count: int
    prices: List[PriceBar]


class IndicatorValue(BaseModel):
    indicator_date: str
    indicator_type: str
    time_period: Optional[int] = None
    params_key: str
    indicator_value: float


class IndicatorSeriesResponse(BaseModel):
    """Indicator series for one symbol and kind."""
    symbol: str
    indicator_type: str
    count: int
    values: List[IndicatorValue]


class ExecutionRecord(BaseModel):
    """Row of etl_execution_log."""
    execution_id: int
    job_name: str
    execution_type: Optional[str] = None
    start_time: str
    end_time: Optional[str] = None
    duration_seconds: Optional[int] = None
    status: str
    records_read: int = 0
    records_processed: int = 0
    records_inserted: int = 0
    records_updated: int = 0
    records_rejected: int = 0
    error_message: Optional[str] = None
    server_name: Optional[str] = None
    since_date: Optional[str] = None
    until_date: Optional[str] = None


class QualityRecord(BaseModel):
    """Row of data_quality_log."""
    quality_id: int
    execution_id: Optional[int] = None
    symbol: Optional[str] = None
    table_name: str
    check_type: str
    check_description: Optional[str] = None
    records_checked: Optional[int] = None
    records_passed: Optional[int] = None
    records_failed: Optional[int] = None
    failure_percentage: Optional[float] = None
    is_blocking: bool
    error_details: Optional[str] = None


class QualityReportResponse(BaseModel):
    """Quality checks recorded for one execution."""
    execution_id: int
    count: int
    checks: List[QualityRecord]


class HealthResponse(BaseModel):
    """API health check response."""
    service: str
    version: str
    status: str
    database_path: str
    database_stats: Dict[str, int]
