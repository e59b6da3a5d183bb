"""
Configuration for the ETL pipeline.

Settings holds environment-driven values (paths, API key, defaults).
RunConfig / IndicatorConfig are the validated per-run parameters.
"""

import os
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator, model_validator

BASE_DIR = Path(__file__).parent.parent
load_dotenv(BASE_DIR / ".env")


class Settings:
    """Environment configuration."""

    # Paths
    BASE_DIR: Path = BASE_DIR
    DB_PATH: str = os.getenv("ETL_DB_PATH", str(BASE_DIR / "data" / "etl_stocks.db"))
    REPORT_DIR: str = os.getenv("ETL_REPORT_DIR", str(BASE_DIR / "data"))

    # Provider
    ALPHA_VANTAGE_API_KEY: str = os.getenv("ALPHA_VANTAGE_API_KEY", "")
    REQUESTS_PER_MINUTE: int = int(os.getenv("ETL_REQUESTS_PER_MINUTE", "5"))

    # Run defaults
    JOB_NAME: str = os.getenv("ETL_JOB_NAME", "daily_stock_etl")
    CONCURRENCY: int = int(os.getenv("ETL_CONCURRENCY", "4"))
    QUALITY_THRESHOLD: float = float(os.getenv("ETL_QUALITY_THRESHOLD", "0.0"))

    # Store
    DB_TIMEOUT: int = 30  # SQLite busy timeout in seconds

    # Universe used when no input file or stored stocks exist
    SEED_UNIVERSE: List[str] = [
        "AAPL", "MSFT", "GOOGL", "AMZN", "TSLA", "META",
        "NVDA", "JPM", "V", "WMT", "IBM",
    ]


settings = Settings()


class IndicatorConfig(BaseModel):
    """Which indicators to compute, and over which lookback windows."""
    sma: List[int] = [10, 20, 50, 200]
    ema: List[int] = [12, 26]
    rsi: List[int] = [14]
    macd: List[Tuple[int, int, int]] = [(12, 26, 9)]

    @field_validator("sma", "ema", "rsi")
    @classmethod
    def _valid_periods(cls, periods):
        for p in periods:
            if p < 1:
                raise ValueError(f"period must be >= 1, got {p}")
        if len(set(periods)) != len(periods):
            raise ValueError(f"duplicate periods in {periods}")
        return periods

    @field_validator("macd")
    @classmethod
    def _valid_macd(cls, triples):
        for fast, slow, signal in triples:
            if min(fast, slow, signal) < 1:
                raise ValueError(f"MACD periods must be >= 1, got {(fast, slow, signal)}")
            if fast >= slow:
                raise ValueError(f"MACD fast period must be below slow, got {(fast, slow, signal)}")
        if len(set(map(tuple, triples))) != len(triples):
            raise ValueError(f"duplicate MACD parameter sets in {triples}")
        return triples


DEFAULT_INDICATORS = IndicatorConfig()


class RunConfig(BaseModel):
    """Parameters for one orchestrated run."""
    job_name: str = settings.JOB_NAME
    concurrency: int = settings.CONCURRENCY
    quality_threshold: float = settings.QUALITY_THRESHOLD
    max_gap_days: int = 10

    # Fetch retry: attempts and exponential backoff (base seconds, doubling)
    fetch_attempts: int = 3
    fetch_backoff: float = 1.0
    fetch_backoff_max: float = 30.0
    fetch_fundamentals: bool = True

    # Store
    store_retries: int = 1
    store_failure_limit: int = 2
    cascade_returns: bool = False

    run_timeout: Optional[float] = None
    indicators: IndicatorConfig = DEFAULT_INDICATORS

    @field_validator("concurrency", "fetch_attempts", "store_failure_limit")
    @classmethod
    def _at_least_one(cls, v):
        if v < 1:
            raise ValueError(f"must be >= 1, got {v}")
        return v

    @field_validator("quality_threshold")
    @classmethod
    def _ratio(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"quality_threshold is a ratio in [0, 1], got {v}")
        return v

    @model_validator(mode="after")
    def _non_negative(self):
        if self.store_retries < 0 or self.fetch_backoff < 0 or self.max_gap_days < 0:
            raise ValueError("store_retries, fetch_backoff and max_gap_days must be >= 0")
        return self
