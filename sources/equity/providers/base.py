"""
Base provider interface for equity data sources.

All equity data providers must implement this interface. Providers return raw
records; coercion and validation belong to etl.normalizer.
"""

import threading
import time
from abc import ABC, abstractmethod
from typing import List, Dict, Optional

from etl.errors import FetchError


class EquityDataProvider(ABC):
    """Abstract base class for equity data providers."""

    def __init__(self, api_key: Optional[str] = None, requests_per_minute: int = 0):
        """
        Initialize the provider.

        Args:
            api_key: API key for the provider (if required)
            requests_per_minute: Shared request budget across worker threads
                                 (0 disables throttling)
        """
        self.api_key = api_key
        self.name = self.__class__.__name__
        self.requests_per_minute = requests_per_minute
        self._last_call_time = 0.0
        self._rate_lock = threading.Lock()

    def _rate_limit(self):
        """Block until the next request fits the requests/minute budget."""
        if not self.requests_per_minute:
            return
        interval = 60.0 / self.requests_per_minute
        with self._rate_lock:
            elapsed = time.monotonic() - self._last_call_time
            if elapsed < interval:
                time.sleep(interval - elapsed)
            self._last_call_time = time.monotonic()

    @abstractmethod
    def get_daily_bars(
        self,
        ticker: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[Dict]:
        """
        Get raw daily OHLCV records.

        Args:
            ticker: Stock ticker symbol
            start_date: Start date (YYYY-MM-DD), optional
            end_date: End date (YYYY-MM-DD), optional

        Returns:
            List of dicts with keys: symbol, date, open, high, low, close,
            adjusted_close, volume. Values may be strings or missing.
        """

    @abstractmethod
    def get_overview(self, ticker: str) -> Optional[Dict]:
        """
        Get company metadata and fundamentals.

        Returns:
            Dict matching models.MarketOverview fields, or None
        """


class ProviderError(FetchError):
    """Base exception for provider-specific errors. Transient; retried."""


class RateLimitError(ProviderError):
    """Raised when API rate limit is exceeded."""


class DataNotFoundError(ProviderError):
    """Raised when data is not available for a ticker. Not retried."""
