"""
Alpha Vantage equity data provider.

Official API documentation: https://www.alphavantage.co/documentation/
"""

import logging
from datetime import date, datetime, timedelta
from typing import List, Dict, Optional

import requests

from etl.config import settings
from .base import EquityDataProvider, RateLimitError, DataNotFoundError, ProviderError


logger = logging.getLogger(__name__)


class AlphaVantageProvider(EquityDataProvider):
    """
    Alpha Vantage equity data provider.

    Free tier: 25 requests/day, 5 calls/minute
    Paid tiers: Remove daily cap, increase rate limits

    API Key: Get from https://www.alphavantage.co/support/#api-key
    """

    BASE_URL = "https://www.alphavantage.co/query"
    SERIES_KEY = "Time Series (Daily)"
    COMPACT_DAYS = 100  # compact output covers the latest 100 trading days

    # MarketOverview field -> OVERVIEW response key
    OVERVIEW_TEXT = {
        "company_name": "Name",
        "sector": "Sector",
        "industry": "Industry",
        "exchange": "Exchange",
        "currency": "Currency",
    }
    OVERVIEW_INTS = {
        "market_cap": "MarketCapitalization",
        "shares_outstanding": "SharesOutstanding",
    }
    OVERVIEW_FLOATS = {
        "pe_ratio": "PERatio",
        "peg_ratio": "PEGRatio",
        "book_value": "BookValue",
        "dividend_per_share": "DividendPerShare",
        "dividend_yield": "DividendYield",
        "eps": "EPS",
        "revenue_per_share": "RevenuePerShareTTM",
        "profit_margin": "ProfitMargin",
        "week_52_high": "52WeekHigh",
        "week_52_low": "52WeekLow",
        "moving_avg_50": "50DayMovingAverage",
        "moving_avg_200": "200DayMovingAverage",
    }

    def __init__(self, api_key: Optional[str] = None, requests_per_minute: Optional[int] = None):
        """
        Initialize Alpha Vantage provider.

        Args:
            api_key: Alpha Vantage API key. If not provided, reads from
                    ALPHA_VANTAGE_API_KEY environment variable.
            requests_per_minute: Throttle; defaults to ETL_REQUESTS_PER_MINUTE.
        """
        api_key = api_key or settings.ALPHA_VANTAGE_API_KEY

        if not api_key:
            raise ValueError(
                "Alpha Vantage API key required. Set ALPHA_VANTAGE_API_KEY "
                "environment variable or pass api_key parameter."
            )

        if requests_per_minute is None:
            requests_per_minute = settings.REQUESTS_PER_MINUTE
        super().__init__(api_key, requests_per_minute)
        self.session = requests.Session()

    def _make_request(self, params: Dict) -> Dict:
        """
        Make API request with error handling.

        Raises:
            RateLimitError: If rate limit exceeded
            DataNotFoundError: If data not available
            ProviderError: For other API errors
        """
        self._rate_limit()

        params = dict(params, apikey=self.api_key)

        try:
            response = self.session.get(self.BASE_URL, params=params, timeout=30)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.HTTPError as e:
            if e.response is not None and e.response.status_code == 429:
                raise RateLimitError("Rate limit exceeded")
            raise ProviderError(f"HTTP error: {e}")
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Request failed: {e}")
        except ValueError as e:
            raise ProviderError(f"Malformed JSON response: {e}")

        # Check for API error messages
        if "Error Message" in data:
            raise DataNotFoundError(data["Error Message"])

        if "Note" in data:
            raise RateLimitError(data["Note"])

        if "Information" in data:
            # Usually an invalid key or a premium-only endpoint; some plans
            # report throttling here too
            if "rate limit" in data["Information"].lower():
                raise RateLimitError(data["Information"])
            raise ProviderError(data["Information"])

        return data

    def get_daily_bars(
        self,
        ticker: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[Dict]:
        """
        Get raw daily bars from TIME_SERIES_DAILY_ADJUSTED.

        Values are passed through as the API's strings; the normalizer owns
        coercion and validation.
        """
        logger.info(f"Fetching daily bars for {ticker} ({start_date or '...'} to {end_date or '...'})")

        params = {
            "function": "TIME_SERIES_DAILY_ADJUSTED",
            "symbol": ticker,
            "outputsize": self._output_size(start_date),
        }
        data = self._make_request(params)

        time_series = data.get(self.SERIES_KEY)
        if time_series is None:
            raise DataNotFoundError(f"{ticker}: no '{self.SERIES_KEY}' in response")

        bars = []
        for date_str, values in time_series.items():
            if start_date and date_str < start_date:
                continue
            if end_date and date_str > end_date:
                continue
            bars.append({
                "symbol": ticker,
                "date": date_str,
                "open": values.get("1. open"),
                "high": values.get("2. high"),
                "low": values.get("3. low"),
                "close": values.get("4. close"),
                "adjusted_close": values.get("5. adjusted close"),
                "volume": values.get("6. volume"),
            })

        logger.info(f"{ticker}: Retrieved {len(bars)} raw bars")
        return bars

    def get_overview(self, ticker: str) -> Optional[Dict]:
        """
        Get company overview and valuation ratios.

        Uses OVERVIEW endpoint for fundamental data.
        """
        logger.info(f"Fetching company overview for {ticker}")

        data = self._make_request({"function": "OVERVIEW", "symbol": ticker})

        if not data or "Symbol" not in data:
            logger.warning(f"{ticker}: No overview data available")
            return None

        overview = {"symbol": ticker, "overview_date": date.today().isoformat()}
        for field, key in self.OVERVIEW_TEXT.items():
            overview[field] = data.get(key) or ""
        for field, key in self.OVERVIEW_INTS.items():
            overview[field] = self._parse_int(data.get(key))
        for field, key in self.OVERVIEW_FLOATS.items():
            overview[field] = self._parse_float(data.get(key))
        return overview

    def _output_size(self, start_date: Optional[str]) -> str:
        """Use the compact series when the requested window is recent enough."""
        if start_date:
            start = datetime.strptime(start_date, "%Y-%m-%d").date()
            if start >= date.today() - timedelta(days=self.COMPACT_DAYS):
                return "compact"
        return "full"

    @staticmethod
    def _parse_float(value) -> Optional[float]:
        """Parse float value, return None if invalid."""
        if value is None or value in ("None", "", "-"):
            return None
        try:
            return float(value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _parse_int(value) -> Optional[int]:
        """Parse int value, return None if invalid."""
        if value is None or value in ("None", "", "-"):
            return None
        try:
            return int(value)
        except (ValueError, TypeError):
            return None
