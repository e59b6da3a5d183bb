"""Tests for AlphaVantageProvider with a mocked requests session."""

import datetime
from unittest.mock import MagicMock, patch

import pytest
import requests

from sources.equity.providers.alpha_vantage import AlphaVantageProvider
from sources.equity.providers.base import DataNotFoundError, ProviderError, RateLimitError


SERIES = {
    "Meta Data": {"2. Symbol": "IBM"},
    "Time Series (Daily)": {
        "2024-01-04": {"1. open": "161.0", "2. high": "162.5", "3. low": "160.1", "4. close": "161.8",
                       "5. adjusted close": "158.2", "6. volume": "4100000"},
        "2024-01-03": {"1. open": "160.0", "2. high": "161.5", "3. low": "159.3", "4. close": "160.9",
                       "5. adjusted close": "157.3", "6. volume": "3900000"},
        "2024-01-02": {"1. open": "162.0", "2. high": "163.0", "3. low": "160.0", "4. close": "161.2",
                       "5. adjusted close": "157.6", "6. volume": "3500000"},
    },
}


@pytest.fixture
def provider():
    p = AlphaVantageProvider(api_key="test-key", requests_per_minute=0)
    p.session = MagicMock()
    return p


class TestInit:
    def test_requires_key(self):
        with patch("sources.equity.providers.alpha_vantage.settings") as s:
            s.ALPHA_VANTAGE_API_KEY = ""
            with pytest.raises(ValueError):
                AlphaVantageProvider()

    def test_name(self, provider):
        assert provider.name == "AlphaVantageProvider"


class TestGetDailyBars:
    def test_raw_records(self, provider, mock_response):
        provider.session.get.return_value = mock_response(json_data=SERIES)
        bars = provider.get_daily_bars("IBM")
        assert len(bars) == 3
        first = next(b for b in bars if b["date"] == "2024-01-02")
        assert first["close"] == "161.2"
        assert first["adjusted_close"] == "157.6"
        assert first["volume"] == "3500000"
        assert first["symbol"] == "IBM"

    def test_date_window(self, provider, mock_response):
        provider.session.get.return_value = mock_response(json_data=SERIES)
        bars = provider.get_daily_bars("IBM", start_date="2024-01-03", end_date="2024-01-03")
        assert [b["date"] for b in bars] == ["2024-01-03"]

    def test_request_params(self, provider, mock_response):
        provider.session.get.return_value = mock_response(json_data=SERIES)
        provider.get_daily_bars("IBM", start_date="2000-01-01")
        params = provider.session.get.call_args.kwargs["params"]
        assert params["function"] == "TIME_SERIES_DAILY_ADJUSTED"
        assert params["outputsize"] == "full"
        assert params["apikey"] == "test-key"

    def test_compact_for_recent_window(self, provider):
        recent = (datetime.date.today() - datetime.timedelta(days=10)).isoformat()
        assert provider._output_size(recent) == "compact"
        assert provider._output_size(None) == "full"

    def test_error_message_is_not_found(self, provider, mock_response):
        provider.session.get.return_value = mock_response(json_data={"Error Message": "Invalid API call."})
        with pytest.raises(DataNotFoundError):
            provider.get_daily_bars("ZZZZ")

    def test_note_is_rate_limit(self, provider, mock_response):
        provider.session.get.return_value = mock_response(json_data={"Note": "Thank you for using Alpha Vantage!"})
        with pytest.raises(RateLimitError):
            provider.get_daily_bars("IBM")

    def test_missing_series(self, provider, mock_response):
        provider.session.get.return_value = mock_response(json_data={"Meta Data": {}})
        with pytest.raises(DataNotFoundError):
            provider.get_daily_bars("IBM")

    def test_http_429(self, provider):
        resp = MagicMock()
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(response=MagicMock(status_code=429))
        provider.session.get.return_value = resp
        with pytest.raises(RateLimitError):
            provider.get_daily_bars("IBM")

    def test_connection_error(self, provider):
        provider.session.get.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(ProviderError):
            provider.get_daily_bars("IBM")


class TestGetOverview:
    def test_maps_fields(self, provider, mock_response):
        provider.session.get.return_value = mock_response(json_data={
            "Symbol": "IBM", "Name": "International Business Machines", "Sector": "TECHNOLOGY",
            "Exchange": "NYSE", "Currency": "USD", "MarketCapitalization": "150000000000",
            "PERatio": "22.5", "PEGRatio": "None", "52WeekHigh": "199.18",
        })
        overview = provider.get_overview("IBM")
        assert overview["company_name"] == "International Business Machines"
        assert overview["market_cap"] == 150000000000
        assert overview["pe_ratio"] == pytest.approx(22.5)
        assert overview["peg_ratio"] is None
        assert overview["week_52_high"] == pytest.approx(199.18)

    def test_empty_response(self, provider, mock_response):
        provider.session.get.return_value = mock_response(json_data={})
        assert provider.get_overview("IBM") is None
