"""Tests for the Open-Meteo weather collector."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import httpx
import pytest
from octobudget.cache import TTLCache
from octobudget.collectors import open_meteo

ARCHIVE_RESPONSE = {
    "daily": {
        "time": ["2025-01-10", "2025-01-11", "2025-01-12"],
        "temperature_2m_max": [5.1, 9.0, None],
        "temperature_2m_min": [-1.2, 3.0, None],
        "temperature_2m_mean": [2.0, 6.4, None],
        "precipitation_sum": [0.0, 4.2, None],
        "weather_code": [71, 63, None],
    }
}


@pytest.fixture
def mock_get():
    with patch("octobudget.collectors.open_meteo.httpx.get") as mock:
        response = MagicMock()
        response.json.return_value = ARCHIVE_RESPONSE
        mock.return_value = response
        yield mock


def test_fetch_daily_weather(mock_get):
    """Test parsing of the archive's column-oriented daily response."""
    weather = open_meteo.fetch_daily_weather(date(2025, 1, 10), date(2025, 1, 12), 52.0, -1.5)

    assert sorted(weather) == ["2025-01-10", "2025-01-11"]
    assert weather["2025-01-10"].temp_mean == 2.0
    assert weather["2025-01-10"].weather_desc == "Snow"
    assert weather["2025-01-11"].precipitation_mm == 4.2
    assert weather["2025-01-11"].weather_desc == "Rain"

    params = mock_get.call_args.kwargs["params"]
    assert params["start_date"] == "2025-01-10"
    assert params["end_date"] == "2025-01-12"
    assert params["timezone"] == "Europe/London"
    assert "temperature_2m_mean" in params["daily"]


def test_fetch_weather_for_dates_covers_range(mock_get):
    dates = [date(2025, 1, 12), date(2025, 1, 10)]

    weather = open_meteo.fetch_weather_for_dates(dates)

    assert "2025-01-10" in weather
    params = mock_get.call_args.kwargs["params"]
    assert (params["start_date"], params["end_date"]) == ("2025-01-10", "2025-01-12")


def test_fetch_weather_for_dates_empty():
    assert open_meteo.fetch_weather_for_dates([]) == {}


def test_fetch_weather_for_dates_network_error(mock_get):
    """Test weather failures are swallowed into an empty mapping."""
    mock_get.side_effect = httpx.ConnectError("Network error")

    assert open_meteo.fetch_weather_for_dates([date(2025, 1, 10)]) == {}


def test_fetch_weather_for_dates_http_error(mock_get):
    request = httpx.Request("GET", open_meteo.API_BASE_URL)
    mock_get.return_value.raise_for_status.side_effect = httpx.HTTPStatusError(
        "500 Server Error", request=request, response=httpx.Response(500, request=request)
    )

    assert open_meteo.fetch_weather_for_dates([date(2025, 1, 10)]) == {}


def test_fetch_weather_for_dates_uses_cache(mock_get, tmp_path):
    """Test a second lookup for the same range is served from the cache."""
    cache = TTLCache(tmp_path, "A-1234ABCD")
    dates = [date(2025, 1, 10), date(2025, 1, 11)]

    first = open_meteo.fetch_weather_for_dates(dates, 52.0, -1.5, cache=cache)
    second = open_meteo.fetch_weather_for_dates(dates, 52.0, -1.5, cache=cache)

    assert mock_get.call_count == 1
    assert second == first
    found, _ = cache.get("weather_52.0000_-1.5000_2025-01-10_2025-01-11")
    assert found


def test_fetch_weather_for_dates_expired_cache_refetches(mock_get, tmp_path):
    now = [datetime(2025, 1, 20, tzinfo=timezone.utc)]
    cache = TTLCache(tmp_path, "A-1234ABCD", clock=lambda: now[0])
    dates = [date(2025, 1, 10)]

    open_meteo.fetch_weather_for_dates(dates, cache=cache)
    now[0] += timedelta(hours=25)
    open_meteo.fetch_weather_for_dates(dates, cache=cache)

    assert mock_get.call_count == 2


@pytest.mark.parametrize(
    "code,description",
    [(0, "Clear sky"), (2, "Partly cloudy"), (48, "Foggy"), (55, "Drizzle"), (77, "Snow grains"),
     (81, "Rain showers"), (86, "Snow showers"), (95, "Thunderstorm"), (99, "Thunderstorm with hail"),
     (42, "Unknown")],
)
def test_weather_description(code, description):
    assert open_meteo.weather_description(code) == description
