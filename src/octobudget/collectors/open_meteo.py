"""Open-Meteo weather data collector.

Fetches historical daily weather summaries from the Open-Meteo Archive API
to give context to consumption anomalies.
"""

import logging
from datetime import date, timedelta
from typing import Iterable

import httpx

from ..cache import TTLCache
from ..config import DEFAULT_LATITUDE, DEFAULT_LONGITUDE
from ..exceptions import StorageError
from ..models import WeatherData

logger = logging.getLogger(__name__)

API_BASE_URL = "https://archive-api.open-meteo.com/v1/archive"
DEFAULT_TIMEZONE = "Europe/London"
DAILY_FIELDS = "temperature_2m_max,temperature_2m_min,temperature_2m_mean,precipitation_sum,weather_code"

CACHE_KIND = "weather"
CACHE_TTL = timedelta(hours=24)

# WMO weather interpretation codes
WEATHER_DESCRIPTIONS = {
    0: "Clear sky",
    1: "Partly cloudy",
    2: "Partly cloudy",
    3: "Partly cloudy",
    45: "Foggy",
    48: "Foggy",
    51: "Drizzle",
    53: "Drizzle",
    55: "Drizzle",
    61: "Rain",
    63: "Rain",
    65: "Rain",
    71: "Snow",
    73: "Snow",
    75: "Snow",
    77: "Snow grains",
    80: "Rain showers",
    81: "Rain showers",
    82: "Rain showers",
    85: "Snow showers",
    86: "Snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with hail",
    99: "Thunderstorm with hail",
}


def weather_description(code: int) -> str:
    """Convert a WMO weather code to a human-readable description."""
    return WEATHER_DESCRIPTIONS.get(code, "Unknown")


def fetch_daily_weather(
    start_date: date,
    end_date: date,
    latitude: float = DEFAULT_LATITUDE,
    longitude: float = DEFAULT_LONGITUDE,
) -> dict[str, WeatherData]:
    """Fetch daily weather from the Open-Meteo Archive API.

    Args:
        start_date: First day to fetch
        end_date: Last day to fetch (inclusive)
        latitude: Location latitude
        longitude: Location longitude

    Returns:
        Mapping of ISO date string to WeatherData. Days with missing
        temperature values are left out.

    Raises:
        httpx.HTTPError: on network failures or non-2xx responses
    """
    params = {
        "latitude": f"{latitude:.4f}",
        "longitude": f"{longitude:.4f}",
        "start_date": start_date.isoformat(),
        "end_date": end_date.isoformat(),
        "daily": DAILY_FIELDS,
        "timezone": DEFAULT_TIMEZONE,
    }

    logger.info("Fetching weather data: start=%s end=%s", start_date, end_date)
    response = httpx.get(API_BASE_URL, params=params, timeout=10.0)
    response.raise_for_status()
    daily = response.json().get("daily", {})

    times = daily.get("time", [])
    columns = zip(
        times,
        daily.get("temperature_2m_max", []),
        daily.get("temperature_2m_min", []),
        daily.get("temperature_2m_mean", []),
        daily.get("precipitation_sum", []),
        daily.get("weather_code", []),
    )

    weather = {}
    for day, t_max, t_min, t_mean, precipitation, code in columns:
        if t_mean is None:  # Archive gaps
            continue
        code = int(code or 0)
        weather[day] = WeatherData(
            date=date.fromisoformat(day),
            temp_max=float(t_max if t_max is not None else t_mean),
            temp_min=float(t_min if t_min is not None else t_mean),
            temp_mean=float(t_mean),
            precipitation_mm=float(precipitation or 0.0),
            weather_code=code,
            weather_desc=weather_description(code),
        )

    logger.info("Fetched weather data: days=%d", len(weather))
    return weather


def fetch_weather_for_dates(
    dates: Iterable[date],
    latitude: float = DEFAULT_LATITUDE,
    longitude: float = DEFAULT_LONGITUDE,
    cache: TTLCache | None = None,
) -> dict[str, WeatherData]:
    """Fetch weather covering every given date, consulting the cache first.

    Weather is optional context: any failure is logged and an empty mapping
    returned.
    """
    dates = list(dates)
    if not dates:
        return {}

    start, end = min(dates), max(dates)
    cache_key = f"weather_{latitude:.4f}_{longitude:.4f}_{start.isoformat()}_{end.isoformat()}"

    if cache is not None:
        try:
            found, cached = cache.get(cache_key, kind=CACHE_KIND, decode=_decode_weather)
        except StorageError as e:
            logger.warning("Failed to load weather from cache: %s", e)
            found, cached = False, None
        if found:
            logger.debug("Loaded weather from cache: days=%d", len(cached))
            return cached

    try:
        weather = fetch_daily_weather(start, end, latitude, longitude)
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Failed to fetch weather data: %s", e)
        return {}

    if cache is not None:
        try:
            cache.set(
                cache_key,
                {day: w.to_dict() for day, w in weather.items()},
                CACHE_TTL,
                kind=CACHE_KIND,
            )
        except StorageError as e:
            logger.warning("Failed to cache weather data: %s", e)

    return weather


def _decode_weather(data: dict) -> dict[str, WeatherData]:
    return {day: WeatherData.from_dict(w) for day, w in data.items()}
