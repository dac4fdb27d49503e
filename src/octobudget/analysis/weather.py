"""Weather context for anomalies, and suppression of weather-explained spikes."""

import logging
from typing import Mapping, Sequence

from ..models import ANOMALY_CONSUMPTION_SPIKE, FUEL_ELECTRICITY, FUEL_GAS, Anomaly, WeatherData

logger = logging.getLogger(__name__)

# Suppression thresholds (°C / %)
GAS_COLD_THRESHOLD_C = 10.0  # gas spikes below this mean temp are heating demand
ELECTRICITY_COLD_THRESHOLD_C = 5.0
ELECTRICITY_HOT_THRESHOLD_C = 28.0
ELECTRICITY_MAX_WEATHER_DEVIATION = 100.0  # spikes at or above this stay flagged


def enrich_anomalies_with_weather(
    anomalies: Sequence[Anomaly], weather_by_date: Mapping[str, WeatherData]
) -> None:
    """Attach weather to each anomaly whose ISO date is in the mapping."""
    for anomaly in anomalies:
        weather = weather_by_date.get(anomaly.date.isoformat())
        if weather is not None:
            anomaly.weather = weather


def is_weather_expected(anomaly: Anomaly) -> bool:
    """Decide whether a spike is plausibly explained by the day's temperature.

    Only consumption spikes with weather attached are ever explained. Gas
    spikes are explained by a cold day. Electricity spikes are explained by a
    very cold or very hot day, but only while the spike stays moderate.
    """
    if anomaly.kind != ANOMALY_CONSUMPTION_SPIKE or anomaly.weather is None:
        return False

    temp = anomaly.weather.temp_mean
    if anomaly.fuel_type == FUEL_GAS:
        return temp < GAS_COLD_THRESHOLD_C

    if anomaly.fuel_type == FUEL_ELECTRICITY:
        extreme = temp < ELECTRICITY_COLD_THRESHOLD_C or temp > ELECTRICITY_HOT_THRESHOLD_C
        return extreme and anomaly.deviation_percent < ELECTRICITY_MAX_WEATHER_DEVIATION

    return False


def filter_weather_expected_anomalies(anomalies: Sequence[Anomaly]) -> list[Anomaly]:
    """Drop anomalies explained by the weather; keep everything else unchanged."""
    filtered = []
    for anomaly in anomalies:
        if is_weather_expected(anomaly):
            logger.debug(
                "Filtering weather-expected %s spike on %s (mean temp %.1f°C, deviation %.1f%%)",
                anomaly.fuel_type,
                anomaly.date.isoformat(),
                anomaly.weather.temp_mean,
                anomaly.deviation_percent,
            )
            continue
        filtered.append(anomaly)

    removed = len(anomalies) - len(filtered)
    if removed:
        logger.info(
            "Filtered weather-expected anomalies: original=%d kept=%d removed=%d",
            len(anomalies),
            len(filtered),
            removed,
        )
    return filtered
