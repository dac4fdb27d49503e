"""Statistical anomaly detection on daily consumption totals."""

import logging
import math
from typing import Sequence

from ..models import ANOMALY_CONSUMPTION_SPIKE, ANOMALY_LOW_USAGE, Anomaly, Consumption
from ..tariffs import aggregate_to_daily

logger = logging.getLogger(__name__)

# Detection thresholds
MIN_DAYS = 7  # distinct days needed before any statistics are trusted
LOW_USAGE_RATIO = 0.1  # a day below 10% of the mean is "low usage"
SPIKE_STD_DEVS = 2.0  # a day above mean + 2 sigma is a candidate spike
DEFAULT_ANOMALY_THRESHOLD = 50.0  # % above mean a spike must also exceed


def calculate_mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def calculate_std_dev(values: Sequence[float], mean: float) -> float:
    """Population standard deviation."""
    if not values:
        return 0.0
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return math.sqrt(variance)


def deviation_percent(value: float, mean: float) -> float:
    return (value - mean) / mean * 100


def detect_anomalies(
    consumptions: Sequence[Consumption],
    fuel_type: str,
    threshold_percent: float = DEFAULT_ANOMALY_THRESHOLD,
) -> list[Anomaly]:
    """Flag unusually low or high consumption days.

    Algorithm:
    1. Aggregate intervals to daily totals; give up below MIN_DAYS days.
    2. Compute mean and population standard deviation of the daily kWh.
    3. low_usage: mean > 0 and the day is below LOW_USAGE_RATIO * mean.
    4. consumption_spike: std dev > 0, the day is above mean + SPIKE_STD_DEVS
       * std dev, and its deviation from the mean exceeds threshold_percent.

    The input is not modified. Result order is not significant.
    """
    daily = aggregate_to_daily(consumptions)
    if len(daily) < MIN_DAYS:
        logger.debug("Skipping %s anomaly detection: only %d days of data", fuel_type, len(daily))
        return []

    values = [d.consumption_kwh for d in daily]
    mean = calculate_mean(values)
    std_dev = calculate_std_dev(values, mean)

    anomalies = []
    for d in daily:
        if mean > 0 and d.consumption_kwh < mean * LOW_USAGE_RATIO:
            anomalies.append(
                Anomaly(
                    date=d.day,
                    fuel_type=fuel_type,
                    kind=ANOMALY_LOW_USAGE,
                    description=f"Unusually low {fuel_type} usage for this day",
                    actual_value=d.consumption_kwh,
                    expected_value=mean,
                    deviation_percent=deviation_percent(d.consumption_kwh, mean),
                )
            )
            continue

        if std_dev > 0 and d.consumption_kwh > mean + SPIKE_STD_DEVS * std_dev:
            deviation = deviation_percent(d.consumption_kwh, mean)
            if deviation <= threshold_percent:
                continue
            logger.warning(
                "Anomaly detected: %s %s on %s (%.1f%% above mean)",
                fuel_type,
                ANOMALY_CONSUMPTION_SPIKE,
                d.day.isoformat(),
                deviation,
            )
            anomalies.append(
                Anomaly(
                    date=d.day,
                    fuel_type=fuel_type,
                    kind=ANOMALY_CONSUMPTION_SPIKE,
                    description=f"Unusually high {fuel_type} consumption",
                    actual_value=d.consumption_kwh,
                    expected_value=mean,
                    deviation_percent=deviation,
                )
            )

    return anomalies
