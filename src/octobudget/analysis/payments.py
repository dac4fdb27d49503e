"""Seasonally adjusted Direct Debit recommendation."""

import math

from ..models import PAYMENT_BALANCED, PAYMENT_OVERPAYING, PAYMENT_UNDERPAYING, PAYMENT_UNKNOWN

DAYS_PER_MONTH = 30
PAYMENT_BUFFER = 1.10  # 10% headroom for unexpected usage
ROUNDING_UNIT = 5.0  # recommend whole £5 amounts
BALANCED_TOLERANCE = 5.0  # within £5 of the recommendation counts as balanced

WINTER_MULTIPLIER = 1.40  # Nov-Feb
SHOULDER_MULTIPLIER = 1.20  # Mar-Apr, Sep-Oct
SUMMER_MULTIPLIER = 1.00  # May-Aug


def seasonal_multiplier(month: int) -> float:
    """Expected usage uplift for the given calendar month (1-12)."""
    if month >= 11 or month <= 2:
        return WINTER_MULTIPLIER
    if 3 <= month <= 4 or 9 <= month <= 10:
        return SHOULDER_MULTIPLIER
    return SUMMER_MULTIPLIER


def round_to_nearest(value: float, unit: float = ROUNDING_UNIT) -> float:
    """Round to the nearest multiple of unit, halves away from zero."""
    return math.copysign(math.floor(abs(value) / unit + 0.5) * unit, value)


def calculate_recommended_payment(avg_daily_cost: float, month: int) -> float:
    """Recommend a monthly payment (pounds) from the average net daily cost.

    base monthly = daily x 30; annual = base x 12 x seasonal multiplier;
    monthly = annual / 12 x 1.10, rounded to the nearest £5.
    """
    base_monthly = avg_daily_cost * DAYS_PER_MONTH
    annual_estimate = base_monthly * 12 * seasonal_multiplier(month)
    recommended = annual_estimate / 12 * PAYMENT_BUFFER
    return round_to_nearest(recommended)


def determine_payment_status(recommended: float, current: float) -> str:
    """Classify the current payment against the recommendation."""
    if not current:
        return PAYMENT_UNKNOWN
    if abs(recommended - current) < BALANCED_TOLERANCE:
        return PAYMENT_BALANCED
    if recommended > current:
        return PAYMENT_UNDERPAYING
    return PAYMENT_OVERPAYING
