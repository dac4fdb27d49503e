"""Tests for the seasonal Direct Debit recommendation."""

import pytest
from octobudget.analysis.payments import (
    calculate_recommended_payment,
    determine_payment_status,
    round_to_nearest,
    seasonal_multiplier,
)
from octobudget.models import PAYMENT_BALANCED, PAYMENT_OVERPAYING, PAYMENT_UNDERPAYING, PAYMENT_UNKNOWN


def test_recommended_payment_winter():
    """Test £4/day in January: 120 x 1.4 x 1.1 = 184.8, rounded to 185."""
    assert calculate_recommended_payment(4.0, 1) == 185.0


def test_recommended_payment_summer():
    # 4 x 30 x 1.1 = 132 -> 130
    assert calculate_recommended_payment(4.0, 7) == 130.0


def test_recommended_payment_shoulder():
    # 4 x 30 x 1.2 x 1.1 = 158.4 -> 160
    assert calculate_recommended_payment(4.0, 10) == 160.0


def test_recommended_payment_is_multiple_of_five():
    for daily in (0.37, 1.11, 2.5, 3.99, 7.42):
        for month in range(1, 13):
            assert calculate_recommended_payment(daily, month) % 5 == 0


def test_recommended_payment_zero():
    assert calculate_recommended_payment(0.0, 1) == 0.0


def test_net_exporter_gets_negative_recommendation():
    """Test a negative net daily cost is rounded away from zero too."""
    assert calculate_recommended_payment(-1.0, 7) == -35.0


@pytest.mark.parametrize(
    "month,expected",
    [(1, 1.4), (2, 1.4), (3, 1.2), (4, 1.2), (5, 1.0), (8, 1.0), (9, 1.2), (10, 1.2), (11, 1.4), (12, 1.4)],
)
def test_seasonal_multiplier(month, expected):
    assert seasonal_multiplier(month) == expected


@pytest.mark.parametrize(
    "value,expected",
    [(182.4, 180.0), (182.5, 185.0), (187.49, 185.0), (-2.5, -5.0), (-2.4, 0.0)],
)
def test_round_to_nearest(value, expected):
    assert round_to_nearest(value) == expected


@pytest.mark.parametrize(
    "recommended,current,expected",
    [
        (100.0, 0.0, PAYMENT_UNKNOWN),
        (100.0, 96.0, PAYMENT_BALANCED),
        (100.0, 104.99, PAYMENT_BALANCED),
        (100.0, 95.0, PAYMENT_UNDERPAYING),
        (100.0, 105.0, PAYMENT_OVERPAYING),
    ],
)
def test_determine_payment_status(recommended, current, expected):
    assert determine_payment_status(recommended, current) == expected
