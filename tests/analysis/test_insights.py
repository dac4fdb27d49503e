"""Tests for insight generation."""

from datetime import date, datetime

import pytest
from octobudget.analysis.insights import generate_export_insights, generate_insights
from octobudget.models import (
    ANOMALY_CONSUMPTION_SPIKE,
    PAYMENT_BALANCED,
    PAYMENT_OVERPAYING,
    PAYMENT_UNDERPAYING,
    AnalysisResult,
    Anomaly,
)

SUMMER_DAY = date(2025, 7, 15)
WINTER_DAY = date(2025, 1, 15)


def make_result(**kwargs) -> AnalysisResult:
    defaults = {"generated_at": datetime(2025, 7, 15, 9, 0), "projected_monthly_cost": 100.0}
    defaults.update(kwargs)
    return AnalysisResult(**defaults)


def titles(insights) -> list[str]:
    return [i.title for i in insights]


def test_no_insights_for_quiet_summer_account():
    assert generate_insights(make_result(), SUMMER_DAY) == []


def test_underpaying_insight():
    """Test an underpaying Direct Debit yields a high priority increase recommendation."""
    result = make_result(current_payment=100.0, recommended_payment=150.0, payment_status=PAYMENT_UNDERPAYING)

    insights = generate_insights(result, SUMMER_DAY)

    assert titles(insights) == ["Direct Debit Increase Recommended"]
    assert insights[0].priority == "high"
    assert insights[0].category == "payment"
    assert "£50.00" in insights[0].action


def test_overpaying_and_balanced_insights():
    over = make_result(current_payment=200.0, recommended_payment=150.0, payment_status=PAYMENT_OVERPAYING)
    balanced = make_result(current_payment=150.0, recommended_payment=150.0, payment_status=PAYMENT_BALANCED)

    assert titles(generate_insights(over, SUMMER_DAY)) == ["Direct Debit Decrease Possible"]
    assert generate_insights(over, SUMMER_DAY)[0].priority == "medium"
    assert titles(generate_insights(balanced, SUMMER_DAY)) == ["Direct Debit Well Balanced"]


def test_debit_balance_insight():
    insights = generate_insights(make_result(current_balance=-75.0), SUMMER_DAY)

    assert titles(insights) == ["Account in Debit"]
    assert "£75.00" in insights[0].description


def test_credit_balance_insight():
    insights = generate_insights(make_result(current_balance=250.0), SUMMER_DAY)

    assert titles(insights) == ["Credit Balance Available"]
    assert "2.5 months coverage" in insights[0].description


def test_high_credit_balance_insight():
    """Test a large credit covering more than six months suggests a lower payment and a refund."""
    insights = generate_insights(make_result(current_balance=900.0, projected_monthly_cost=100.0), SUMMER_DAY)

    assert titles(insights) == ["High Credit Balance - Payment Adjustment Recommended"]
    assert insights[0].priority == "high"
    assert "£25/month" in insights[0].action
    assert "£450" in insights[0].action


def test_credit_balance_without_usage_cost():
    insights = generate_insights(make_result(current_balance=900.0, projected_monthly_cost=0.0), SUMMER_DAY)
    assert titles(insights) == ["Credit Balance Available"]


def test_recent_anomaly_insight():
    """Test anomalies within the last seven days are counted."""
    recent = Anomaly(date(2025, 7, 13), "electricity", ANOMALY_CONSUMPTION_SPIKE, "x", 20.0, 10.0, 100.0)
    old = Anomaly(date(2025, 6, 1), "electricity", ANOMALY_CONSUMPTION_SPIKE, "x", 20.0, 10.0, 100.0)

    insights = generate_insights(make_result(anomalies=[recent, old]), SUMMER_DAY)

    assert titles(insights) == ["Recent Unusual Usage Detected"]
    assert "Detected 1 unusual" in insights[0].description


def test_winter_insight():
    assert titles(generate_insights(make_result(), WINTER_DAY)) == ["Winter Usage Period"]


def test_insight_order():
    """Test payment insights come before balance, usage and seasonal ones."""
    recent = Anomaly(date(2025, 1, 14), "gas", ANOMALY_CONSUMPTION_SPIKE, "x", 20.0, 10.0, 100.0)
    result = make_result(
        current_payment=100.0,
        recommended_payment=150.0,
        payment_status=PAYMENT_UNDERPAYING,
        current_balance=-80.0,
        anomalies=[recent],
    )

    assert titles(generate_insights(result, WINTER_DAY)) == [
        "Direct Debit Increase Recommended",
        "Account in Debit",
        "Recent Unusual Usage Detected",
        "Winter Usage Period",
    ]


def test_export_insights_strong_exporter_in_summer():
    result = make_result(
        avg_daily_electricity_kwh=10.0,
        avg_daily_export_kwh=8.0,
        avg_daily_cost_electricity=2.0,
        avg_daily_earnings_export=1.2,
    )

    assert titles(generate_export_insights(result, 7)) == [
        "Excellent Export Performance",
        "Near Energy Independence",
        "Strong Export Earnings",
        "Peak Solar Season Performance",
        "Exceptional Grid Independence",
    ]


def test_export_insights_modest_exporter_in_winter():
    result = make_result(
        avg_daily_electricity_kwh=20.0,
        avg_daily_export_kwh=2.0,
        avg_daily_cost_electricity=5.0,
        avg_daily_earnings_export=0.3,
    )

    assert titles(generate_export_insights(result, 12)) == [
        "Export Performance Review",
        "Winter Export Performance",
    ]


def test_export_insights_without_import():
    """Test export insights do not divide by a zero import figure."""
    result = make_result(avg_daily_electricity_kwh=0.0, avg_daily_export_kwh=3.0)

    insights = generate_export_insights(result, 6)

    assert "Exceptional Grid Independence" not in titles(insights)
    assert titles(insights)[0] == "Export Performance Review"


@pytest.mark.parametrize("export_kwh,title", [(3.5, "Good Export Performance"), (6.0, "Excellent Export Performance")])
def test_export_ratio_bands(export_kwh, title):
    result = make_result(avg_daily_electricity_kwh=10.0, avg_daily_export_kwh=export_kwh)
    assert titles(generate_export_insights(result, 6))[0] == title
