"""Tests for the analysis pipeline."""

from datetime import date, datetime, timedelta

import pytest
from octobudget.analysis.analyzer import analyze, format_analysis_text
from octobudget.config import Config
from octobudget.exceptions import DataError
from octobudget.models import (
    ANOMALY_CONSUMPTION_SPIKE,
    PAYMENT_UNDERPAYING,
    Account,
    Agreement,
    CollectedData,
    Consumption,
    Tariff,
    WeatherData,
)

NOW = datetime(2025, 7, 15, 12, 0)


def daily_consumption(values: list[float], rate: float = 20.0) -> list[Consumption]:
    consumptions = []
    for i, kwh in enumerate(values):
        start = datetime(2025, 7, 1, 12, 0) + timedelta(days=i)
        consumptions.append(Consumption(start, start + timedelta(minutes=30), kwh, cost_pence=kwh * rate))
    return consumptions


def cold_weather(dates):
    return {
        d.isoformat(): WeatherData(d, temp_max=4.0, temp_min=-1.0, temp_mean=2.0, weather_desc="Snow")
        for d in dates
    }


@pytest.fixture
def config():
    return Config(account_id="A-1234ABCD", analysis_period_days=10, direct_debit_amount=55.0)


def test_analyze_requires_account(config):
    with pytest.raises(DataError, match="account"):
        analyze(CollectedData(account=None), config, now=NOW)


def test_analyze_averages_and_payment(config):
    """Test daily averages divide by the period length and feed the payment recommendation."""
    data = CollectedData(
        account=Account(number="A-1234ABCD", balance=-12.5),
        electricity_consumption=daily_consumption([10.0] * 10),
        electricity_export=daily_consumption([2.0] * 10, rate=15.0),
    )

    result = analyze(data, config, now=NOW)

    assert result.period_days == 10
    assert result.period_start == NOW - timedelta(days=10)
    assert result.current_balance == -12.5
    assert result.avg_daily_electricity_kwh == pytest.approx(10.0)
    assert result.avg_daily_cost_electricity == pytest.approx(2.0)
    assert result.avg_daily_export_kwh == pytest.approx(2.0)
    assert result.avg_daily_earnings_export == pytest.approx(0.3)
    assert result.avg_daily_cost_total == pytest.approx(1.7)
    assert result.projected_monthly_cost == pytest.approx(51.0)
    # 1.7 x 30 x 1.0 x 1.1 = 56.1 -> 55
    assert result.recommended_payment == 55.0
    assert result.payment_status == "Balanced"


def test_analyze_short_data_uses_period_not_record_count(config):
    data = CollectedData(account=Account(number="A-1"), electricity_consumption=daily_consumption([10.0] * 5))

    result = analyze(data, config, now=NOW)

    assert result.avg_daily_electricity_kwh == pytest.approx(5.0)
    assert result.anomalies == []


def test_analyze_detects_spike_and_underpayment(config):
    config.direct_debit_amount = 10.0
    data = CollectedData(
        account=Account(number="A-1"),
        electricity_consumption=daily_consumption([10.0] * 9 + [50.0]),
    )

    result = analyze(data, config, now=NOW)

    assert [(a.date, a.kind) for a in result.anomalies] == [(date(2025, 7, 10), ANOMALY_CONSUMPTION_SPIKE)]
    assert result.payment_status == PAYMENT_UNDERPAYING
    assert result.insights[0].title == "Direct Debit Increase Recommended"


def test_analyze_filters_weather_expected_gas_spike(config):
    """Test a gas spike on a cold day is dropped once weather is attached."""
    data = CollectedData(account=Account(number="A-1"), gas_consumption=daily_consumption([10.0] * 9 + [50.0]))

    without_weather = analyze(data, config, now=NOW)
    with_weather = analyze(data, config, weather_lookup=cold_weather, now=NOW)

    assert len(without_weather.anomalies) == 1
    assert with_weather.anomalies == []


def test_analyze_survives_weather_failure(config):
    """Test a failing weather lookup leaves anomalies unfiltered instead of failing the run."""

    def broken_lookup(dates):
        raise RuntimeError("weather service down")

    data = CollectedData(account=Account(number="A-1"), gas_consumption=daily_consumption([10.0] * 9 + [50.0]))

    result = analyze(data, config, weather_lookup=broken_lookup, now=NOW)

    assert len(result.anomalies) == 1
    assert result.anomalies[0].weather is None


def test_analyze_reports_tariff_changes(config):
    agreements = [
        Agreement(datetime(2025, 1, 1), datetime(2025, 3, 31), Tariff(display_name="Fix 1", unit_rate=24.0)),
        Agreement(datetime(2025, 4, 1), None, Tariff(display_name="Fix 2", unit_rate=26.5)),
    ]
    data = CollectedData(account=Account(number="A-1"), electricity_agreements=agreements)

    result = analyze(data, config, now=NOW)

    assert len(result.tariff_changes) == 1
    assert result.tariff_changes[0].impact_description == "Unit rate increased by 2.50p/kWh"
    assert result.period_start is None


def test_format_analysis_text(config):
    data = CollectedData(
        account=Account(number="A-1", balance=20.0),
        electricity_consumption=daily_consumption([10.0] * 9 + [50.0]),
    )

    text = format_analysis_text(analyze(data, config, now=NOW))

    assert "Energy Analysis: 2025-07-05 to 2025-07-15 (10 days)" in text
    assert "Recommended Direct Debit" in text
    assert "2025-07-10 electricity consumption_spike" in text
