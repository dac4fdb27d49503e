"""Analysis entry point: costs in, anomaly-annotated financial summary out."""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Mapping, Sequence

from ..config import Config
from ..exceptions import DataError
from ..models import FUEL_ELECTRICITY, FUEL_GAS, AnalysisResult, CollectedData, Consumption, WeatherData
from ..tariffs import detect_tariff_changes
from .anomalies import detect_anomalies
from .insights import generate_insights
from .payments import DAYS_PER_MONTH, calculate_recommended_payment, determine_payment_status
from .weather import enrich_anomalies_with_weather, filter_weather_expected_anomalies

logger = logging.getLogger(__name__)

WeatherLookup = Callable[[Sequence[date]], Mapping[str, WeatherData]]


def average_daily_kwh(consumptions: Sequence[Consumption], period_days: int) -> float:
    """Total kWh spread over the analysis period (not over the record count)."""
    if not consumptions:
        return 0.0
    return sum(c.consumption_kwh for c in consumptions) / period_days


def average_daily_cost(consumptions: Sequence[Consumption], period_days: int) -> float:
    """Total cost in pounds spread over the analysis period."""
    if not consumptions:
        return 0.0
    return sum(c.cost_pence for c in consumptions) / 100 / period_days


def analyze(
    data: CollectedData,
    config: Config,
    weather_lookup: WeatherLookup | None = None,
    now: datetime | None = None,
) -> AnalysisResult:
    """Run the full analysis pipeline over already-costed consumption data.

    Raises DataError when no account data is supplied. Every other gap
    (missing fuel, failed weather lookup) degrades the result instead.
    """
    logger.info("Starting analysis")
    if data.account is None:
        raise DataError("account", "account data is required for analysis")

    now = now or datetime.now()
    period_days = config.analysis_period_days

    result = AnalysisResult(
        generated_at=now,
        current_balance=data.account.balance,
        current_payment=config.direct_debit_amount,
        electricity_agreements=list(data.electricity_agreements),
        electricity_export_agreements=list(data.electricity_export_agreements),
        gas_agreements=list(data.gas_agreements),
    )

    if data.electricity_consumption or data.gas_consumption:
        result.period_days = period_days
        result.period_end = now
        result.period_start = now - timedelta(days=period_days)

    if data.electricity_consumption:
        logger.info("Analysis stage: electricity_consumption")
        result.avg_daily_electricity_kwh = average_daily_kwh(data.electricity_consumption, period_days)
        result.avg_daily_cost_electricity = average_daily_cost(data.electricity_consumption, period_days)
        result.anomalies.extend(
            detect_anomalies(data.electricity_consumption, FUEL_ELECTRICITY, config.anomaly_threshold)
        )

    if data.electricity_export:
        logger.info("Analysis stage: electricity_export")
        result.avg_daily_export_kwh = average_daily_kwh(data.electricity_export, period_days)
        result.avg_daily_earnings_export = average_daily_cost(data.electricity_export, period_days)
        logger.info(
            "Export analysis: %.2f kWh/day, £%.2f/day earnings",
            result.avg_daily_export_kwh,
            result.avg_daily_earnings_export,
        )

    if data.gas_consumption:
        logger.info("Analysis stage: gas_consumption")
        result.avg_daily_gas_kwh = average_daily_kwh(data.gas_consumption, period_days)
        result.avg_daily_cost_gas = average_daily_cost(data.gas_consumption, period_days)
        result.anomalies.extend(detect_anomalies(data.gas_consumption, FUEL_GAS, config.anomaly_threshold))

    result.avg_daily_cost_total = (
        result.avg_daily_cost_electricity - result.avg_daily_earnings_export + result.avg_daily_cost_gas
    )
    result.projected_monthly_cost = result.avg_daily_cost_total * DAYS_PER_MONTH

    logger.info("Analysis stage: payment_recommendation")
    result.recommended_payment = calculate_recommended_payment(result.avg_daily_cost_total, now.month)
    result.payment_status = determine_payment_status(result.recommended_payment, result.current_payment)

    logger.info("Analysis stage: tariff_changes")
    if len(data.electricity_agreements) > 1:
        result.tariff_changes.extend(detect_tariff_changes(data.electricity_agreements, FUEL_ELECTRICITY))
    if len(data.gas_agreements) > 1:
        result.tariff_changes.extend(detect_tariff_changes(data.gas_agreements, FUEL_GAS))

    if result.anomalies:
        logger.info("Analysis stage: weather_enrichment")
        if weather_lookup is not None:
            weather = _lookup_weather(weather_lookup, [a.date for a in result.anomalies])
            enrich_anomalies_with_weather(result.anomalies, weather)
        result.anomalies = filter_weather_expected_anomalies(result.anomalies)
        result.anomalies.sort(key=lambda a: (a.date, a.fuel_type))

    logger.info("Analysis stage: insights_generation")
    result.insights = generate_insights(result, now.date())

    logger.info(
        "Analysis completed: anomalies=%d tariff_changes=%d insights=%d",
        len(result.anomalies),
        len(result.tariff_changes),
        len(result.insights),
    )
    return result


def _lookup_weather(weather_lookup: WeatherLookup, dates: list[date]) -> Mapping[str, WeatherData]:
    try:
        return weather_lookup(dates) or {}
    except Exception:
        logger.warning("Weather lookup failed, continuing without weather context", exc_info=True)
        return {}


def format_analysis_text(result: AnalysisResult) -> str:
    """Format an analysis result as human-readable text."""
    lines = []
    if result.period_start and result.period_end:
        lines.append(
            f"Energy Analysis: {result.period_start.date().isoformat()} to "
            f"{result.period_end.date().isoformat()} ({result.period_days} days)"
        )
    else:
        lines.append("Energy Analysis: no consumption data")

    lines.extend([
        "",
        "Daily Averages:",
        f"  - Electricity: {result.avg_daily_electricity_kwh:.2f} kWh (£{result.avg_daily_cost_electricity:.2f})",
    ])
    if result.avg_daily_export_kwh > 0:
        lines.append(
            f"  - Export: {result.avg_daily_export_kwh:.2f} kWh (£{result.avg_daily_earnings_export:.2f} earned)"
        )
    if result.avg_daily_gas_kwh > 0:
        lines.append(f"  - Gas: {result.avg_daily_gas_kwh:.2f} kWh (£{result.avg_daily_cost_gas:.2f})")
    lines.append(f"  - Net cost: £{result.avg_daily_cost_total:.2f}/day")

    lines.extend([
        "",
        "Payments:",
        f"  - Balance: £{result.current_balance:.2f}",
        f"  - Projected monthly cost: £{result.projected_monthly_cost:.2f}",
        f"  - Recommended Direct Debit: £{result.recommended_payment:.2f}",
        f"  - Current Direct Debit: £{result.current_payment:.2f} ({result.payment_status})",
    ])

    if result.anomalies:
        lines.extend(["", "Anomalies:"])
        for a in result.anomalies:
            weather = f", {a.weather.temp_mean:.1f}°C {a.weather.weather_desc}" if a.weather else ""
            lines.append(
                f"  - {a.date.isoformat()} {a.fuel_type} {a.kind}: {a.actual_value:.2f} kWh "
                f"vs {a.expected_value:.2f} expected ({a.deviation_percent:+.1f}%{weather})"
            )

    if result.tariff_changes:
        lines.extend(["", "Tariff Changes:"])
        for change in result.tariff_changes:
            lines.append(
                f"  - {change.change_date.date().isoformat()} {change.fuel_type}: "
                f"{change.old_tariff_name} -> {change.new_tariff_name} ({change.impact_description})"
            )

    if result.insights:
        lines.extend(["", "Insights:"])
        for insight in result.insights:
            lines.append(f"  - [{insight.priority}] {insight.title}: {insight.action}")

    return "\n".join(lines)
