"""Turn analysis figures into prioritised recommendations."""

from datetime import date, timedelta

from ..models import (
    ANOMALY_CONSUMPTION_SPIKE,
    ANOMALY_LOW_USAGE,
    PAYMENT_OVERPAYING,
    PAYMENT_UNDERPAYING,
    AnalysisResult,
    Insight,
)

CATEGORY_PAYMENT = "payment"
CATEGORY_USAGE = "usage"
CATEGORY_SEASONAL = "seasonal"
CATEGORY_EXPORT = "export"

PRIORITY_HIGH = "high"
PRIORITY_MEDIUM = "medium"
PRIORITY_LOW = "low"

# Balance thresholds (pounds)
DEBIT_WARNING_BALANCE = -50.0
CREDIT_NOTICE_BALANCE = 100.0
HIGH_CREDIT_BALANCE = 500.0
HIGH_CREDIT_MONTHS = 6.0

RECENT_ANOMALY_DAYS = 7
WINTER_MONTHS = {11, 12, 1, 2}
LOW_SOLAR_MONTHS = {10, 11, 12, 1, 2, 3}


def generate_insights(result: AnalysisResult, today: date) -> list[Insight]:
    """Build insights in presentation order: payment, balance, usage, seasonal, export."""
    insights = []
    insights.extend(_payment_insights(result))
    insights.extend(_balance_insights(result))

    cutoff = today - timedelta(days=RECENT_ANOMALY_DAYS)
    recent = [
        a
        for a in result.anomalies
        if a.date > cutoff and a.kind in (ANOMALY_CONSUMPTION_SPIKE, ANOMALY_LOW_USAGE)
    ]
    if recent:
        insights.append(
            Insight(
                category=CATEGORY_USAGE,
                priority=PRIORITY_MEDIUM,
                title="Recent Unusual Usage Detected",
                description=f"Detected {len(recent)} unusual consumption patterns in the last 7 days",
                action="Review your recent energy usage to identify any changes in consumption patterns",
            )
        )

    if today.month in WINTER_MONTHS:
        insights.append(
            Insight(
                category=CATEGORY_SEASONAL,
                priority=PRIORITY_LOW,
                title="Winter Usage Period",
                description="Currently in winter months when energy usage typically increases",
                action="Monitor your usage closely as heating costs may be higher than summer averages",
            )
        )

    if result.avg_daily_export_kwh > 0:
        insights.extend(generate_export_insights(result, today.month))

    return insights


def _payment_insights(result: AnalysisResult) -> list[Insight]:
    current = result.current_payment
    recommended = result.recommended_payment
    if current <= 0:
        return []

    if result.payment_status == PAYMENT_UNDERPAYING:
        return [
            Insight(
                category=CATEGORY_PAYMENT,
                priority=PRIORITY_HIGH,
                title="Direct Debit Increase Recommended",
                description=(
                    f"Your current Direct Debit (£{current:.2f}) is lower than recommended "
                    f"(£{recommended:.2f}). You may build up debt over time."
                ),
                action=f"Consider increasing your Direct Debit by £{recommended - current:.2f} per month",
            )
        ]
    if result.payment_status == PAYMENT_OVERPAYING:
        return [
            Insight(
                category=CATEGORY_PAYMENT,
                priority=PRIORITY_MEDIUM,
                title="Direct Debit Decrease Possible",
                description=(
                    f"Your current Direct Debit (£{current:.2f}) is higher than needed "
                    f"(£{recommended:.2f}). You're building up credit."
                ),
                action=f"Consider decreasing your Direct Debit by £{current - recommended:.2f} per month",
            )
        ]
    return [
        Insight(
            category=CATEGORY_PAYMENT,
            priority=PRIORITY_LOW,
            title="Direct Debit Well Balanced",
            description=f"Your current Direct Debit (£{current:.2f}) is appropriate for your usage",
            action="No action needed - continue monitoring your usage",
        )
    ]


def _balance_insights(result: AnalysisResult) -> list[Insight]:
    balance = result.current_balance
    projected = result.projected_monthly_cost

    if balance < DEBIT_WARNING_BALANCE:
        return [
            Insight(
                category=CATEGORY_PAYMENT,
                priority=PRIORITY_HIGH,
                title="Account in Debit",
                description=f"Your account has a debit balance of £{abs(balance):.2f}",
                action="Consider making a payment or increasing your Direct Debit to clear the debt",
            )
        ]

    if balance <= CREDIT_NOTICE_BALANCE:
        return []

    if projected <= 0:
        # No usage cost to measure the credit against
        return [
            Insight(
                category=CATEGORY_PAYMENT,
                priority=PRIORITY_MEDIUM,
                title="Credit Balance Available",
                description=f"Your account has a credit balance of £{balance:.2f}",
                action="Consider requesting a refund or slightly reducing your Direct Debit while maintaining seasonal coverage",
            )
        ]

    months_of_credit = balance / projected
    if balance > HIGH_CREDIT_BALANCE and months_of_credit > HIGH_CREDIT_MONTHS:
        optimal = max(0.0, projected - balance / 12)
        return [
            Insight(
                category=CATEGORY_PAYMENT,
                priority=PRIORITY_HIGH,
                title="High Credit Balance - Payment Adjustment Recommended",
                description=(
                    f"Your account has £{balance:.2f} credit ({months_of_credit:.1f} months at current usage). "
                    "This credit should be utilized rather than held."
                ),
                action=(
                    f"Consider reducing Direct Debit to £{optimal:.0f}/month to gradually use your credit "
                    f"over 12 months, or request a partial refund of £{balance / 2:.0f}"
                ),
            )
        ]

    return [
        Insight(
            category=CATEGORY_PAYMENT,
            priority=PRIORITY_MEDIUM,
            title="Credit Balance Available",
            description=f"Your account has a credit balance of £{balance:.2f} ({months_of_credit:.1f} months coverage)",
            action="Consider requesting a refund or slightly reducing your Direct Debit while maintaining seasonal coverage",
        )
    ]


def generate_export_insights(result: AnalysisResult, month: int) -> list[Insight]:
    """Insights about solar/battery export performance."""
    import_kwh = result.avg_daily_electricity_kwh
    export_kwh = result.avg_daily_export_kwh
    net_import = import_kwh - export_kwh
    export_ratio = export_kwh / import_kwh * 100 if import_kwh > 0 else 0.0

    import_cost = result.avg_daily_cost_electricity
    earnings = result.avg_daily_earnings_export
    net_cost = import_cost - earnings
    savings_rate = earnings / import_cost * 100 if import_cost > 0 else 0.0

    insights = []

    if export_ratio >= 50:
        insights.append(
            Insight(
                category=CATEGORY_EXPORT,
                priority=PRIORITY_HIGH,
                title="Excellent Export Performance",
                description=(
                    f"You're exporting {export_ratio:.1f}% of your imported electricity ({export_kwh:.1f} kWh/day). "
                    "Your solar/battery system is performing very well!"
                ),
                action=(
                    f"You're earning £{earnings:.2f}/day from exports, offsetting {savings_rate:.1f}% of your "
                    "import costs. Consider if you can time more usage during generation periods to increase "
                    "self-consumption."
                ),
            )
        )
    elif export_ratio >= 30:
        insights.append(
            Insight(
                category=CATEGORY_EXPORT,
                priority=PRIORITY_MEDIUM,
                title="Good Export Performance",
                description=(
                    f"You're exporting {export_ratio:.1f}% of your imported electricity ({export_kwh:.1f} kWh/day). "
                    "Your system is providing good returns."
                ),
                action=(
                    f"Earning £{earnings:.2f}/day from exports ({savings_rate:.1f}% of import costs). Look for "
                    "opportunities to shift more usage to daylight hours to maximize self-consumption."
                ),
            )
        )
    else:
        insights.append(
            Insight(
                category=CATEGORY_EXPORT,
                priority=PRIORITY_MEDIUM,
                title="Export Performance Review",
                description=(
                    f"You're exporting {export_kwh:.1f} kWh/day ({export_ratio:.1f}% of imports). This may indicate "
                    "high self-consumption or limited generation."
                ),
                action=(
                    f"Earning £{earnings:.2f}/day from exports. Review if generation is meeting expectations or "
                    "if system maintenance is needed."
                ),
            )
        )

    if net_import < 5:
        insights.append(
            Insight(
                category=CATEGORY_EXPORT,
                priority=PRIORITY_HIGH,
                title="Near Energy Independence",
                description=(
                    f"Your net grid import is only {net_import:.1f} kWh/day! Your exports ({export_kwh:.1f} kWh) "
                    f"nearly match your imports ({import_kwh:.1f} kWh)."
                ),
                action=(
                    "Excellent self-sufficiency! Consider battery storage optimization to further reduce grid "
                    "dependency, especially during peak rate periods."
                ),
            )
        )
    elif net_import < 10:
        insights.append(
            Insight(
                category=CATEGORY_EXPORT,
                priority=PRIORITY_MEDIUM,
                title="Strong Energy Self-Sufficiency",
                description=(
                    f"Your net grid import is {net_import:.1f} kWh/day. Exports offset a significant portion of "
                    "your consumption."
                ),
                action=(
                    f"With {net_import:.1f} kWh/day net import at £{net_cost:.2f}/day net cost, you're achieving "
                    "good grid independence. Review battery charging patterns to reduce peak-time imports."
                ),
            )
        )

    if earnings > 0.50:
        insights.append(
            Insight(
                category=CATEGORY_EXPORT,
                priority=PRIORITY_MEDIUM,
                title="Strong Export Earnings",
                description=(
                    f"Your exports are generating £{earnings:.2f}/day (£{earnings * 30:.2f}/month, "
                    f"~£{earnings * 365:.0f}/year)"
                ),
                action=(
                    f"Export earnings offset {savings_rate:.1f}% of your import costs. Review your export tariff "
                    "rate to ensure you're getting the best rate available."
                ),
            )
        )

    if month in LOW_SOLAR_MONTHS:
        insights.append(
            Insight(
                category=CATEGORY_EXPORT,
                priority=PRIORITY_LOW,
                title="Winter Export Performance",
                description=(
                    "Winter months typically see 50-70% lower solar generation. Your current "
                    f"{export_kwh:.1f} kWh/day export is expected to increase in spring/summer."
                ),
                action=(
                    "Track your export performance over the coming months. Spring/summer exports should "
                    "significantly increase if your system is working optimally."
                ),
            )
        )
    else:
        insights.append(
            Insight(
                category=CATEGORY_EXPORT,
                priority=PRIORITY_LOW,
                title="Peak Solar Season Performance",
                description=(
                    f"Currently in peak solar season. Your {export_kwh:.1f} kWh/day export represents optimal "
                    "generation conditions."
                ),
                action=(
                    "This is your baseline for optimal performance. Compare winter exports to this rate to gauge "
                    "seasonal variations."
                ),
            )
        )

    if import_kwh > 0:
        grid_dependency = net_import / import_kwh * 100
        if grid_dependency < 50:
            insights.append(
                Insight(
                    category=CATEGORY_EXPORT,
                    priority=PRIORITY_HIGH,
                    title="Exceptional Grid Independence",
                    description=(
                        f"You're only {grid_dependency:.1f}% grid-dependent! Your generation and exports mean "
                        "you're mostly energy independent."
                    ),
                    action=(
                        "Outstanding performance! Share your setup and optimizations with the community. Consider "
                        "whether additional battery capacity could reduce grid dependency further."
                    ),
                )
            )

    return insights
