"""Command-line interface for Octopus Energy bill analysis."""

import json
import logging
import sys
from functools import partial
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .analysis.analyzer import analyze
from .cache import mask_account_id
from .collector import Collector
from .collectors import open_meteo
from .collectors.octopus import OctopusClient
from .config import Config, load_config
from .exceptions import ConfigError, OctobudgetError, StorageError
from .models import PAYMENT_BALANCED, PAYMENT_OVERPAYING, PAYMENT_UNDERPAYING, AnalysisResult
from .storage import Storage

console = Console()

logger = logging.getLogger(__name__)

STATUS_STYLES = {
    PAYMENT_BALANCED: "green",
    PAYMENT_UNDERPAYING: "red",
    PAYMENT_OVERPAYING: "yellow",
}

PRIORITY_STYLES = {"high": "red", "medium": "yellow", "low": "dim"}


def setup_logging(debug: bool = False) -> None:
    """Send log records to stderr through rich, keeping stdout for results."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


def _load_settings(config_path: str | None, account: str | None = None, key: str | None = None) -> Config:
    config = load_config(Path(config_path) if config_path else None)
    if account:
        config.account_id = account
    if key:
        config.api_key = key
    return config


def _load_account_settings(config_path: str | None, account: str | None) -> Config:
    config = _load_settings(config_path, account)
    if not config.account_id:
        raise ConfigError("account_id is required (use --account or OCTOPUS_ACCOUNT_ID)")
    return config


def _fail(error: Exception) -> None:
    console.print(f"Error: {error}", style="red", markup=False)
    sys.exit(1)


@click.group()
def cli():
    """Octopus Energy bill analysis - costs, anomalies and Direct Debit advice."""
    pass


@cli.command("analyze")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Path to config.yaml")
@click.option("--account", help="Octopus account number (overrides config)")
@click.option("--key", help="Octopus API key (overrides config)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("--output", "output_path", type=click.Path(), help="Also write the JSON result to this file")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def analyze_cmd(config_path, account, key, as_json, output_path, debug):
    """Collect account data, analyze it and recommend a Direct Debit."""
    try:
        config = _load_settings(config_path, account, key)
        setup_logging(debug or config.debug)
        config.validate()
    except OctobudgetError as e:
        _fail(e)

    logger.info("Analyzing account %s", mask_account_id(config.account_id))

    try:
        with Storage(config.storage_path, config.account_id) as storage, OctopusClient(
            config.account_id, config.api_key
        ) as client:
            data = Collector(client, config, storage).collect_all()
            weather_lookup = partial(
                open_meteo.fetch_weather_for_dates,
                latitude=config.latitude,
                longitude=config.longitude,
                cache=storage.cache,
            )
            result = analyze(data, config, weather_lookup=weather_lookup)

            try:
                path = storage.save_analysis_result(result, config.account_id)
                logger.info("Saved analysis to %s", path)
            except StorageError as e:
                logger.warning("Failed to save analysis result: %s", e)
    except OctobudgetError as e:
        _fail(e)

    if output_path:
        try:
            with open(output_path, "w") as f:
                json.dump(result.to_dict(), f, indent=2)
        except OSError as e:
            _fail(e)
        console.print(f"[green]Wrote analysis to {output_path}[/green]")

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        print_summary(result)


@cli.command("show")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Path to config.yaml")
@click.option("--account", help="Octopus account number (overrides config)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show_cmd(config_path, account, as_json):
    """Show the most recent saved analysis."""
    try:
        config = _load_account_settings(config_path, account)
        with Storage(config.storage_path, config.account_id) as storage:
            result = storage.load_latest_analysis(config.account_id)
    except OctobudgetError as e:
        _fail(e)

    if result is None:
        console.print("[yellow]No saved analysis found - run 'octobudget analyze' first[/yellow]")
        return

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        print_summary(result)


# Cache commands
@cli.group("cache")
def cache_cmd():
    """Account cache management commands."""
    pass


@cache_cmd.command("stats")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Path to config.yaml")
@click.option("--account", help="Octopus account number (overrides config)")
def cache_stats(config_path, account):
    """Show cache entry counts for the account."""
    try:
        config = _load_account_settings(config_path, account)
        with Storage(config.storage_path, config.account_id) as storage:
            stats = storage.cache.stats()
            cache_path = storage.cache.path
    except OctobudgetError as e:
        _fail(e)

    table = Table(title=f"Cache Statistics ({mask_account_id(config.account_id)})")
    table.add_column("Category", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Entries", str(stats["total"]))
    table.add_row("Expired", str(stats["expired"]))
    console.print(table)
    console.print(f"[dim]Cache file: {cache_path}[/dim]")


@cache_cmd.command("clear")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Path to config.yaml")
@click.option("--account", help="Octopus account number (overrides config)")
def cache_clear(config_path, account):
    """Remove every cached entry for the account."""
    try:
        config = _load_account_settings(config_path, account)
        with Storage(config.storage_path, config.account_id) as storage:
            count = storage.cache.clear()
    except OctobudgetError as e:
        _fail(e)

    console.print(f"[green]Cleared {count} cache entries[/green]")


def print_summary(result: AnalysisResult) -> None:
    """Print an analysis result as rich tables."""
    if result.period_start and result.period_end:
        console.print(
            f"[bold]Energy Analysis[/bold] {result.period_start.date()} to "
            f"{result.period_end.date()} ({result.period_days} days)"
        )
    else:
        console.print("[bold]Energy Analysis[/bold] [yellow]no consumption data[/yellow]")

    table = Table(title="Daily Averages")
    table.add_column("Fuel", style="cyan")
    table.add_column("kWh/day", justify="right")
    table.add_column("£/day", justify="right")
    table.add_row(
        "Electricity",
        f"{result.avg_daily_electricity_kwh:.2f}",
        f"{result.avg_daily_cost_electricity:.2f}",
    )
    if result.avg_daily_export_kwh > 0:
        table.add_row(
            "Export",
            f"{result.avg_daily_export_kwh:.2f}",
            f"-{result.avg_daily_earnings_export:.2f}",
        )
    if result.avg_daily_gas_kwh > 0:
        table.add_row("Gas", f"{result.avg_daily_gas_kwh:.2f}", f"{result.avg_daily_cost_gas:.2f}")
    table.add_row("[bold]Net[/bold]", "", f"[bold]{result.avg_daily_cost_total:.2f}[/bold]")
    console.print(table)

    status_style = STATUS_STYLES.get(result.payment_status, "dim")
    payments = Table(title="Payments")
    payments.add_column("Item", style="cyan")
    payments.add_column("Amount", justify="right")
    payments.add_row("Account balance", f"£{result.current_balance:.2f}")
    payments.add_row("Projected monthly cost", f"£{result.projected_monthly_cost:.2f}")
    payments.add_row("Recommended Direct Debit", f"£{result.recommended_payment:.2f}")
    payments.add_row(
        "Current Direct Debit",
        f"£{result.current_payment:.2f} [{status_style}]({result.payment_status})[/{status_style}]",
    )
    console.print(payments)

    if result.anomalies:
        anomalies = Table(title="Anomalies")
        anomalies.add_column("Date")
        anomalies.add_column("Fuel", style="cyan")
        anomalies.add_column("Type")
        anomalies.add_column("kWh", justify="right")
        anomalies.add_column("Expected", justify="right")
        anomalies.add_column("Deviation", justify="right")
        anomalies.add_column("Weather")
        for a in result.anomalies:
            weather = f"{a.weather.temp_mean:.1f}°C {a.weather.weather_desc}" if a.weather else ""
            anomalies.add_row(
                a.date.isoformat(),
                a.fuel_type,
                a.kind,
                f"{a.actual_value:.2f}",
                f"{a.expected_value:.2f}",
                f"{a.deviation_percent:+.1f}%",
                weather,
            )
        console.print(anomalies)

    if result.tariff_changes:
        console.print("\n[bold]Tariff Changes[/bold]")
        for change in result.tariff_changes:
            console.print(
                f"  {change.change_date.date()} {change.fuel_type}: "
                f"{change.old_tariff_name} -> {change.new_tariff_name} ({change.impact_description})"
            )

    if result.insights:
        console.print("\n[bold]Insights[/bold]")
        for insight in result.insights:
            style = PRIORITY_STYLES.get(insight.priority, "dim")
            console.print(f"  [{style}]{insight.priority.upper()}[/{style}] [bold]{insight.title}[/bold]")
            console.print(f"    {insight.description}")
            console.print(f"    [dim]{insight.action}[/dim]")


if __name__ == "__main__":
    cli()
