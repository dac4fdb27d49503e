"""Rate resolution and cost calculation."""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, Sequence, TypeVar

import yaml

from .exceptions import ConfigError
from .models import (
    FUEL_ELECTRICITY,
    Agreement,
    Consumption,
    DailyAggregate,
    Tariff,
    TariffChange,
    TariffRate,
    parse_datetime,
)

logger = logging.getLogger(__name__)

# Day/night tariffs: intervals starting in [02:00, 05:00) local time use the night rate
OFF_PEAK_START_HOUR = 2
OFF_PEAK_END_HOUR = 5

# Unit rate changes at or below this (pence/kWh) are not reported
TARIFF_CHANGE_MIN_PENCE = 0.1


class ValidityWindow(Protocol):
    valid_from: datetime
    valid_to: datetime | None


W = TypeVar("W", bound=ValidityWindow)


def find_active(t: datetime, records: Sequence[W]) -> W | None:
    """Return the first record whose validity window contains t.

    The window is [valid_from, valid_to] with valid_to inclusive, and a missing
    valid_to means open-ended. Records are scanned in the order given and are
    not sorted here. When two windows share a boundary instant the earlier
    record in the sequence wins.
    """
    for record in records:
        if t < record.valid_from:
            continue
        if record.valid_to is not None and t > record.valid_to:
            continue
        return record
    return None


def find_active_agreement(t: datetime, agreements: Sequence[Agreement]) -> Agreement | None:
    """Find the agreement in force at t."""
    return find_active(t, agreements)


def find_active_rate(t: datetime, rates: Sequence[TariffRate]) -> TariffRate | None:
    """Find the time-varying rate in force at t."""
    return find_active(t, rates)


def is_night_rate(dt: datetime) -> bool:
    """Check if a time falls within the off-peak (night) window."""
    return OFF_PEAK_START_HOUR <= dt.hour < OFF_PEAK_END_HOUR


def get_rate_for_time(dt: datetime, tariff: Tariff) -> float:
    """Get the rate in pence/kWh for a specific datetime under a flat or day/night tariff."""
    if tariff.unit_rate > 0 and tariff.day_rate == 0 and tariff.night_rate == 0:
        return tariff.unit_rate

    if tariff.day_rate > 0 or tariff.night_rate > 0:
        return tariff.night_rate if is_night_rate(dt) else tariff.day_rate

    return tariff.unit_rate


def calculate_cost(consumption_kwh: float, rate_pence_per_kwh: float) -> float:
    """Calculate cost in pence for a consumption at a given rate."""
    return consumption_kwh * rate_pence_per_kwh


def calculate_consumption_costs(
    consumptions: list[Consumption], agreements: Sequence[Agreement]
) -> list[Consumption]:
    """Set cost_pence on each interval from the agreement active at its start.

    Intervals with no active agreement keep their existing cost.
    Returns the same list for chaining.
    """
    if not consumptions or not agreements:
        return consumptions

    unpriced = 0
    for c in consumptions:
        agreement = find_active_agreement(c.interval_start, agreements)
        if agreement is None:
            unpriced += 1
            continue
        rate = get_rate_for_time(c.interval_start, agreement.tariff)
        c.cost_pence = calculate_cost(c.consumption_kwh, rate)

    if unpriced:
        logger.debug("No agreement covers %d of %d intervals", unpriced, len(consumptions))
    return consumptions


def calculate_consumption_costs_with_rates(
    consumptions: list[Consumption], rates: Sequence[TariffRate]
) -> list[Consumption]:
    """Set cost_pence on each interval from time-varying rates (VAT inclusive).

    Intervals with no matching rate keep their existing cost.
    """
    if not consumptions or not rates:
        return consumptions

    unpriced = 0
    for c in consumptions:
        rate = find_active_rate(c.interval_start, rates)
        if rate is None:
            unpriced += 1
            continue
        c.cost_pence = calculate_cost(c.consumption_kwh, rate.value_inc_vat)

    if unpriced:
        logger.debug("No rate covers %d of %d intervals", unpriced, len(consumptions))
    return consumptions


def aggregate_to_daily(consumptions: Sequence[Consumption]) -> list[DailyAggregate]:
    """Sum intervals into calendar-day totals, keyed by each interval's own local date."""
    daily: dict = {}
    for c in consumptions:
        day = c.interval_start.date()
        existing = daily.get(day)
        if existing is None:
            daily[day] = DailyAggregate(day=day, consumption_kwh=c.consumption_kwh, cost_pence=c.cost_pence)
        else:
            existing.consumption_kwh += c.consumption_kwh
            existing.cost_pence += c.cost_pence

    return [daily[day] for day in sorted(daily)]


def detect_tariff_changes(agreements: Sequence[Agreement], fuel_type: str) -> list[TariffChange]:
    """Report unit rate changes between consecutive agreements."""
    changes = []
    for previous, current in zip(agreements, agreements[1:]):
        rate_change = current.tariff.unit_rate - previous.tariff.unit_rate
        if abs(rate_change) <= TARIFF_CHANGE_MIN_PENCE:
            continue

        impact = "increased" if rate_change > 0 else "decreased"
        changes.append(
            TariffChange(
                change_date=current.valid_from,
                fuel_type=fuel_type,
                old_tariff_name=previous.tariff.display_name,
                new_tariff_name=current.tariff.display_name,
                unit_rate_change=rate_change,
                impact_description=f"Unit rate {impact} by {abs(rate_change):.2f}p/kWh",
            )
        )
    return changes


def load_agreements_from_yaml(config_path: Path, fuel_type: str | None = None) -> list[Agreement]:
    """Load agreement definitions from a YAML file.

    Expected shape::

        agreements:
          - fuel: electricity   # optional, electricity or gas
            valid_from: 2025-01-01T00:00:00+00:00
            valid_to: 2025-06-30T23:59:59+01:00   # optional
            tariff:
              display_name: Flexible Octopus
              unit_rate: 24.5
              standing_charge: 45.0

    Timestamps without an offset are read as UTC. When fuel_type is given
    only that fuel's entries are returned. Raises ConfigError if the file
    cannot be read or an entry is malformed.
    """
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"failed to read agreements file {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse agreements file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"agreements file {config_path} must contain a mapping")

    agreements = []
    for a in data.get("agreements") or []:
        try:
            if fuel_type is not None and a.get("fuel", FUEL_ELECTRICITY) != fuel_type:
                continue
            agreements.append(
                Agreement(
                    valid_from=_as_datetime(a["valid_from"]),
                    valid_to=_as_datetime(a["valid_to"]) if a.get("valid_to") else None,
                    tariff=Tariff.from_dict(a.get("tariff") or {}),
                    tariff_code=a.get("tariff_code", ""),
                )
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ConfigError(f"invalid agreement in {config_path}: {e}") from e
    return agreements


def _as_datetime(value) -> datetime:
    # PyYAML already turns unquoted timestamps into datetimes
    if not isinstance(value, datetime):
        value = parse_datetime(str(value))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value
