"""Data models for consumption, tariffs and analysis results."""

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from typing import Any

FUEL_ELECTRICITY = "electricity"
FUEL_GAS = "gas"

ANOMALY_LOW_USAGE = "low_usage"
ANOMALY_CONSUMPTION_SPIKE = "consumption_spike"

PAYMENT_BALANCED = "Balanced"
PAYMENT_UNDERPAYING = "Underpaying"
PAYMENT_OVERPAYING = "Overpaying"
PAYMENT_UNKNOWN = "Unknown"


def to_jsonable(value: Any) -> Any:
    """Convert dataclasses, datetimes and containers into JSON-ready values."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    return value


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp, accepting a trailing 'Z'."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


@dataclass
class Consumption:
    """A single metered interval [interval_start, interval_end)."""

    interval_start: datetime
    interval_end: datetime
    consumption_kwh: float
    cost_pence: float = 0.0


@dataclass
class Tariff:
    """A named pricing structure. Rates are pence per kWh, zero means not applicable."""

    display_name: str
    full_name: str = ""
    standing_charge: float = 0.0  # pence per day
    unit_rate: float = 0.0
    day_rate: float = 0.0
    night_rate: float = 0.0
    off_peak_rate: float = 0.0

    @classmethod
    def from_dict(cls, data: dict) -> "Tariff":
        return cls(
            display_name=data.get("display_name", ""),
            full_name=data.get("full_name", ""),
            standing_charge=float(data.get("standing_charge") or 0.0),
            unit_rate=float(data.get("unit_rate") or 0.0),
            day_rate=float(data.get("day_rate") or 0.0),
            night_rate=float(data.get("night_rate") or 0.0),
            off_peak_rate=float(data.get("off_peak_rate") or 0.0),
        )


@dataclass
class Agreement:
    """Binding of a tariff to a validity window. valid_to=None means still active."""

    valid_from: datetime
    valid_to: datetime | None
    tariff: Tariff
    tariff_code: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Agreement":
        return cls(
            valid_from=parse_datetime(data["valid_from"]),
            valid_to=parse_datetime(data.get("valid_to")),
            tariff=Tariff.from_dict(data.get("tariff") or {}),
            tariff_code=data.get("tariff_code", ""),
        )


@dataclass
class TariffRate:
    """A time-varying unit rate, e.g. one half-hour slot of an agile tariff."""

    valid_from: datetime
    valid_to: datetime | None
    value_exc_vat: float
    value_inc_vat: float

    def to_dict(self) -> dict:
        return to_jsonable(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TariffRate":
        return cls(
            valid_from=parse_datetime(data["valid_from"]),
            valid_to=parse_datetime(data.get("valid_to")),
            value_exc_vat=float(data["value_exc_vat"]),
            value_inc_vat=float(data["value_inc_vat"]),
        )


@dataclass
class DailyAggregate:
    """Sum of all intervals starting on one calendar day."""

    day: date
    consumption_kwh: float
    cost_pence: float


@dataclass
class MeterPoint:
    """An electricity (MPAN) or gas (MPRN) meter point."""

    identifier: str
    serial_numbers: list[str] = field(default_factory=list)
    agreements: list[Agreement] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "MeterPoint":
        return cls(
            identifier=data["identifier"],
            serial_numbers=list(data.get("serial_numbers", [])),
            agreements=[Agreement.from_dict(a) for a in data.get("agreements", [])],
        )


@dataclass
class Property:
    """A supply address on an account."""

    id: str
    address: str = ""
    electricity_meter_points: list[MeterPoint] = field(default_factory=list)
    gas_meter_points: list[MeterPoint] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Property":
        return cls(
            id=str(data["id"]),
            address=data.get("address", ""),
            electricity_meter_points=[
                MeterPoint.from_dict(m) for m in data.get("electricity_meter_points", [])
            ],
            gas_meter_points=[MeterPoint.from_dict(m) for m in data.get("gas_meter_points", [])],
        )


@dataclass
class Account:
    """An energy supplier account. Balance is in pounds, negative means in debit."""

    number: str
    balance: float = 0.0
    properties: list[Property] = field(default_factory=list)

    def to_dict(self) -> dict:
        return to_jsonable(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Account":
        return cls(
            number=data["number"],
            balance=float(data.get("balance", 0.0)),
            properties=[Property.from_dict(p) for p in data.get("properties", [])],
        )


@dataclass
class WeatherData:
    """Daily weather summary for one date."""

    date: date
    temp_max: float
    temp_min: float
    temp_mean: float
    precipitation_mm: float = 0.0
    weather_code: int = 0
    weather_desc: str = ""

    def to_dict(self) -> dict:
        return to_jsonable(self)

    @classmethod
    def from_dict(cls, data: dict) -> "WeatherData":
        return cls(
            date=date.fromisoformat(data["date"]),
            temp_max=float(data["temp_max"]),
            temp_min=float(data["temp_min"]),
            temp_mean=float(data["temp_mean"]),
            precipitation_mm=float(data.get("precipitation_mm", 0.0)),
            weather_code=int(data.get("weather_code", 0)),
            weather_desc=data.get("weather_desc", ""),
        )


@dataclass
class Anomaly:
    """A day whose consumption stands out from the rest of the window."""

    date: date
    fuel_type: str
    kind: str  # low_usage or consumption_spike
    description: str
    actual_value: float  # kWh
    expected_value: float  # kWh, the window mean
    deviation_percent: float
    weather: WeatherData | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Anomaly":
        weather = data.get("weather")
        return cls(
            date=date.fromisoformat(data["date"]),
            fuel_type=data["fuel_type"],
            kind=data["kind"],
            description=data.get("description", ""),
            actual_value=float(data["actual_value"]),
            expected_value=float(data["expected_value"]),
            deviation_percent=float(data["deviation_percent"]),
            weather=WeatherData.from_dict(weather) if weather else None,
        )


@dataclass
class TariffChange:
    """A change of unit rate between two consecutive agreements."""

    change_date: datetime
    fuel_type: str
    old_tariff_name: str
    new_tariff_name: str
    unit_rate_change: float  # pence per kWh, positive = increase
    impact_description: str

    @classmethod
    def from_dict(cls, data: dict) -> "TariffChange":
        return cls(
            change_date=parse_datetime(data["change_date"]),
            fuel_type=data["fuel_type"],
            old_tariff_name=data["old_tariff_name"],
            new_tariff_name=data["new_tariff_name"],
            unit_rate_change=float(data["unit_rate_change"]),
            impact_description=data["impact_description"],
        )


@dataclass
class Insight:
    """An actionable recommendation."""

    category: str  # payment, usage, seasonal, export
    priority: str  # high, medium, low
    title: str
    description: str
    action: str

    @classmethod
    def from_dict(cls, data: dict) -> "Insight":
        return cls(**{f.name: data[f.name] for f in fields(cls)})


@dataclass
class CollectedData:
    """Everything gathered for one analysis run."""

    account: Account | None
    electricity_consumption: list[Consumption] = field(default_factory=list)
    electricity_export: list[Consumption] = field(default_factory=list)
    gas_consumption: list[Consumption] = field(default_factory=list)
    electricity_agreements: list[Agreement] = field(default_factory=list)
    electricity_export_agreements: list[Agreement] = field(default_factory=list)
    gas_agreements: list[Agreement] = field(default_factory=list)
    fetched_at: datetime | None = None


@dataclass
class AnalysisResult:
    """The complete analysis output. Money is in pounds, energy in kWh."""

    generated_at: datetime
    period_start: datetime | None = None
    period_end: datetime | None = None
    period_days: int = 0
    current_balance: float = 0.0
    avg_daily_electricity_kwh: float = 0.0
    avg_daily_export_kwh: float = 0.0
    avg_daily_gas_kwh: float = 0.0
    avg_daily_cost_electricity: float = 0.0
    avg_daily_earnings_export: float = 0.0
    avg_daily_cost_gas: float = 0.0
    avg_daily_cost_total: float = 0.0
    projected_monthly_cost: float = 0.0
    recommended_payment: float = 0.0
    current_payment: float = 0.0
    payment_status: str = PAYMENT_UNKNOWN
    electricity_agreements: list[Agreement] = field(default_factory=list)
    electricity_export_agreements: list[Agreement] = field(default_factory=list)
    gas_agreements: list[Agreement] = field(default_factory=list)
    anomalies: list[Anomaly] = field(default_factory=list)
    tariff_changes: list[TariffChange] = field(default_factory=list)
    insights: list[Insight] = field(default_factory=list)

    def to_dict(self) -> dict:
        return to_jsonable(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisResult":
        scalars = {
            f.name: data[f.name]
            for f in fields(cls)
            if f.name in data and not isinstance(data[f.name], list)
        }
        scalars["generated_at"] = parse_datetime(data["generated_at"])
        for name in ("period_start", "period_end"):
            scalars[name] = parse_datetime(data.get(name))
        return cls(
            **scalars,
            electricity_agreements=[Agreement.from_dict(a) for a in data.get("electricity_agreements", [])],
            electricity_export_agreements=[
                Agreement.from_dict(a) for a in data.get("electricity_export_agreements", [])
            ],
            gas_agreements=[Agreement.from_dict(a) for a in data.get("gas_agreements", [])],
            anomalies=[Anomaly.from_dict(a) for a in data.get("anomalies", [])],
            tariff_changes=[TariffChange.from_dict(c) for c in data.get("tariff_changes", [])],
            insights=[Insight.from_dict(i) for i in data.get("insights", [])],
        )
