"""Data collection: account details, consumption and tariff rates for one analysis run.

Every network fetch goes through the account cache first. Only the account
details are required; a failure fetching any single fuel is logged and the
run continues without it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from .cache import mask_account_id
from .collectors.octopus import OctopusClient
from .config import Config
from .exceptions import OctobudgetError, StorageError
from .models import FUEL_ELECTRICITY, FUEL_GAS, Account, Agreement, CollectedData, Consumption, MeterPoint, TariffRate
from .storage import Storage
from .tariffs import calculate_consumption_costs, calculate_consumption_costs_with_rates, load_agreements_from_yaml

logger = logging.getLogger(__name__)

ACCOUNT_TTL = timedelta(hours=1)
PRODUCT_CODE_TTL = timedelta(hours=24)
TARIFF_RATES_TTL = timedelta(hours=6)


@dataclass
class MeterSelection:
    """Which meters to read, from config or discovered on the account."""

    electricity_mpan: str = ""
    electricity_serial: str = ""
    electricity_agreements: list[Agreement] = field(default_factory=list)
    export_mpan: str = ""
    export_serials: list[str] = field(default_factory=list)
    export_agreements: list[Agreement] = field(default_factory=list)
    gas_mprn: str = ""
    gas_serial: str = ""
    gas_agreements: list[Agreement] = field(default_factory=list)


def tariff_name(meter_point: MeterPoint) -> str:
    """Display name of the meter point's first agreement, or '' if it has none."""
    if not meter_point.agreements:
        return ""
    return meter_point.agreements[0].tariff.display_name


def discover_meters(account: Account, config: Config) -> MeterSelection:
    """Choose import, export and gas meters.

    Configured identifiers win. Otherwise the first property is searched:
    an electricity meter point whose tariff name mentions "import" is
    preferred, falling back to the first one. A meter point whose tariff
    mentions "export" becomes the export meter.
    """
    selection = MeterSelection(
        electricity_mpan=config.electricity_mpan,
        electricity_serial=config.electricity_serial,
        gas_mprn=config.gas_mprn,
        gas_serial=config.gas_serial,
    )
    if not account.properties:
        return selection

    prop = account.properties[0]
    electricity_points = prop.electricity_meter_points

    if not selection.electricity_mpan and electricity_points:
        chosen = next(
            (mp for mp in electricity_points if "import" in tariff_name(mp).lower()),
            electricity_points[0],
        )
        selection.electricity_mpan = chosen.identifier
        selection.electricity_serial = chosen.serial_numbers[0] if chosen.serial_numbers else ""
        logger.info("Auto-discovered electricity meter: tariff=%s", tariff_name(chosen) or "unknown")

    export_point = next(
        (
            mp
            for mp in electricity_points
            if "export" in tariff_name(mp).lower() and mp.identifier != selection.electricity_mpan
        ),
        None,
    )
    if export_point is not None:
        selection.export_mpan = export_point.identifier
        selection.export_serials = list(export_point.serial_numbers)
        selection.export_agreements = list(export_point.agreements)
        logger.info(
            "Detected export meter: serials=%d tariff=%s",
            len(selection.export_serials),
            tariff_name(export_point),
        )

    if not selection.gas_mprn and prop.gas_meter_points:
        gas_point = prop.gas_meter_points[0]
        selection.gas_mprn = gas_point.identifier
        selection.gas_serial = gas_point.serial_numbers[0] if gas_point.serial_numbers else ""
        logger.info("Auto-discovered gas meter")

    for p in account.properties:
        for mp in p.electricity_meter_points:
            if mp.identifier == selection.electricity_mpan:
                selection.electricity_agreements = list(mp.agreements)
        for mp in p.gas_meter_points:
            if mp.identifier == selection.gas_mprn:
                selection.gas_agreements = list(mp.agreements)

    return selection


class Collector:
    """Gathers everything one analysis run needs."""

    def __init__(
        self,
        client: OctopusClient,
        config: Config,
        storage: Storage,
        now: datetime | None = None,
    ) -> None:
        self.client = client
        self.config = config
        self.storage = storage
        self.now = now

    def collect_all(self) -> CollectedData:
        """Collect account details and costed consumption for the analysis period.

        Raises whatever the account fetch raises (APIError, AuthError) and
        ConfigError for a bad agreements file; every later failure is logged
        and skipped.
        """
        logger.info("Starting data collection")
        end = self.now or datetime.now()
        start = end - timedelta(days=self.config.analysis_period_days)
        data = CollectedData(account=None, fetched_at=end)

        account = self._fetch_account_cached()
        data.account = account
        logger.info(
            "Analysis period: start=%s end=%s days=%d",
            start.date(),
            end.date(),
            self.config.analysis_period_days,
        )

        meters = discover_meters(account, self.config)
        if self.config.agreements_file:
            self._apply_file_agreements(meters)

        if meters.electricity_mpan and meters.electricity_serial:
            data.electricity_consumption, data.electricity_agreements = self._collect_electricity(
                meters, start, end
            )
        else:
            logger.info("Skipping electricity consumption (not configured)")

        if meters.export_mpan and meters.export_serials:
            data.electricity_export = self._collect_export(meters, start, end)
            if data.electricity_export:
                data.electricity_export_agreements = meters.export_agreements

        if meters.gas_mprn and meters.gas_serial:
            data.gas_consumption, data.gas_agreements = self._collect_gas(meters, start, end)
        else:
            logger.info("Skipping gas consumption (not configured)")

        logger.info("Data collection completed")
        return data

    def _apply_file_agreements(self, meters: MeterSelection) -> None:
        """Use agreements from the configured YAML file for fuels the account reports none for."""
        path = self.config.agreements_file
        if not meters.electricity_agreements:
            meters.electricity_agreements = load_agreements_from_yaml(path, FUEL_ELECTRICITY)
            logger.info("Loaded electricity agreements from %s: count=%d", path, len(meters.electricity_agreements))
        if not meters.gas_agreements:
            meters.gas_agreements = load_agreements_from_yaml(path, FUEL_GAS)
            logger.info("Loaded gas agreements from %s: count=%d", path, len(meters.gas_agreements))

    def _collect_electricity(
        self, meters: MeterSelection, start: datetime, end: datetime
    ) -> tuple[list[Consumption], list[Agreement]]:
        logger.info("Fetching electricity consumption data")
        try:
            consumptions = self.client.fetch_electricity_consumption(
                meters.electricity_mpan, meters.electricity_serial, start, end
            )
        except OctobudgetError as e:
            logger.warning("Failed to fetch electricity consumption: %s", e)
            return [], []

        agreements = meters.electricity_agreements
        if agreements:
            name = agreements[0].tariff.display_name
            if "export" in name.lower():
                logger.warning(
                    "Configuration warning: electricity_mpan points at an export meter (tariff %s). "
                    "Export meters record generation sent to the grid, not consumption; "
                    "set electricity_mpan to your import meter.",
                    name,
                )

            rates = self._rates_for_tariff(name, start, end)
            if rates is not None:
                calculate_consumption_costs_with_rates(consumptions, rates)
                logger.info("Calculated electricity costs from time-varying rates: rates=%d", len(rates))
            else:
                calculate_consumption_costs(consumptions, agreements)
                logger.info("Calculated electricity costs from agreement rates")

        logger.info(
            "Electricity data collected: intervals=%d agreements=%d", len(consumptions), len(agreements)
        )
        return consumptions, agreements

    def _collect_export(self, meters: MeterSelection, start: datetime, end: datetime) -> list[Consumption]:
        logger.info("Fetching export data: serials_to_try=%d", len(meters.export_serials))
        exports: list[Consumption] = []
        for serial in meters.export_serials:
            try:
                exports = self.client.fetch_electricity_consumption(meters.export_mpan, serial, start, end)
            except OctobudgetError as e:
                logger.warning("Failed to fetch export data: %s", e)
                continue
            if exports:
                break

        if not exports:
            logger.warning("No export data found for any serial number")
            return []

        if meters.export_agreements:
            rates = self._rates_for_tariff(meters.export_agreements[0].tariff.display_name, start, end)
            if rates is not None:
                calculate_consumption_costs_with_rates(exports, rates)
                logger.info("Calculated export earnings from time-varying rates: rates=%d", len(rates))

        logger.info("Export data collected: intervals=%d", len(exports))
        return exports

    def _collect_gas(
        self, meters: MeterSelection, start: datetime, end: datetime
    ) -> tuple[list[Consumption], list[Agreement]]:
        logger.info("Fetching gas consumption data")
        try:
            consumptions = self.client.fetch_gas_consumption(meters.gas_mprn, meters.gas_serial, start, end)
        except OctobudgetError as e:
            logger.warning("Failed to fetch gas consumption: %s", e)
            return [], []

        agreements = meters.gas_agreements
        if agreements:
            calculate_consumption_costs(consumptions, agreements)
            logger.info("Calculated gas costs from agreement rates")

        logger.info("Gas data collected: intervals=%d agreements=%d", len(consumptions), len(agreements))
        return consumptions, agreements

    def _rates_for_tariff(self, name: str, start: datetime, end: datetime) -> list[TariffRate] | None:
        """Time-varying rates for a tariff, or None when they cannot be fetched."""
        try:
            product_code = self._fetch_product_code_cached(name)
        except OctobudgetError as e:
            logger.warning("Failed to fetch product code for %s, using agreement rates: %s", name, e)
            return None
        try:
            return self._fetch_tariff_rates_cached(product_code, start, end)
        except OctobudgetError as e:
            logger.warning("Failed to fetch tariff rates for %s, using agreement rates: %s", product_code, e)
            return None

    def _fetch_account_cached(self) -> Account:
        key = f"account_{self.config.account_id}"
        found, account = self._load_cached(key, "account", Account.from_dict)
        if found:
            logger.info("Loaded account details from cache")
            return account

        logger.info("Fetching account details: account=%s", mask_account_id(self.config.account_id))
        account = self.client.fetch_account()
        self._save_cached(key, account.to_dict(), ACCOUNT_TTL, "account")
        return account

    def _fetch_product_code_cached(self, name: str) -> str:
        key = f"product_code_{name.replace(' ', '_')}"
        found, code = self._load_cached(key, "product_code", str)
        if found:
            logger.debug("Loaded product code from cache: tariff=%s code=%s", name, code)
            return code

        code = self.client.fetch_product_code(name)
        self._save_cached(key, code, PRODUCT_CODE_TTL, "product_code")
        return code

    def _fetch_tariff_rates_cached(self, product_code: str, start: datetime, end: datetime) -> list[TariffRate]:
        key = f"tariff_rates_{product_code}_{start.date().isoformat()}_{end.date().isoformat()}"
        found, rates = self._load_cached(key, "tariff_rates", _decode_rates)
        if found:
            logger.debug("Loaded tariff rates from cache: product=%s count=%d", product_code, len(rates))
            return rates

        logger.info("Fetching time-varying rates: product=%s", product_code)
        rates = self.client.fetch_tariff_rates(product_code, start, end)
        self._save_cached(key, [r.to_dict() for r in rates], TARIFF_RATES_TTL, "tariff_rates")
        return rates

    def _load_cached(self, key: str, kind: str, decode) -> tuple[bool, object]:
        try:
            return self.storage.load_cache(key, kind=kind, decode=decode)
        except StorageError as e:
            logger.warning("Failed to load %s from cache: %s", kind, e)
            return False, None

    def _save_cached(self, key: str, value, ttl: timedelta, kind: str) -> None:
        try:
            self.storage.save_cache(key, value, ttl, kind=kind)
        except StorageError as e:
            logger.warning("Failed to cache %s: %s", kind, e)


def _decode_rates(data: list) -> list[TariffRate]:
    return [TariffRate.from_dict(r) for r in data]
