"""Octopus Energy API client.

Account details (balance, meter points and agreements) come from the Kraken
GraphQL API, authenticated with a short-lived token obtained from the API key.
Consumption, products and unit rates come from the public REST API.
"""

import logging
from datetime import datetime, timedelta, timezone

import httpx

from ..exceptions import APIError, AuthError, DataError
from ..models import Account, Agreement, Consumption, MeterPoint, Property, Tariff, TariffRate, parse_datetime

logger = logging.getLogger(__name__)

GRAPHQL_URL = "https://api.octopus.energy/v1/graphql/"
REST_API_BASE = "https://api.octopus.energy/v1"
USER_AGENT = "octobudget/0.1"

CONSUMPTION_PAGE_SIZE = 25000
TOKEN_LIFETIME = timedelta(hours=23)  # tokens last 24h

OBTAIN_TOKEN_MUTATION = """
mutation obtainKrakenToken($apiKey: String!) {
  obtainKrakenToken(input: { APIKey: $apiKey }) {
    token
  }
}
"""

ACCOUNT_QUERY = """
query AccountDetails($accountNumber: String!) {
  account(accountNumber: $accountNumber) {
    number
    balance
    properties {
      id
      address
      electricityMeterPoints {
        mpan
        meters { serialNumber }
        agreements {
          validFrom
          validTo
          tariff {
            ... on TariffType { displayName fullName standingCharge tariffCode }
            ... on StandardTariff { unitRate }
            ... on DayNightTariff { dayRate nightRate }
            ... on PrepayTariff { unitRate }
          }
        }
      }
      gasMeterPoints {
        mprn
        meters { serialNumber }
        agreements {
          validFrom
          validTo
          tariff {
            ... on TariffType { displayName fullName standingCharge tariffCode }
            ... on GasTariffType { unitRate }
          }
        }
      }
    }
  }
}
"""


def format_period(dt: datetime) -> str:
    """Format a timestamp for the REST API's period_from/period_to parameters."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def tariff_code_for_product(product_code: str) -> str:
    """Single-register electricity tariff code in the standard region."""
    return f"E-1R-{product_code}-C"


class OctopusClient:
    """Client for the Octopus Energy GraphQL and REST APIs."""

    def __init__(
        self,
        account_id: str,
        api_key: str,
        transport: httpx.BaseTransport | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.account_id = account_id
        self.api_key = api_key
        self.client = httpx.Client(
            transport=transport,
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
        )
        self._token: str | None = None
        self._token_expiry: datetime | None = None

    def __enter__(self) -> "OctopusClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.client.close()

    def _ensure_token(self) -> str:
        now = datetime.now(timezone.utc)
        if self._token and self._token_expiry and now < self._token_expiry:
            return self._token

        logger.debug("Refreshing API token")
        payload = {"query": OBTAIN_TOKEN_MUTATION, "variables": {"apiKey": self.api_key}}
        try:
            response = self.client.post(GRAPHQL_URL, json=payload)
        except httpx.HTTPError as e:
            raise APIError(GRAPHQL_URL, f"failed to request token: {e}") from e

        if response.status_code != 200:
            raise APIError(GRAPHQL_URL, f"token request failed: {response.text}", response.status_code)

        body = _decode_json(response, GRAPHQL_URL)
        if body.get("errors"):
            raise AuthError(f"GraphQL error obtaining token: {body['errors'][0].get('message')}")

        token = ((body.get("data") or {}).get("obtainKrakenToken") or {}).get("token")
        if not token:
            raise AuthError("empty token received from API")

        self._token = token
        self._token_expiry = now + TOKEN_LIFETIME
        return token

    def _graphql(self, query: str, variables: dict) -> dict:
        token = self._ensure_token()
        logger.debug("POST %s", GRAPHQL_URL)
        try:
            response = self.client.post(
                GRAPHQL_URL,
                json={"query": query, "variables": variables},
                headers={"Authorization": token},
            )
        except httpx.HTTPError as e:
            raise APIError(GRAPHQL_URL, f"GraphQL request failed: {e}") from e

        if response.status_code in (401, 403):
            self._token = None
            raise AuthError(f"authentication failed (status {response.status_code})")
        if response.status_code != 200:
            raise APIError(GRAPHQL_URL, response.text, response.status_code)

        body = _decode_json(response, GRAPHQL_URL)
        if body.get("errors"):
            raise APIError(GRAPHQL_URL, f"GraphQL error: {body['errors'][0].get('message')}")
        return body.get("data") or {}

    def fetch_account(self) -> Account:
        """Fetch the account balance, properties, meter points and agreements."""
        logger.info("Fetching account details")
        data = self._graphql(ACCOUNT_QUERY, {"accountNumber": self.account_id})
        raw = data.get("account")
        if not raw:
            raise APIError(GRAPHQL_URL, "account not found in response")

        account = Account(
            number=raw.get("number", self.account_id),
            balance=(raw.get("balance") or 0) / 100.0,  # pence to pounds
            properties=[_parse_property(p) for p in raw.get("properties") or []],
        )
        logger.info("Account details fetched: properties=%d", len(account.properties))
        return account

    def _get_results(self, url: str, params: dict, auth: bool = False) -> list[dict]:
        """GET a paginated REST endpoint and return every page's results."""
        results = []
        next_url: str | None = url
        next_params: dict | None = params

        while next_url:
            logger.debug("GET %s", next_url)
            try:
                response = self.client.get(
                    next_url,
                    params=next_params,
                    auth=(self.api_key, "") if auth else None,
                )
            except httpx.HTTPError as e:
                raise APIError(url, f"request failed: {e}") from e

            if response.status_code in (401, 403):
                raise AuthError(f"authentication failed (status {response.status_code})")
            if response.status_code != 200:
                raise APIError(url, response.text, response.status_code)

            body = _decode_json(response, url)
            results.extend(body.get("results") or [])
            next_url = body.get("next")
            next_params = None  # the next link carries its own query string

        return results

    def _fetch_consumption(
        self, meter_path: str, identifier: str, serial: str, start: datetime, end: datetime
    ) -> list[Consumption]:
        url = f"{REST_API_BASE}/{meter_path}/{identifier}/meters/{serial}/consumption/"
        params = {
            "page_size": CONSUMPTION_PAGE_SIZE,
            "period_from": format_period(start),
            "period_to": format_period(end),
            "order_by": "period",
        }
        results = self._get_results(url, params, auth=True)
        return [
            Consumption(
                interval_start=parse_datetime(r["interval_start"]),
                interval_end=parse_datetime(r["interval_end"]),
                consumption_kwh=float(r["consumption"]),
            )
            for r in results
        ]

    def fetch_electricity_consumption(
        self, mpan: str, serial: str, start: datetime, end: datetime
    ) -> list[Consumption]:
        logger.info("Fetching electricity consumption: start=%s end=%s", start.date(), end.date())
        consumptions = self._fetch_consumption("electricity-meter-points", mpan, serial, start, end)
        logger.info("Fetched electricity consumption: intervals=%d", len(consumptions))
        return consumptions

    def fetch_gas_consumption(
        self, mprn: str, serial: str, start: datetime, end: datetime
    ) -> list[Consumption]:
        logger.info("Fetching gas consumption: start=%s end=%s", start.date(), end.date())
        consumptions = self._fetch_consumption("gas-meter-points", mprn, serial, start, end)
        logger.info("Fetched gas consumption: intervals=%d", len(consumptions))
        return consumptions

    def fetch_product_code(self, display_name: str) -> str:
        """Look up a product code from a tariff display name."""
        for product in self._get_results(f"{REST_API_BASE}/products/", {}):
            if product.get("display_name") == display_name:
                logger.info("Found product code: tariff=%s code=%s", display_name, product.get("code"))
                return product["code"]
        raise DataError("product_code", f"product code not found for tariff: {display_name}")

    def fetch_tariff_rates(self, product_code: str, start: datetime, end: datetime) -> list[TariffRate]:
        """Fetch time-varying electricity unit rates for a product."""
        tariff_code = tariff_code_for_product(product_code)
        url = (
            f"{REST_API_BASE}/products/{product_code}/electricity-tariffs/"
            f"{tariff_code}/standard-unit-rates/"
        )
        params = {"period_from": format_period(start), "period_to": format_period(end)}
        rates = [TariffRate.from_dict(r) for r in self._get_results(url, params)]
        logger.info("Fetched electricity tariff rates: count=%d", len(rates))
        return rates


def _decode_json(response: httpx.Response, endpoint: str) -> dict:
    try:
        body = response.json()
    except ValueError as e:
        raise APIError(endpoint, f"invalid JSON response: {e}", response.status_code) from e
    if not isinstance(body, dict):
        raise APIError(endpoint, "unexpected response shape", response.status_code)
    return body


def _parse_agreement(raw: dict) -> Agreement:
    tariff = raw.get("tariff") or {}
    return Agreement(
        valid_from=parse_datetime(raw["validFrom"]),
        valid_to=parse_datetime(raw.get("validTo")),
        tariff=Tariff(
            display_name=tariff.get("displayName") or "",
            full_name=tariff.get("fullName") or "",
            standing_charge=float(tariff.get("standingCharge") or 0.0),
            unit_rate=float(tariff.get("unitRate") or 0.0),
            day_rate=float(tariff.get("dayRate") or 0.0),
            night_rate=float(tariff.get("nightRate") or 0.0),
        ),
        tariff_code=tariff.get("tariffCode") or "",
    )


def _parse_meter_point(raw: dict, id_field: str) -> MeterPoint:
    return MeterPoint(
        identifier=raw[id_field],
        serial_numbers=[m["serialNumber"] for m in raw.get("meters") or [] if m.get("serialNumber")],
        agreements=[_parse_agreement(a) for a in raw.get("agreements") or []],
    )


def _parse_property(raw: dict) -> Property:
    return Property(
        id=str(raw["id"]),
        address=raw.get("address") or "",
        electricity_meter_points=[
            _parse_meter_point(m, "mpan") for m in raw.get("electricityMeterPoints") or []
        ],
        gas_meter_points=[_parse_meter_point(m, "mprn") for m in raw.get("gasMeterPoints") or []],
    )
