"""Configuration loading from YAML, .env and environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import find_dotenv, load_dotenv

from .exceptions import ConfigError, ValidationError

DEFAULT_STORAGE_PATH = Path.home() / ".config" / "octobudget"

# Central UK (Birmingham), used for weather lookups
DEFAULT_LATITUDE = 52.4862
DEFAULT_LONGITUDE = -1.8904

ENV_OVERRIDES = {
    "OCTOPUS_ACCOUNT_ID": "account_id",
    "OCTOPUS_API_KEY": "api_key",
    "OCTOPUS_ELECTRICITY_MPAN": "electricity_mpan",
    "OCTOPUS_ELECTRICITY_SERIAL": "electricity_serial",
    "OCTOPUS_GAS_MPRN": "gas_mprn",
    "OCTOPUS_GAS_SERIAL": "gas_serial",
}


@dataclass
class Config:
    """Runtime settings for collection and analysis."""

    account_id: str = ""
    api_key: str = ""

    # Meter identifiers, auto-discovered from the account when empty
    electricity_mpan: str = ""
    electricity_serial: str = ""
    gas_mprn: str = ""
    gas_serial: str = ""

    analysis_period_days: int = 90
    anomaly_threshold: float = 50.0  # % above mean before a spike is reported
    direct_debit_amount: float = 0.0  # pounds, 0 = unknown

    storage_path: Path = field(default_factory=lambda: DEFAULT_STORAGE_PATH)
    agreements_file: Path | None = None  # YAML agreements used when the account reports none
    latitude: float = DEFAULT_LATITUDE
    longitude: float = DEFAULT_LONGITUDE
    debug: bool = False

    def apply_environment(self) -> None:
        """Override settings from OCTOPUS_* environment variables."""
        for env_name, attr in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                setattr(self, attr, value)

        storage = os.environ.get("OCTOPUS_STORAGE_PATH")
        if storage:
            self.storage_path = Path(storage)

        if os.environ.get("OCTOPUS_DEBUG") in ("true", "1"):
            self.debug = True

    def validate(self) -> None:
        """Check required fields and ranges, raising one ValidationError listing every problem.

        An empty storage path is reset to the default.
        """
        errors = []

        if not self.account_id:
            errors.append("account_id is required")
        elif not self.account_id.startswith("A-"):
            errors.append("account_id must start with 'A-'")

        if not self.api_key:
            errors.append("api_key is required")
        elif len(self.api_key) < 20:
            errors.append("api_key appears to be invalid (too short)")

        if not 1 <= self.analysis_period_days <= 365:
            errors.append("analysis_period_days must be between 1 and 365")

        if not 0 <= self.anomaly_threshold <= 100:
            errors.append("anomaly_threshold must be between 0 and 100")

        if not self.storage_path or Path(self.storage_path) == Path(""):
            self.storage_path = DEFAULT_STORAGE_PATH

        if errors:
            raise ValidationError("configuration validation failed:\n  - " + "\n  - ".join(errors))


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from a YAML file (optional) with environment overrides."""
    load_dotenv(find_dotenv(usecwd=True))
    config = Config()

    if config_path is not None:
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"failed to read config file {config_path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"failed to parse config file {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"config file {config_path} must contain a mapping")

        for key, value in data.items():
            if not hasattr(config, key):
                raise ConfigError(f"unknown configuration key: {key}")
            if value is None or value == "":
                continue
            setattr(config, key, value)

        try:
            config.storage_path = Path(config.storage_path).expanduser()
            if config.agreements_file:
                config.agreements_file = Path(config.agreements_file).expanduser()
            config.analysis_period_days = int(config.analysis_period_days)
            config.anomaly_threshold = float(config.anomaly_threshold)
            config.direct_debit_amount = float(config.direct_debit_amount)
            config.latitude = float(config.latitude)
            config.longitude = float(config.longitude)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid value in config file {config_path}: {e}") from e

    config.apply_environment()
    return config
