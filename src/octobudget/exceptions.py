"""Exceptions raised by octobudget."""

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class OctobudgetError(Exception):
    """Base exception for octobudget errors."""
    pass


class DataError(OctobudgetError):
    """A required input is missing, so the analysis cannot run."""

    def __init__(self, data_type: str, message: str):
        self.data_type = data_type
        self.message = message
        super().__init__(f"data error for {data_type}: {message}")


class StorageError(OctobudgetError):
    """A cache or result file could not be read, written or decoded."""

    def __init__(self, operation: str, path: str, cause: Exception | str):
        self.operation = operation
        self.path = path
        self.cause = cause
        super().__init__(f"storage error during {operation} at {path}: {cause}")


class APIError(OctobudgetError):
    """An HTTP request to an external API failed."""

    def __init__(self, endpoint: str, message: str, status_code: int | None = None):
        self.endpoint = endpoint
        self.message = message
        self.status_code = status_code
        status = status_code if status_code is not None else "n/a"
        super().__init__(f"API error at {endpoint} (status {status}): {message}")

    @property
    def is_retryable(self) -> bool:
        return self.status_code in RETRYABLE_STATUS_CODES


class AuthError(OctobudgetError):
    """Authentication against the Octopus Energy API failed."""
    pass


class ValidationError(OctobudgetError):
    """Configuration values are out of range or malformed."""
    pass


class ConfigError(OctobudgetError):
    """The configuration file could not be read or parsed."""
    pass
