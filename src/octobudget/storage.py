"""Storage directory management: the account cache and saved analysis results."""

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable

from .cache import TTLCache, utcnow
from .exceptions import StorageError
from .models import AnalysisResult

logger = logging.getLogger(__name__)


class Storage:
    """Owns the storage directory and the per-account cache within it."""

    def __init__(
        self,
        base_path: Path,
        account_id: str,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.base_path = Path(base_path)
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError("create_directory", str(self.base_path), e) from e

        self.cache = TTLCache(self.base_path, account_id, clock=clock)
        logger.debug("Storage initialized: path=%s", self.base_path)

    def __enter__(self) -> "Storage":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def save_cache(self, key: str, value: Any, ttl: timedelta, kind: str = "") -> None:
        self.cache.set(key, value, ttl, kind=kind)

    def load_cache(self, key: str, kind: str | None = None, decode: Callable[[Any], Any] | None = None) -> tuple[bool, Any]:
        return self.cache.get(key, kind=kind, decode=decode)

    def save_analysis_result(self, result: AnalysisResult, account_id: str) -> Path:
        """Write a result document named after the account and generation time."""
        stamp = result.generated_at.strftime("%Y-%m-%d_%H-%M-%S")
        path = self.base_path / f"{account_id}_analysis_{stamp}.json"
        logger.debug("Saving analysis result to %s", path)
        try:
            with open(path, "w") as f:
                json.dump(result.to_dict(), f, indent=2)
        except OSError as e:
            raise StorageError("write", str(path), e) from e
        return path

    def load_latest_analysis(self, account_id: str) -> AnalysisResult | None:
        """Load the most recent saved result, or None if there is none."""
        matches = sorted(self.base_path.glob(f"{account_id}_analysis_*.json"))
        if not matches:
            return None

        latest = matches[-1]
        logger.debug("Loading latest analysis from %s", latest)
        try:
            with open(latest) as f:
                return AnalysisResult.from_dict(json.load(f))
        except OSError as e:
            raise StorageError("read", str(latest), e) from e
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError("decode", str(latest), e) from e

    def list_stored_files(self) -> list[str]:
        try:
            return sorted(p.name for p in self.base_path.iterdir() if p.is_file())
        except OSError as e:
            raise StorageError("list_directory", str(self.base_path), e) from e

    def close(self) -> None:
        self.cache.close()
