"""JSON file cache with per-account isolation and absolute expiry.

One cache file per account identity holds every entry::

    {"entries": {"<key>": {"data": ..., "kind": "...", "version": 1,
                           "cached_at": "...", "expires_at": "..."}}}

The whole store is rewritten on every change. A file that cannot be read or
parsed is treated as an empty store.
"""

import hashlib
import json
import logging
import os
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterator

from .exceptions import StorageError

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def mask_account_id(account_id: str) -> str:
    """Shorten an account id for logs."""
    if len(account_id) > 5:
        return account_id[:5] + "***"
    return account_id


class ReadWriteLock:
    """Many concurrent readers or a single writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


@dataclass
class CacheEntry:
    """A cached payload with its type tag and absolute expiry."""

    data: Any
    kind: str
    cached_at: datetime
    expires_at: datetime
    version: int = CACHE_FORMAT_VERSION

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def to_dict(self) -> dict:
        return {
            "data": self.data,
            "kind": self.kind,
            "version": self.version,
            "cached_at": self.cached_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CacheEntry":
        return cls(
            data=data["data"],
            kind=data.get("kind", ""),
            version=int(data.get("version", CACHE_FORMAT_VERSION)),
            cached_at=datetime.fromisoformat(data["cached_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )


class TTLCache:
    """Expiring key/value store persisted as one JSON file per account.

    Reads share a lock; writes (including the file rewrite) hold it
    exclusively. Use one instance per account and pass it to whatever needs
    it; close() purges expired entries.
    """

    def __init__(
        self,
        base_path: Path,
        account_id: str,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.account_id = account_id
        self.path = Path(base_path) / cache_file_name(account_id)
        self._clock = clock
        self._lock = ReadWriteLock()
        self._entries: dict[str, CacheEntry] = {}

        self._load()
        try:
            self.clean_expired()
        except StorageError as e:
            logger.warning("Failed to purge expired cache entries: %s", e)
        logger.debug(
            "Cache initialized: path=%s account=%s entries=%d",
            self.path,
            mask_account_id(account_id),
            len(self._entries),
        )

    def __enter__(self) -> "TTLCache":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def set(self, key: str, value: Any, ttl: timedelta, kind: str = "") -> None:
        """Store a JSON-serialisable value and persist the whole store.

        kind tags the payload so readers can reject data of the wrong shape.
        Raises StorageError if the value cannot be serialised or the file
        cannot be written.
        """
        try:
            data = json.loads(json.dumps(value))
        except (TypeError, ValueError) as e:
            raise StorageError("serialize", str(self.path), e) from e

        now = self._clock()
        with self._lock.write():
            self._entries[key] = CacheEntry(data=data, kind=kind, cached_at=now, expires_at=now + ttl)
            self._save()
        logger.debug("Cache set: key=%s ttl=%s", key, ttl)

    def get(
        self,
        key: str,
        kind: str | None = None,
        decode: Callable[[Any], Any] | None = None,
    ) -> tuple[bool, Any]:
        """Return (found, value). Missing and expired keys are misses.

        When kind is given the entry's tag must match. decode turns the
        stored JSON into a domain object. A tag mismatch or a decode failure
        raises StorageError rather than reporting a miss.
        """
        now = self._clock()
        with self._lock.read():
            entry = self._entries.get(key)

        if entry is None:
            logger.debug("Cache miss: key=%s", key)
            return False, None
        if entry.is_expired(now):
            logger.debug("Cache expired: key=%s", key)
            return False, None
        if entry.version != CACHE_FORMAT_VERSION:
            raise StorageError("decode", str(self.path), f"entry {key!r} has unsupported version {entry.version}")
        if kind is not None and entry.kind != kind:
            raise StorageError("decode", str(self.path), f"entry {key!r} holds {entry.kind!r}, expected {kind!r}")

        value = entry.data
        if decode is not None:
            try:
                value = decode(value)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise StorageError("decode", str(self.path), e) from e

        logger.debug("Cache hit: key=%s expires_in=%s", key, entry.expires_at - now)
        return True, value

    def delete(self, key: str) -> None:
        with self._lock.write():
            if self._entries.pop(key, None) is not None:
                self._save()

    def clean_expired(self) -> int:
        """Remove expired entries, persisting only if something was removed."""
        now = self._clock()
        with self._lock.write():
            expired = [key for key, entry in self._entries.items() if entry.expires_at < now]
            for key in expired:
                del self._entries[key]
            if expired:
                self._save()

        if expired:
            logger.info("Cleaned %d expired cache entries", len(expired))
        return len(expired)

    def clear(self) -> int:
        """Remove every entry for this account."""
        with self._lock.write():
            count = len(self._entries)
            self._entries = {}
            self._save()
        logger.info("Cleared account cache: account=%s count=%d", mask_account_id(self.account_id), count)
        return count

    def stats(self) -> dict:
        """Return total and expired-but-not-purged entry counts."""
        now = self._clock()
        with self._lock.read():
            total = len(self._entries)
            expired = sum(1 for entry in self._entries.values() if entry.is_expired(now))
        return {"total": total, "expired": expired}

    def close(self) -> None:
        self.clean_expired()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            with open(self.path) as f:
                raw = json.load(f)
            self._entries = {
                key: CacheEntry.from_dict(entry) for key, entry in raw.get("entries", {}).items()
            }
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Failed to load cache %s, starting fresh: %s", self.path, e)
            self._entries = {}

    def _save(self) -> None:
        # Caller holds the write lock
        payload = {"entries": {key: entry.to_dict() for key, entry in self._entries.items()}}
        tmp_path = self.path.with_suffix(".json.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError("write", str(self.path), e) from e


def cache_file_name(account_id: str) -> str:
    """File name for an account's cache: a readable prefix plus a digest of the raw id."""
    readable = re.sub(r"[^A-Za-z0-9_-]", "_", account_id) or "default"
    digest = hashlib.sha256(account_id.encode()).hexdigest()[:12]
    return f"cache_{readable}_{digest}.json"
