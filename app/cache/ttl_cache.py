"""
app/cache/ttl_cache.py

Time-bounded cache of JSON blobs over a key-value medium.

Entries are stored as ``{"data": ..., "writtenAt": <epoch ms>}`` under
``<prefix>:<key>``. The first ``:``-separated segment of ``key`` is the
namespace, and each namespace carries one fixed TTL. Expiry is checked on
read; nothing runs in the background.

Every medium or serialization failure is logged and treated as a miss (on
read) or a no-op (on write). Callers never see cache exceptions.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any

from app.cache.kv_store import CacheUnavailableError, KeyValueStore
from app.config import CacheSettings
from app.logging_utils import log_event

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "lms-dashboard"


def _epoch_millis() -> int:
    return int(time.time() * 1000)


def namespace_of(key: str) -> str:
    return key.split(":", 1)[0]


class TTLCacheStore:
    """
    Read/write timestamped blobs with per-namespace expiry.

    Parameters
    ----------
    medium:
        Key-value medium holding the serialized entries.
    settings:
        Supplies the TTL for each namespace.
    clock:
        Returns the current time in epoch milliseconds. Injectable for tests.
    """

    def __init__(
        self,
        medium: KeyValueStore,
        *,
        settings: CacheSettings,
        clock: Callable[[], int] = _epoch_millis,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        self._medium = medium
        self._settings = settings
        self._clock = clock
        self._key_prefix = key_prefix

    def ttl_millis(self, key: str) -> int:
        return int(self._settings.ttl_for(namespace_of(key)) * 1000)

    def _storage_key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"

    def write(self, key: str, data: Any) -> None:
        self._write_entry(key, data, written_at=self._clock())

    def read(self, key: str) -> Any | None:
        """
        Return the cached data for *key*, or ``None`` on any kind of miss.

        A miss is an absent entry, an entry that does not parse, or one whose
        age has reached the namespace TTL.
        """

        try:
            raw = self._medium.get(self._storage_key(key))
        except (CacheUnavailableError, OSError) as exc:
            logger.warning("Cache read failed key=%s error=%s", key, exc)
            return None
        if raw is None:
            log_event(logger, logging.DEBUG, "cache_miss", key=key, reason="absent")
            return None

        try:
            entry = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unparseable cache entry key=%s", key)
            return None
        if not isinstance(entry, dict) or "data" not in entry:
            logger.warning("Discarding malformed cache entry key=%s", key)
            return None
        written_at = entry.get("writtenAt")
        if isinstance(written_at, bool) or not isinstance(written_at, (int, float)):
            logger.warning("Discarding cache entry without timestamp key=%s", key)
            return None

        age = self._clock() - written_at
        if age >= self.ttl_millis(key):
            log_event(logger, logging.DEBUG, "cache_miss", key=key, reason="expired", age_ms=age)
            return None

        log_event(logger, logging.DEBUG, "cache_hit", key=key, age_ms=age)
        return entry["data"]

    def invalidate(self, key: str) -> None:
        """
        Make the next read of *key* a miss.

        The medium has no delete, so the entry is overwritten with a tombstone
        whose timestamp is already past the namespace TTL.
        """

        self._write_entry(key, None, written_at=self._clock() - self.ttl_millis(key))

    def _write_entry(self, key: str, data: Any, *, written_at: int) -> None:
        try:
            payload = json.dumps({"data": data, "writtenAt": written_at})
        except (TypeError, ValueError) as exc:
            logger.warning("Cache entry not serializable key=%s error=%s", key, exc)
            return
        try:
            self._medium.set(self._storage_key(key), payload)
        except (CacheUnavailableError, OSError) as exc:
            logger.warning("Cache write failed key=%s error=%s", key, exc)
