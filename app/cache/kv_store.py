"""
app/cache/kv_store.py

Durable key-value media behind the TTL cache.

A medium offers synchronous single-key ``get``/``set`` of strings. Failures
are raised as :class:`CacheUnavailableError`; the TTL cache above always
catches them.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.repositories.cache_entry_repository import CacheEntryRepository


class CacheUnavailableError(RuntimeError):
    """
    Raised when the key-value medium cannot be read or written.
    """


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class InMemoryKeyValueStore:
    """
    Process-local medium. Each ``set`` replaces the whole value.
    """

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def __len__(self) -> int:
        return len(self._values)


class SqlKeyValueStore:
    """
    Medium backed by the ``cache_entries`` table.

    Every operation runs in its own short session so a failed write never
    leaves a half-open transaction behind.
    """

    def __init__(self, *, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def _open_session(self, key: str) -> Session:
        try:
            return self._session_factory()
        except Exception as exc:  # noqa: BLE001
            raise CacheUnavailableError(f"Cache session unavailable for key={key}.") from exc

    def get(self, key: str) -> str | None:
        session = self._open_session(key)
        try:
            return CacheEntryRepository(session).get_value(key)
        except SQLAlchemyError as exc:
            raise CacheUnavailableError(f"Cache read failed for key={key}.") from exc
        finally:
            session.close()

    def set(self, key: str, value: str) -> None:
        session = self._open_session(key)
        try:
            CacheEntryRepository(session).upsert(key, value)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise CacheUnavailableError(f"Cache write failed for key={key}.") from exc
        finally:
            session.close()
