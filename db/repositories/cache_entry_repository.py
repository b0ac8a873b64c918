"""
db/repositories/cache_entry_repository.py

Persistence layer for CacheEntry rows.

The caller controls commit/rollback; this repository never commits on its own.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from db.models.cache_entry import CacheEntry

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class CacheEntryRepository:
    """
    Single-key reads and whole-value upserts of cache entries.

    An upsert replaces ``value`` in one statement, so a concurrent reader
    sees either the old value or the new one.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_value(self, key: str) -> str | None:
        return self._session.execute(
            select(CacheEntry.value).where(CacheEntry.key == key)
        ).scalar_one_or_none()

    def upsert(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc)
        insert = _UPSERT_DIALECTS.get(self._session.get_bind().dialect.name)
        if insert is None:
            self._session.merge(CacheEntry(key=key, value=value, updated_at=now))
            self._session.flush()
            return

        stmt = insert(CacheEntry).values(key=key, value=value, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[CacheEntry.key],
            set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
        )
        self._session.execute(stmt)
