"""
db/models/cache_entry.py

Durable key-value rows backing the TTL cache.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class CacheEntry(Base):
    """
    One serialized cache entry.

    ``value`` holds the JSON envelope written by the TTL cache; expiry is
    decided from the envelope's own timestamp, not from ``updated_at``.
    """

    __tablename__ = "cache_entries"

    key: Mapped[str] = mapped_column(String(512), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=lambda: datetime.now(timezone.utc),
    )
