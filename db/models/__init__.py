"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.cache_entry import CacheEntry

__all__ = [
    "CacheEntry",
]
