"""
Repository layer exports.
"""

from db.repositories.cache_entry_repository import CacheEntryRepository

__all__ = [
    "CacheEntryRepository",
]
