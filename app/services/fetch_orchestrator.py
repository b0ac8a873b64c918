"""
app/services/fetch_orchestrator.py

Runs independent remote fetches concurrently and settles each one into a
:class:`SourceResult`, masking failures with synthetic fallback data.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from app.cache.ttl_cache import TTLCacheStore
from app.domain.dashboard import FetchTask, SourceResult, SourceStatus
from app.logging_utils import log_event

logger = logging.getLogger(__name__)


class FetchOrchestrator:
    """
    Settles a batch of :class:`FetchTask` objects.

    All remote calls start together and the batch completes only when every
    task has settled; one failure never cancels its siblings. Results come
    back in task order. When a cache is supplied, tasks with a ``cache_key``
    read through it and successful remote values are written back.
    """

    def __init__(self, *, cache: TTLCacheStore | None = None) -> None:
        self._cache = cache

    async def fetch_all(self, tasks: Sequence[FetchTask]) -> list[SourceResult[Any]]:
        settled = await asyncio.gather(*(self._settle(task) for task in tasks))
        return list(settled)

    async def _settle(self, task: FetchTask) -> SourceResult[Any]:
        cached = self._read_cached(task)
        if cached is not None:
            log_event(logger, logging.DEBUG, "source_settled", key=task.key, outcome="cache")
            return SourceResult(key=task.key, status=SourceStatus.SUCCESS, value=cached, from_cache=True)

        try:
            value = await task.remote_call()
        except Exception as exc:  # noqa: BLE001
            return self._fall_back(task, exc)

        self._write_cached(task, value)
        log_event(logger, logging.DEBUG, "source_settled", key=task.key, outcome="remote")
        return SourceResult(key=task.key, status=SourceStatus.SUCCESS, value=value)

    def _fall_back(self, task: FetchTask, exc: Exception) -> SourceResult[Any]:
        error = f"{type(exc).__name__}: {exc}"
        if task.fallback is None:
            logger.error("Source failed with no fallback key=%s error=%s", task.key, error)
            return SourceResult(key=task.key, status=SourceStatus.FAILED, value=None, error=error)
        try:
            value = task.fallback()
        except Exception as fallback_exc:  # noqa: BLE001
            logger.error(
                "Fallback generator failed key=%s error=%s fallback_error=%s",
                task.key,
                error,
                fallback_exc,
            )
            return SourceResult(key=task.key, status=SourceStatus.FAILED, value=None, error=error)

        logger.warning("Source failed, using fallback data key=%s error=%s", task.key, error)
        return SourceResult(
            key=task.key,
            status=SourceStatus.FAILED,
            value=value,
            is_fallback=True,
            error=error,
        )

    def _read_cached(self, task: FetchTask) -> Any | None:
        if self._cache is None or task.cache_key is None:
            return None
        data = self._cache.read(task.cache_key)
        if data is None or task.codec is None:
            return data
        try:
            return task.codec.validate_python(data)
        except ValidationError:
            logger.warning("Cached value failed validation key=%s", task.cache_key)
            return None

    def _write_cached(self, task: FetchTask, value: Any) -> None:
        if self._cache is None or task.cache_key is None:
            return
        try:
            data = value if task.codec is None else task.codec.dump_python(value, mode="json")
        except (PydanticSerializationError, ValueError, TypeError) as exc:
            logger.warning("Skipping cache write, value not serializable key=%s error=%s", task.cache_key, exc)
            return
        self._cache.write(task.cache_key, data)
