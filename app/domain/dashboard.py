"""
app/domain/dashboard.py

Value types that flow between the fetch orchestrator, the aggregation engine
and the dashboard service.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter

T = TypeVar("T")


class SourceStatus:
    SUCCESS = "success"
    FAILED = "failed"


class DashboardState:
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    READY_DEGRADED = "ready_degraded"
    FATAL_ERROR = "fatal_error"


@dataclass(frozen=True)
class FetchTask:
    """
    One independent remote fetch plus the synthetic value used when it fails.

    ``cache_key`` opts the task into the TTL cache; its first ``:``-separated
    segment is the cache namespace. ``codec`` converts between the typed value
    and its JSON form when the value is cached.
    """

    key: str
    remote_call: Callable[[], Awaitable[Any]]
    fallback: Callable[[], Any] | None = None
    cache_key: str | None = None
    codec: TypeAdapter[Any] | None = None


@dataclass(frozen=True)
class SourceResult(Generic[T]):
    """
    Settled outcome of one :class:`FetchTask`.

    ``status`` reports the remote call. A failed call that was masked by its
    fallback keeps ``status=failed`` with ``is_fallback=True`` and a synthetic
    ``value``. A failed call with no usable fallback has ``value=None``.
    """

    key: str
    status: str
    value: T | None
    is_fallback: bool = False
    from_cache: bool = False
    error: str | None = None

    @property
    def usable(self) -> bool:
        return self.status == SourceStatus.SUCCESS or self.is_fallback


@dataclass(frozen=True)
class ViewModel:
    role: str
    stats: dict[str, int | float]
    breakdowns: dict[str, list[dict[str, Any]]]
    generated_at: datetime


@dataclass(frozen=True)
class DashboardData:
    """
    What a consumer receives for one subject user.
    """

    user_id: int
    role: str
    view_model: ViewModel
    is_degraded: bool
    state: str = DashboardState.READY
    degraded_sources: tuple[str, ...] = ()
    notice: str | None = None
    capabilities: frozenset[str] = field(default_factory=frozenset)
