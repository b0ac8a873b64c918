"""
app/services/dashboard_service.py

Consumer-facing entry point: builds a role-scoped dashboard for one user.

One build pass
--------------
1. Resolve the subject user's raw roles (and primary school) and, at the
   same time, settle every collection through the fetch orchestrator.
2. Classify the subject into one canonical role.
3. Aggregate the settled collections into that role's view model.
4. Store the result under the ``dashboard`` cache namespace so
   :meth:`DashboardService.peek_dashboard_data` can serve it instantly.

Failed sources are masked by deterministic fallback data and surface only
as ``is_degraded``. A source that settles with no usable value at all
raises :class:`TotalSourceFailureError`, the only error a consumer sees.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from pydantic import TypeAdapter, ValidationError

from app.cache.kv_store import InMemoryKeyValueStore, KeyValueStore, SqlKeyValueStore
from app.cache.ttl_cache import TTLCacheStore
from app.config import (
    DashboardSettings,
    get_cache_settings,
    get_dashboard_settings,
    get_lms_settings,
)
from app.domain.dashboard import DashboardData, DashboardState, FetchTask, SourceResult, ViewModel
from app.domain.roles import capabilities_for
from app.lms.client import LMSClient
from app.lms.schemas import (
    CourseCompletion,
    CourseEnrollment,
    LMSCategory,
    LMSCompany,
    LMSCourse,
    LMSUser,
    UserActivity,
)
from app.lms.sources import LMSSources
from app.logging_utils import log_event
from app.services.aggregation_service import AggregationService
from app.services.fallbacks import FallbackGenerator
from app.services.fetch_orchestrator import FetchOrchestrator
from app.services.role_classifier import classify

logger = logging.getLogger(__name__)

DASHBOARD_NAMESPACE = "dashboard"
ALL_SOURCES_FAILED_NOTICE = (
    "The learning platform could not be reached. Sample data is shown; retry to load live data."
)

_COLLECTION_CODECS: dict[str, TypeAdapter[Any]] = {
    "users": TypeAdapter(list[LMSUser]),
    "courses": TypeAdapter(list[LMSCourse]),
    "categories": TypeAdapter(list[LMSCategory]),
    "companies": TypeAdapter(list[LMSCompany]),
    "enrollments": TypeAdapter(list[CourseEnrollment]),
    "completions": TypeAdapter(list[CourseCompletion]),
    "activity": TypeAdapter(list[UserActivity]),
}
_DASHBOARD_CODEC: TypeAdapter[DashboardData] = TypeAdapter(DashboardData)


class TotalSourceFailureError(RuntimeError):
    """
    Raised when a source failed and its fallback produced nothing usable.

    The dashboard cannot be built; the caller should offer a retry.
    """

    def __init__(self, failed_keys: list[str]) -> None:
        self.failed_keys = tuple(failed_keys)
        super().__init__(f"No usable data for sources: {', '.join(failed_keys)}.")


class DashboardService:
    """
    Builds :class:`DashboardData` for any user. Safe to call concurrently.

    Parameters
    ----------
    sources_factory:
        Returns a fresh :class:`LMSSources` for each build pass.
    cache:
        TTL cache shared by the collections and the stored dashboards.
    settings:
        Aggregation and fallback settings.
    clock:
        Returns the current UTC time. Injectable for tests.
    """

    def __init__(
        self,
        *,
        sources_factory: Callable[[], LMSSources],
        cache: TTLCacheStore,
        settings: DashboardSettings,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._sources_factory = sources_factory
        self._cache = cache
        self._settings = settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._orchestrator = FetchOrchestrator(cache=cache)
        self._aggregator = AggregationService(settings=settings)

    def build_tasks(self, sources: LMSSources, fallbacks: FallbackGenerator) -> list[FetchTask]:
        remote_calls = {
            "users": sources.fetch_users,
            "courses": sources.fetch_courses,
            "categories": sources.fetch_categories,
            "companies": sources.fetch_companies,
            "enrollments": sources.fetch_enrollments,
            "completions": sources.fetch_completions,
            "activity": sources.fetch_activity,
        }
        return [
            FetchTask(
                key=key,
                remote_call=remote_call,
                fallback=fallbacks.for_source(key),
                cache_key=key,
                codec=_COLLECTION_CODECS[key],
            )
            for key, remote_call in remote_calls.items()
        ]

    async def get_role_scoped_dashboard_data(self, user_id: int) -> DashboardData:
        """
        Fetch, classify and aggregate a fresh dashboard for *user_id*.

        Raises
        ------
        TotalSourceFailureError
            If any source settled without a usable value.
        """

        now = self._clock()
        sources = self._sources_factory()
        fallbacks = FallbackGenerator(seed=self._settings.fallback_seed, now=now)
        subject, results = await asyncio.gather(
            sources.fetch_subject(user_id),
            self._orchestrator.fetch_all(self.build_tasks(sources, fallbacks)),
        )

        unusable = [result.key for result in results if not result.usable]
        if unusable:
            logger.error("Dashboard build failed user_id=%s sources=%s", user_id, ",".join(unusable))
            raise TotalSourceFailureError(unusable)

        role = classify(subject.raw_roles)
        view_model = self._aggregator.aggregate(
            role,
            results,
            subject_id=user_id,
            subject_company_id=subject.company.id if subject.company else None,
            now=now,
        )
        data = self._assemble(user_id, role, view_model, results)
        log_event(
            logger,
            logging.INFO,
            "dashboard_built",
            user_id=user_id,
            role=role,
            state=data.state,
            degraded_sources=list(data.degraded_sources),
            subject_lookup_failed=subject.lookup_failed,
        )
        if data.state != DashboardState.FATAL_ERROR:
            self._cache.write(
                f"{DASHBOARD_NAMESPACE}:{user_id}",
                _DASHBOARD_CODEC.dump_python(data, mode="json"),
            )
        return data

    def peek_dashboard_data(self, user_id: int) -> DashboardData | None:
        """
        Return the last stored dashboard for *user_id* without network access.
        """

        cached = self._cache.read(f"{DASHBOARD_NAMESPACE}:{user_id}")
        if cached is None:
            return None
        try:
            return _DASHBOARD_CODEC.validate_python(cached)
        except ValidationError:
            logger.warning("Stored dashboard failed validation user_id=%s", user_id)
            return None

    def invalidate(self, user_id: int) -> None:
        self._cache.invalidate(f"{DASHBOARD_NAMESPACE}:{user_id}")

    @staticmethod
    def _assemble(
        user_id: int,
        role: str,
        view_model: ViewModel,
        results: list[SourceResult[Any]],
    ) -> DashboardData:
        degraded = tuple(result.key for result in results if result.is_fallback)
        all_failed = bool(results) and len(degraded) == len(results)
        if all_failed:
            state = DashboardState.FATAL_ERROR
        elif degraded:
            state = DashboardState.READY_DEGRADED
        else:
            state = DashboardState.READY
        return DashboardData(
            user_id=user_id,
            role=role,
            view_model=view_model,
            is_degraded=bool(degraded),
            state=state,
            degraded_sources=degraded,
            notice=ALL_SOURCES_FAILED_NOTICE if all_failed else None,
            capabilities=capabilities_for(role),
        )


class DashboardSession:
    """
    Tracks one user's dashboard through ``idle -> loading -> ready |
    ready_degraded | fatal_error``.

    Every :meth:`refresh` re-enters ``loading``, so a manual or timed retry
    leaves ``fatal_error``. Overlapping refreshes are not serialized; the
    last one to finish wins.
    """

    def __init__(self, service: DashboardService, user_id: int) -> None:
        self._service = service
        self.user_id = user_id
        self.state = DashboardState.IDLE
        self.data: DashboardData | None = None
        self.error: str | None = None

    async def refresh(self) -> DashboardData | None:
        self._transition(DashboardState.LOADING)
        try:
            data = await self._service.get_role_scoped_dashboard_data(self.user_id)
        except TotalSourceFailureError as exc:
            self.error = str(exc)
            self._transition(DashboardState.FATAL_ERROR)
            return None
        except Exception as exc:  # noqa: BLE001
            logger.exception("Dashboard refresh crashed user_id=%s", self.user_id)
            self.error = f"{type(exc).__name__}: {exc}"
            self._transition(DashboardState.FATAL_ERROR)
            return None
        self.data = data
        self.error = data.notice
        self._transition(data.state)
        return data

    def _transition(self, state: str) -> None:
        if state != self.state:
            log_event(
                logger,
                logging.DEBUG,
                "dashboard_state_changed",
                user_id=self.user_id,
                previous=self.state,
                current=state,
            )
        self.state = state


def build_key_value_store(backend: str) -> KeyValueStore:
    if backend == "database":
        from db.session import SessionLocal

        return SqlKeyValueStore(session_factory=SessionLocal)
    return InMemoryKeyValueStore()


@lru_cache(maxsize=1)
def get_lms_client() -> LMSClient:
    return LMSClient(settings=get_lms_settings())


@lru_cache(maxsize=1)
def get_dashboard_service() -> DashboardService:
    """
    Build and cache the dashboard service from environment settings.
    """

    lms_settings = get_lms_settings()
    cache_settings = get_cache_settings()
    client = get_lms_client()
    cache = TTLCacheStore(build_key_value_store(cache_settings.backend), settings=cache_settings)
    return DashboardService(
        sources_factory=lambda: LMSSources(client, max_concurrency=lms_settings.max_concurrency),
        cache=cache,
        settings=get_dashboard_settings(),
    )
