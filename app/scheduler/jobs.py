"""
app/scheduler/jobs.py

APScheduler-based periodic dashboard refresh.

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``AsyncIOScheduler`` and
start it inside the running event loop (the FastAPI ``lifespan`` does this).
:class:`DashboardPoller` registers one interval job per watched user. Stopping
a user removes the job, which prevents future refreshes only. A refresh
already awaiting the LMS is not cancelled; it finishes and still writes its
result to the cache.
"""

from __future__ import annotations

import logging

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.services.dashboard_service import DashboardService, DashboardSession

logger = logging.getLogger(__name__)


def build_scheduler() -> AsyncIOScheduler:
    """
    Return a configured but *not yet started* scheduler.
    """

    return AsyncIOScheduler(timezone="UTC")


def _job_id(user_id: int) -> str:
    return f"dashboard_refresh:{user_id}"


class DashboardPoller:
    """
    Periodically refreshes watched users' dashboards.

    At most one refresh per user runs at a time (``max_instances=1``); a tick
    that arrives while the previous refresh is still in flight is skipped.
    """

    def __init__(
        self,
        *,
        scheduler: AsyncIOScheduler,
        service: DashboardService,
        interval_seconds: float,
    ) -> None:
        self._scheduler = scheduler
        self._service = service
        self._interval_seconds = interval_seconds
        self._sessions: dict[int, DashboardSession] = {}

    def session(self, user_id: int) -> DashboardSession | None:
        return self._sessions.get(user_id)

    def watch(self, user_id: int) -> DashboardSession:
        """
        Start refreshing *user_id* every interval and return its session.

        Watching an already-watched user returns the existing session.
        """

        existing = self._sessions.get(user_id)
        if existing is not None:
            return existing

        session = DashboardSession(self._service, user_id)
        self._scheduler.add_job(
            session.refresh,
            trigger="interval",
            seconds=self._interval_seconds,
            id=_job_id(user_id),
            name=f"Dashboard refresh for user {user_id}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._sessions[user_id] = session
        logger.info("Dashboard polling started user_id=%s interval=%s", user_id, self._interval_seconds)
        return session

    def stop(self, user_id: int) -> None:
        self._sessions.pop(user_id, None)
        try:
            self._scheduler.remove_job(_job_id(user_id))
        except JobLookupError:
            return
        logger.info("Dashboard polling stopped user_id=%s", user_id)

    def stop_all(self) -> None:
        for user_id in list(self._sessions):
            self.stop(user_id)
