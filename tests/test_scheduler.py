"""
tests/test_scheduler.py

Pytest unit tests for DashboardPoller job registration. The scheduler is
never started, so no refresh actually fires.
"""

from __future__ import annotations

import asyncio

from app.domain.dashboard import DashboardState
from app.scheduler.jobs import DashboardPoller, build_scheduler
from app.services.dashboard_service import DashboardService
from conftest import ADMIN_ID, TEACHER_ID


def _poller(service: DashboardService) -> tuple[DashboardPoller, object]:
    scheduler = build_scheduler()
    return DashboardPoller(scheduler=scheduler, service=service, interval_seconds=45.0), scheduler


def test_watch_registers_interval_job(dashboard_service: DashboardService) -> None:
    poller, scheduler = _poller(dashboard_service)

    session = poller.watch(ADMIN_ID)

    job = scheduler.get_job(f"dashboard_refresh:{ADMIN_ID}")
    assert job is not None
    assert job.max_instances == 1
    assert job.coalesce is True
    assert job.trigger.interval.total_seconds() == 45.0
    assert session.state == DashboardState.IDLE
    assert poller.session(ADMIN_ID) is session


def test_watch_twice_reuses_session(dashboard_service: DashboardService) -> None:
    poller, scheduler = _poller(dashboard_service)
    first = poller.watch(ADMIN_ID)
    assert poller.watch(ADMIN_ID) is first
    assert len(scheduler.get_jobs()) == 1


def test_stop_removes_job(dashboard_service: DashboardService) -> None:
    poller, scheduler = _poller(dashboard_service)
    poller.watch(ADMIN_ID)
    poller.watch(TEACHER_ID)

    poller.stop(ADMIN_ID)

    assert scheduler.get_job(f"dashboard_refresh:{ADMIN_ID}") is None
    assert poller.session(ADMIN_ID) is None
    assert scheduler.get_job(f"dashboard_refresh:{TEACHER_ID}") is not None


def test_stop_unknown_user_is_noop(dashboard_service: DashboardService) -> None:
    poller, _ = _poller(dashboard_service)
    poller.stop(99)


def test_stop_all(dashboard_service: DashboardService) -> None:
    poller, scheduler = _poller(dashboard_service)
    poller.watch(ADMIN_ID)
    poller.watch(TEACHER_ID)

    poller.stop_all()

    assert scheduler.get_jobs() == []


def test_job_runs_session_refresh(dashboard_service: DashboardService) -> None:
    poller, scheduler = _poller(dashboard_service)
    session = poller.watch(TEACHER_ID)

    job = scheduler.get_job(f"dashboard_refresh:{TEACHER_ID}")
    asyncio.run(job.func())

    assert session.state == DashboardState.READY
    assert dashboard_service.peek_dashboard_data(TEACHER_ID) is not None
