"""
tests/conftest.py

Shared fixtures: an in-process fake of the LMS web-service endpoint served
through httpx.MockTransport, and a dashboard service wired to it.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest

from app.cache.kv_store import InMemoryKeyValueStore
from app.cache.ttl_cache import TTLCacheStore
from app.config import CacheSettings, DashboardSettings, LMSSettings
from app.lms.client import LMSClient
from app.lms.sources import LMSSources
from app.services.dashboard_service import DashboardService

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

ADMIN_ID = 2
TEACHER_ID = 3
STUDENT_ID = 4
OTHER_STUDENT_ID = 5


def ts(days: float) -> int:
    return int((NOW - timedelta(days=days)).timestamp())


def _role(roleid: int, shortname: str) -> dict[str, Any]:
    return {"roleid": roleid, "shortname": shortname, "name": shortname.title()}


class FakeLMS:
    """
    Answers LMS function calls from canned site data.

    ``failing`` holds function names that answer HTTP 500. A response entry
    may be a callable taking the flattened form and returning either JSON
    data or an ``httpx.Response``.
    """

    def __init__(self) -> None:
        self.failing: set[str] = set()
        self.calls: list[tuple[str, dict[str, str]]] = []
        self.site_roles: dict[int, list[dict[str, Any]]] = {
            ADMIN_ID: [_role(1, "siteadmin")],
            TEACHER_ID: [_role(3, "editingteacher")],
            STUDENT_ID: [_role(5, "student")],
            OTHER_STUDENT_ID: [_role(5, "student")],
        }
        self.users = [
            {"id": ADMIN_ID, "username": "admin", "fullname": "Site Admin", "firstaccess": ts(300), "lastaccess": ts(1)},
            {"id": TEACHER_ID, "username": "tess", "fullname": "Tess Teacher", "firstaccess": ts(12), "lastaccess": ts(2)},
            {"id": STUDENT_ID, "username": "sam", "fullname": "Sam Student", "firstaccess": ts(100), "lastaccess": ts(3)},
            {"id": OTHER_STUDENT_ID, "username": "ola", "fullname": "Ola Student", "firstaccess": ts(100), "lastaccess": ts(50)},
        ]
        self.responses: dict[str, Any] = {
            "core_user_get_users": lambda form: {"users": self.users, "warnings": []},
            "local_intelliboard_get_users_roles": self._user_roles,
            "core_course_get_courses": [
                {"id": 1, "fullname": "Site home", "categoryid": 0},
                {"id": 10, "fullname": "Algebra", "categoryid": 1, "visible": 1},
                {"id": 11, "fullname": "Hidden draft", "categoryid": 1, "visible": 0},
                {"id": 12, "fullname": "Poetry", "categoryid": 2, "visible": 1},
            ],
            "core_course_get_categories": [{"id": 1, "name": "Maths"}, {"id": 2, "name": "Literature"}],
            "block_iomad_company_admin_get_companies": {"companies": [{"id": 7, "name": "North School"}]},
            "block_iomad_company_admin_get_user_companies": {"companies": [{"id": 7, "name": "North School"}]},
            "core_enrol_get_enrolled_users": self._enrolled_users,
            "gradereport_user_get_grade_items": self._grade_items,
            "core_completion_get_course_completion_status": self._completion_status,
        }

    # -- canned handlers ------------------------------------------------

    def _user_roles(self, form: dict[str, str]) -> dict[str, Any]:
        roles = self.site_roles.get(int(form["data[userid]"]), [])
        return {"data": json.dumps({str(index): role for index, role in enumerate(roles)})}

    @staticmethod
    def _enrolled_users(form: dict[str, str]) -> list[dict[str, Any]]:
        by_course = {
            10: [
                {"id": TEACHER_ID, "roles": [_role(3, "editingteacher")], "lastcourseaccess": ts(2)},
                {"id": STUDENT_ID, "roles": [_role(5, "student")], "lastcourseaccess": ts(3)},
                {"id": OTHER_STUDENT_ID, "roles": [_role(5, "student")], "lastcourseaccess": ts(50)},
            ],
            12: [{"id": STUDENT_ID, "roles": [_role(5, "student")], "lastcourseaccess": ts(6)}],
        }
        return by_course.get(int(form["courseid"]), [])

    @staticmethod
    def _grade_items(form: dict[str, str]) -> dict[str, Any]:
        by_course = {
            10: [
                {"userid": STUDENT_ID, "gradeitems": [{"itemtype": "course", "graderaw": 80, "grademin": 0, "grademax": 100}]},
                {"userid": OTHER_STUDENT_ID, "gradeitems": [{"itemtype": "course", "percentageformatted": "40.00 %"}]},
            ],
            12: [{"userid": STUDENT_ID, "gradeitems": [{"itemtype": "mod", "graderaw": 5}]}],
        }
        return {"usergrades": by_course.get(int(form["courseid"]), []), "warnings": []}

    @staticmethod
    def _completion_status(form: dict[str, str]) -> dict[str, Any]:
        completed = (int(form["courseid"]), int(form["userid"])) == (10, STUDENT_ID)
        return {"completionstatus": {"completed": completed, "aggregation": 1}, "warnings": []}

    # -- transport ------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        form = {key: values[0] for key, values in parse_qs(request.content.decode()).items()}
        function = form.pop("wsfunction")
        self.calls.append((function, form))
        if function in self.failing:
            return httpx.Response(500, text="internal error")
        response = self.responses.get(function)
        if callable(response):
            response = response(form)
        if isinstance(response, httpx.Response):
            return response
        if response is None:
            return httpx.Response(
                200,
                json={"exception": "webservice_access_exception", "errorcode": "accessexception", "message": "no"},
            )
        return httpx.Response(200, json=response)

    def count(self, function: str) -> int:
        return sum(1 for name, _ in self.calls if name == function)

    def client(self) -> LMSClient:
        return LMSClient(
            settings=LMSSettings(base_url="https://lms.test/webservice/rest/server.php", token="t"),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)),
        )


@pytest.fixture()
def fake_lms() -> FakeLMS:
    return FakeLMS()


@pytest.fixture()
def make_sources(fake_lms: FakeLMS) -> Callable[[], LMSSources]:
    client = fake_lms.client()
    return lambda: LMSSources(client, max_concurrency=3)


@pytest.fixture()
def ttl_cache() -> TTLCacheStore:
    return TTLCacheStore(
        InMemoryKeyValueStore(),
        settings=CacheSettings(),
        clock=lambda: int(NOW.timestamp() * 1000),
    )


@pytest.fixture()
def dashboard_service(make_sources: Callable[[], LMSSources], ttl_cache: TTLCacheStore) -> DashboardService:
    return DashboardService(
        sources_factory=make_sources,
        cache=ttl_cache,
        settings=DashboardSettings(),
        clock=lambda: NOW,
    )
