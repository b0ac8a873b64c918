"""
app/lms/sources.py

One async fetch per LMS collection, plus the subject-user lookup.

Collections that need one call per user or per course fan out under a
semaphore so a large site never opens more than ``max_concurrency`` requests
at once. A :class:`LMSSources` instance is meant to live for one refresh pass:
the visible course list is fetched at most once per instance and shared by
the per-course collections.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from app.domain.roles import RawRole
from app.lms.client import LMSClient
from app.lms.errors import LMSPayloadError, LMSRequestError
from app.lms.schemas import (
    SITE_COURSE_ID,
    CourseCompletion,
    CourseEnrollment,
    LMSCategory,
    LMSCompany,
    LMSCourse,
    LMSUser,
    UserActivity,
    extract_rows,
    parse_raw_roles,
    parse_records,
)

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT")
ResultT = TypeVar("ResultT")

FN_GET_USERS = "core_user_get_users"
FN_GET_USER_ROLES = "local_intelliboard_get_users_roles"
FN_GET_COURSES = "core_course_get_courses"
FN_GET_CATEGORIES = "core_course_get_categories"
FN_GET_COMPANIES = "block_iomad_company_admin_get_companies"
FN_GET_USER_COMPANIES = "block_iomad_company_admin_get_user_companies"
FN_GET_ENROLLED_USERS = "core_enrol_get_enrolled_users"
FN_GET_GRADE_ITEMS = "gradereport_user_get_grade_items"
FN_GET_COMPLETION_STATUS = "core_completion_get_course_completion_status"

_ACTIVE_USERS_CRITERIA = {"criteria": [{"key": "deleted", "value": 0}]}
_PERCENT_PATTERN = re.compile(r"(-?\d+(?:\.\d+)?)\s*%")


@dataclass(frozen=True)
class SubjectProfile:
    """
    Raw identity facts about the user whose dashboard is being built.
    """

    user_id: int
    raw_roles: tuple[RawRole, ...] = ()
    company: LMSCompany | None = None
    lookup_failed: bool = False


@dataclass
class _FanOutOutcome:
    values: list[Any] = field(default_factory=list)
    failures: list[BaseException] = field(default_factory=list)


def course_total_percent(grade_items: Any) -> float | None:
    """
    Return the course-total grade of one user as a percentage, if present.
    """

    if not isinstance(grade_items, list):
        return None
    for item in grade_items:
        if not isinstance(item, dict) or item.get("itemtype") != "course":
            continue
        raw = item.get("graderaw")
        grade_min = item.get("grademin") or 0
        grade_max = item.get("grademax")
        if isinstance(raw, (int, float)) and isinstance(grade_max, (int, float)) and grade_max > grade_min:
            return (raw - grade_min) / (grade_max - grade_min) * 100
        formatted = item.get("percentageformatted")
        if isinstance(formatted, str):
            match = _PERCENT_PATTERN.search(formatted)
            if match:
                return float(match.group(1))
        return None
    return None


class LMSSources:
    def __init__(self, client: LMSClient, *, max_concurrency: int = 8) -> None:
        self._client = client
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))
        self._courses_task: asyncio.Future[list[LMSCourse]] | None = None

    # ------------------------------------------------------------------
    # Users and roles
    # ------------------------------------------------------------------

    async def fetch_user_roles(self, user_id: int) -> list[RawRole]:
        payload = await self._client.call(
            FN_GET_USER_ROLES,
            {"data": {"userid": user_id, "courseid": 0, "checkparentcontexts": 1}},
        )
        return parse_raw_roles(payload)

    async def fetch_users(self) -> list[LMSUser]:
        """
        List every non-deleted user with their site-level role assignments.

        A failed role lookup leaves that user with no roles.
        """

        payload = await self._client.call(FN_GET_USERS, _ACTIVE_USERS_CRITERIA)
        parsed = parse_records(LMSUser, extract_rows(payload, key="users", source=FN_GET_USERS), source=FN_GET_USERS)

        async def with_roles(user: LMSUser) -> LMSUser:
            try:
                roles = await self.fetch_user_roles(user.id)
            except (LMSRequestError, LMSPayloadError) as exc:
                logger.debug("Role lookup failed user_id=%s error=%s", user.id, exc)
                return user
            return user.model_copy(update={"roles": tuple(roles)})

        outcome = await self._fan_out(parsed.records, with_roles)
        return outcome.values

    async def fetch_activity(self) -> list[UserActivity]:
        payload = await self._client.call(FN_GET_USERS, _ACTIVE_USERS_CRITERIA)
        rows = [
            {
                "user_id": row.get("id"),
                "first_access": row.get("firstaccess"),
                "last_access": row.get("lastaccess"),
                "last_login": row.get("lastlogin"),
            }
            for row in extract_rows(payload, key="users", source=FN_GET_USERS)
            if isinstance(row, dict)
        ]
        return parse_records(UserActivity, rows, source="activity").records

    async def fetch_subject(self, user_id: int) -> SubjectProfile:
        """
        Resolve the subject user's raw roles and primary company.

        A failed role lookup yields an empty role set; a failed company
        lookup yields no company. Neither raises.
        """

        roles_outcome, company_outcome = await asyncio.gather(
            self.fetch_user_roles(user_id),
            self._fetch_primary_company(user_id),
            return_exceptions=True,
        )
        lookup_failed = isinstance(roles_outcome, BaseException)
        if lookup_failed:
            logger.warning("Subject role lookup failed user_id=%s error=%s", user_id, roles_outcome)
            roles_outcome = []
        if isinstance(company_outcome, BaseException):
            logger.info("Subject company lookup failed user_id=%s error=%s", user_id, company_outcome)
            company_outcome = None
        return SubjectProfile(
            user_id=user_id,
            raw_roles=tuple(roles_outcome),
            company=company_outcome,
            lookup_failed=lookup_failed,
        )

    async def _fetch_primary_company(self, user_id: int) -> LMSCompany | None:
        payload = await self._client.call(FN_GET_USER_COMPANIES, {"userid": user_id})
        rows = extract_rows(payload, key="companies", source=FN_GET_USER_COMPANIES)
        companies = parse_records(LMSCompany, rows, source=FN_GET_USER_COMPANIES).records
        return companies[0] if companies else None

    # ------------------------------------------------------------------
    # Catalogue
    # ------------------------------------------------------------------

    async def fetch_courses(self) -> list[LMSCourse]:
        if self._courses_task is None:
            self._courses_task = asyncio.ensure_future(self._load_courses())
        return list(await self._courses_task)

    async def _load_courses(self) -> list[LMSCourse]:
        payload = await self._client.call(FN_GET_COURSES)
        rows = extract_rows(payload, key="courses", source=FN_GET_COURSES)
        courses = parse_records(LMSCourse, rows, source=FN_GET_COURSES).records
        return [course for course in courses if course.visible and course.id != SITE_COURSE_ID]

    async def fetch_categories(self) -> list[LMSCategory]:
        payload = await self._client.call(FN_GET_CATEGORIES)
        rows = extract_rows(payload, key="categories", source=FN_GET_CATEGORIES)
        return parse_records(LMSCategory, rows, source=FN_GET_CATEGORIES).records

    async def fetch_companies(self) -> list[LMSCompany]:
        payload = await self._client.call(FN_GET_COMPANIES)
        rows = extract_rows(payload, key="companies", source=FN_GET_COMPANIES)
        return parse_records(LMSCompany, rows, source=FN_GET_COMPANIES).records

    # ------------------------------------------------------------------
    # Per-course collections
    # ------------------------------------------------------------------

    async def fetch_enrollments(self) -> list[CourseEnrollment]:
        courses = await self.fetch_courses()
        outcome = await self._fan_out(courses, self._course_enrollments)
        self._raise_if_all_failed(outcome, FN_GET_ENROLLED_USERS, len(courses))
        return [enrollment for batch in outcome.values for enrollment in batch]

    async def _course_enrollments(self, course: LMSCourse) -> list[CourseEnrollment]:
        payload = await self._client.call(FN_GET_ENROLLED_USERS, {"courseid": course.id})
        rows = [
            {
                "course_id": course.id,
                "user_id": row.get("id"),
                "roles": parse_raw_roles(row.get("roles") or []),
                "last_access": row.get("lastcourseaccess"),
            }
            for row in extract_rows(payload, source=FN_GET_ENROLLED_USERS)
            if isinstance(row, dict)
        ]
        return parse_records(CourseEnrollment, rows, source=FN_GET_ENROLLED_USERS).records

    async def fetch_completions(self) -> list[CourseCompletion]:
        """
        Course-total grade and completion flag for every graded user of
        every visible course.

        A failed completion-status lookup counts the user as not completed.
        """

        courses = await self.fetch_courses()
        outcome = await self._fan_out(courses, self._course_grades)
        self._raise_if_all_failed(outcome, FN_GET_GRADE_ITEMS, len(courses))
        graded = [row for batch in outcome.values for row in batch]

        async def with_status(row: dict[str, Any]) -> dict[str, Any]:
            try:
                payload = await self._client.call(
                    FN_GET_COMPLETION_STATUS,
                    {"courseid": row["course_id"], "userid": row["user_id"]},
                )
            except (LMSRequestError, LMSPayloadError) as exc:
                logger.debug(
                    "Completion lookup failed course_id=%s user_id=%s error=%s",
                    row["course_id"],
                    row["user_id"],
                    exc,
                )
                return row
            status = payload.get("completionstatus") if isinstance(payload, dict) else None
            if isinstance(status, dict):
                return {**row, "completed": bool(status.get("completed"))}
            return row

        rows = (await self._fan_out(graded, with_status)).values
        return parse_records(CourseCompletion, rows, source="completions").records

    async def _course_grades(self, course: LMSCourse) -> list[dict[str, Any]]:
        payload = await self._client.call(FN_GET_GRADE_ITEMS, {"courseid": course.id})
        rows: list[dict[str, Any]] = []
        for user_grade in extract_rows(payload, key="usergrades", source=FN_GET_GRADE_ITEMS):
            if not isinstance(user_grade, dict):
                continue
            rows.append(
                {
                    "course_id": course.id,
                    "user_id": user_grade.get("userid"),
                    "completed": False,
                    "grade_percent": course_total_percent(user_grade.get("gradeitems")),
                }
            )
        return rows

    # ------------------------------------------------------------------
    # Fan-out helpers
    # ------------------------------------------------------------------

    async def _fan_out(
        self,
        items: Sequence[ItemT],
        func: Callable[[ItemT], Awaitable[ResultT]],
    ) -> _FanOutOutcome:
        async def bounded(item: ItemT) -> ResultT:
            async with self._semaphore:
                return await func(item)

        settled = await asyncio.gather(*(bounded(item) for item in items), return_exceptions=True)
        outcome = _FanOutOutcome()
        for value in settled:
            if isinstance(value, BaseException):
                outcome.failures.append(value)
            else:
                outcome.values.append(value)
        return outcome

    @staticmethod
    def _raise_if_all_failed(outcome: _FanOutOutcome, function: str, attempted: int) -> None:
        if not outcome.failures:
            return
        if attempted and len(outcome.failures) == attempted:
            raise outcome.failures[0]
        logger.warning(
            "Partial per-course failures function=%s failed=%s attempted=%s",
            function,
            len(outcome.failures),
            attempted,
        )
