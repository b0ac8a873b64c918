"""
app/services/fallbacks.py

Deterministic synthetic collections used when an LMS source fails.

Every generator draws from its own ``random.Random`` seeded with the
configured seed mixed with a CRC of the source key, so the same seed and
reference time always yield the same data, and one source's values do not
shift when another generator changes. The synthetic collections are
mutually consistent: enrollments and completions reference the synthetic
users and courses.
"""

from __future__ import annotations

import random
import zlib
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from app.domain.roles import RawRole
from app.lms.schemas import (
    CourseCompletion,
    CourseEnrollment,
    LMSCategory,
    LMSCompany,
    LMSCourse,
    LMSUser,
    UserActivity,
)

FALLBACK_CATEGORY_NAMES: tuple[str, ...] = (
    "Teaching Methods",
    "Assessment & Evaluation",
    "Curriculum Design",
    "Technology Integration",
    "Professional Development",
)

FALLBACK_COURSE_NAMES: tuple[str, ...] = (
    "Advanced Teaching Methods",
    "Digital Learning Fundamentals",
    "Assessment Strategies",
    "Classroom Management",
    "Curriculum Development",
)

FALLBACK_SCHOOL_NAMES: tuple[str, ...] = (
    "Excellence Institute",
    "Riverside Academy",
    "Greenfield Public School",
)

# (role shortname, headcount)
FALLBACK_HEADCOUNTS: tuple[tuple[str, int], ...] = (
    ("manager", 1),
    ("companymanager", 3),
    ("editingteacher", 12),
    ("student", 45),
)

_FIRST_NAMES = ("Asha", "Ben", "Chen", "Dana", "Elif", "Farid", "Grace", "Hugo", "Ines", "Jonas")
_LAST_NAMES = ("Kumar", "Lopez", "Mensah", "Novak", "Okafor", "Park", "Quinn", "Rossi", "Silva", "Tan")

_DAY_SECONDS = 86_400
_USER_ID_BASE = 1000
_COURSE_ID_BASE = 100
_PASS_GRADE_FLOOR = 35.0


class FallbackGenerator:
    """
    Builds plausible synthetic LMS collections.

    Parameters
    ----------
    seed:
        Base seed. Two generators with the same seed and ``now`` produce
        identical collections.
    now:
        Reference time for synthetic access timestamps.
    """

    def __init__(self, *, seed: int, now: datetime | None = None) -> None:
        self._seed = seed
        self._now = now or datetime.now(timezone.utc)

    @property
    def _now_seconds(self) -> int:
        return int(self._now.timestamp())

    def _rng(self, key: str) -> random.Random:
        return random.Random(self._seed ^ zlib.crc32(key.encode("utf-8")))

    def for_source(self, key: str) -> Callable[[], Any] | None:
        """
        Return the generator for a collection key, or ``None`` if unknown.
        """

        generators: dict[str, Callable[[], Any]] = {
            "users": self.users,
            "courses": self.courses,
            "categories": self.categories,
            "companies": self.companies,
            "enrollments": self.enrollments,
            "completions": self.completions,
            "activity": self.activity,
        }
        return generators.get(key)

    def users(self) -> list[LMSUser]:
        rng = self._rng("users")
        users: list[LMSUser] = []
        next_id = _USER_ID_BASE + 1
        for shortname, headcount in FALLBACK_HEADCOUNTS:
            for _ in range(headcount):
                firstname = rng.choice(_FIRST_NAMES)
                lastname = rng.choice(_LAST_NAMES)
                first_access = self._now_seconds - rng.randint(60, 400) * _DAY_SECONDS
                last_access = self._now_seconds - rng.randint(0, 59 * _DAY_SECONDS)
                users.append(
                    LMSUser(
                        id=next_id,
                        username=f"{firstname}.{lastname}{next_id}".lower(),
                        firstname=firstname,
                        lastname=lastname,
                        fullname=f"{firstname} {lastname}",
                        firstaccess=first_access,
                        lastaccess=last_access,
                        lastlogin=last_access,
                        roles=(RawRole(shortname=shortname, name=shortname, id=shortname),),
                    )
                )
                next_id += 1
        return users

    def activity(self) -> list[UserActivity]:
        return [
            UserActivity(
                user_id=user.id,
                first_access=user.firstaccess,
                last_access=user.lastaccess,
                last_login=user.lastlogin,
            )
            for user in self.users()
        ]

    def categories(self) -> list[LMSCategory]:
        return [
            LMSCategory(id=index, name=name, coursecount=1)
            for index, name in enumerate(FALLBACK_CATEGORY_NAMES, start=1)
        ]

    def courses(self) -> list[LMSCourse]:
        rng = self._rng("courses")
        courses: list[LMSCourse] = []
        for index, name in enumerate(FALLBACK_COURSE_NAMES, start=1):
            category_id = (index - 1) % len(FALLBACK_CATEGORY_NAMES) + 1
            start = self._now_seconds - rng.randint(30, 180) * _DAY_SECONDS
            courses.append(
                LMSCourse(
                    id=_COURSE_ID_BASE + index,
                    fullname=name,
                    shortname="".join(word[0] for word in name.split()).upper() + str(index),
                    categoryid=category_id,
                    categoryname=FALLBACK_CATEGORY_NAMES[category_id - 1],
                    startdate=start,
                )
            )
        return courses

    def companies(self) -> list[LMSCompany]:
        rng = self._rng("companies")
        return [
            LMSCompany(
                id=index,
                name=name,
                shortname="".join(word[0] for word in name.split()).upper(),
                usercount=rng.randint(15, 60),
                coursecount=rng.randint(2, len(FALLBACK_COURSE_NAMES)),
            )
            for index, name in enumerate(FALLBACK_SCHOOL_NAMES, start=1)
        ]

    def enrollments(self) -> list[CourseEnrollment]:
        rng = self._rng("enrollments")
        users = self.users()
        teachers = [user for user in users if _first_shortname(user) == "editingteacher"]
        students = [user for user in users if _first_shortname(user) == "student"]
        enrollments: list[CourseEnrollment] = []
        for index, course in enumerate(self.courses()):
            teacher = teachers[index % len(teachers)]
            enrollments.append(
                CourseEnrollment(
                    course_id=course.id,
                    user_id=teacher.id,
                    roles=(RawRole(shortname="editingteacher", name="Teacher", id="3"),),
                    last_access=teacher.lastaccess,
                )
            )
            for student in rng.sample(students, k=rng.randint(8, min(20, len(students)))):
                enrollments.append(
                    CourseEnrollment(
                        course_id=course.id,
                        user_id=student.id,
                        roles=(RawRole(shortname="student", name="Student", id="5"),),
                        last_access=student.lastaccess,
                    )
                )
        return enrollments

    def completions(self) -> list[CourseCompletion]:
        rng = self._rng("completions")
        completions: list[CourseCompletion] = []
        for enrollment in self.enrollments():
            if not any(role.shortname == "student" for role in enrollment.roles):
                continue
            grade = round(rng.uniform(_PASS_GRADE_FLOOR, 100.0), 1)
            completions.append(
                CourseCompletion(
                    course_id=enrollment.course_id,
                    user_id=enrollment.user_id,
                    completed=rng.random() < 0.6,
                    grade_percent=grade,
                )
            )
        return completions


def _first_shortname(user: LMSUser) -> str:
    return user.roles[0].shortname if user.roles else ""
