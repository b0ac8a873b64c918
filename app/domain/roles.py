"""
app/domain/roles.py

Role vocabulary shared by the classifier, the aggregation engine and
presentation code.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RawRole:
    """
    One unprocessed role assignment as returned by the LMS.
    """

    shortname: str = ""
    name: str = ""
    id: str = ""


class CanonicalRole:
    ADMIN = "admin"
    SCHOOL_ADMIN = "school_admin"
    TEACHER = "teacher"
    STUDENT = "student"


CANONICAL_ROLES: frozenset[str] = frozenset(
    {
        CanonicalRole.ADMIN,
        CanonicalRole.SCHOOL_ADMIN,
        CanonicalRole.TEACHER,
        CanonicalRole.STUDENT,
    }
)

# Highest precedence first.
ROLE_PRECEDENCE: tuple[str, ...] = (
    CanonicalRole.ADMIN,
    CanonicalRole.SCHOOL_ADMIN,
    CanonicalRole.TEACHER,
    CanonicalRole.STUDENT,
)

DEFAULT_ROLE = CanonicalRole.STUDENT


class Capability:
    VIEW_PLATFORM_STATS = "view_platform_stats"
    VIEW_SCHOOL_STATS = "view_school_stats"
    VIEW_ALL_SCHOOLS = "view_all_schools"
    VIEW_COURSE_COMPLETION = "view_course_completion"
    VIEW_STUDENT_ROSTER = "view_student_roster"
    VIEW_OWN_PROGRESS = "view_own_progress"
    MANAGE_USERS = "manage_users"
    MANAGE_COURSES = "manage_courses"


ROLE_CAPABILITIES: dict[str, frozenset[str]] = {
    CanonicalRole.ADMIN: frozenset(
        {
            Capability.VIEW_PLATFORM_STATS,
            Capability.VIEW_SCHOOL_STATS,
            Capability.VIEW_ALL_SCHOOLS,
            Capability.VIEW_COURSE_COMPLETION,
            Capability.VIEW_STUDENT_ROSTER,
            Capability.MANAGE_USERS,
            Capability.MANAGE_COURSES,
        }
    ),
    CanonicalRole.SCHOOL_ADMIN: frozenset(
        {
            Capability.VIEW_SCHOOL_STATS,
            Capability.VIEW_COURSE_COMPLETION,
            Capability.VIEW_STUDENT_ROSTER,
            Capability.MANAGE_USERS,
        }
    ),
    CanonicalRole.TEACHER: frozenset(
        {
            Capability.VIEW_COURSE_COMPLETION,
            Capability.VIEW_STUDENT_ROSTER,
            Capability.MANAGE_COURSES,
        }
    ),
    CanonicalRole.STUDENT: frozenset({Capability.VIEW_OWN_PROGRESS}),
}


def capabilities_for(role: str) -> frozenset[str]:
    """
    Return the capability set for *role*; unknown roles get the student set.
    """

    return ROLE_CAPABILITIES.get(role, ROLE_CAPABILITIES[DEFAULT_ROLE])
