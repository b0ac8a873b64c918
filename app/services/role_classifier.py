"""
app/services/role_classifier.py

Maps the raw, possibly multi-valued role assignments of one user to a single
canonical application role.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from app.domain.roles import DEFAULT_ROLE, ROLE_PRECEDENCE, CanonicalRole, RawRole

# Normalized role token -> canonical role.
ROLE_TOKEN_TABLE: Mapping[str, str] = {
    "admin": CanonicalRole.ADMIN,
    "superadmin": CanonicalRole.ADMIN,
    "siteadmin": CanonicalRole.ADMIN,
    "school_admin": CanonicalRole.SCHOOL_ADMIN,
    "manager": CanonicalRole.SCHOOL_ADMIN,
    "principal": CanonicalRole.SCHOOL_ADMIN,
    "companymanager": CanonicalRole.SCHOOL_ADMIN,
    "company_manager": CanonicalRole.SCHOOL_ADMIN,
    "cluster_admin": CanonicalRole.SCHOOL_ADMIN,
    "editingteacher": CanonicalRole.TEACHER,
    "teacher": CanonicalRole.TEACHER,
    "teachers": CanonicalRole.TEACHER,
    "trainer": CanonicalRole.TEACHER,
    "student": CanonicalRole.STUDENT,
}

_PRECEDENCE_RANK: dict[str, int] = {role: rank for rank, role in enumerate(ROLE_PRECEDENCE)}


def normalize_token(value: object) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().casefold()


def role_token(raw_role: RawRole) -> str:
    """
    Return the lookup token for *raw_role*: its shortname, or its display
    name when the shortname is blank.
    """

    token = normalize_token(raw_role.shortname)
    return token or normalize_token(raw_role.name)


def map_role(raw_role: RawRole) -> str | None:
    return ROLE_TOKEN_TABLE.get(role_token(raw_role))


def classify(raw_roles: Iterable[RawRole] | None) -> str:
    """
    Return the canonical role for a set of raw role assignments.

    Unmapped assignments are ignored and the highest-precedence mapped role
    wins. A user with nothing mappable is a student. Never raises.
    """

    best: str | None = None
    for raw_role in raw_roles or ():
        if not isinstance(raw_role, RawRole):
            continue
        mapped = map_role(raw_role)
        if mapped is None:
            continue
        if best is None or _PRECEDENCE_RANK[mapped] < _PRECEDENCE_RANK[best]:
            best = mapped
    return best or DEFAULT_ROLE
