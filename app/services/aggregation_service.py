"""
app/services/aggregation_service.py

Folds settled source results into a per-role view model.

The engine does not distinguish fallback values from real ones: every
usable :class:`SourceResult` contributes its value, and a source that did
not settle with a usable value contributes an empty collection. Role
classification of every user and every enrollment happens here, once, so
the formulas in ``kpi/`` stay pure arithmetic.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from app.config import DashboardSettings
from app.domain.dashboard import SourceResult, ViewModel
from app.domain.roles import CanonicalRole
from app.services.role_classifier import classify
from kpi.admin import AdminDashboardFormula
from kpi.base import BaseDashboardFormula
from kpi.school_admin import SchoolAdminDashboardFormula
from kpi.student import StudentDashboardFormula
from kpi.teacher import TeacherDashboardFormula

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Formula registry
# ---------------------------------------------------------------------------

_FORMULA_REGISTRY: dict[str, BaseDashboardFormula] = {
    CanonicalRole.ADMIN: AdminDashboardFormula(),
    CanonicalRole.SCHOOL_ADMIN: SchoolAdminDashboardFormula(),
    CanonicalRole.TEACHER: TeacherDashboardFormula(),
    CanonicalRole.STUDENT: StudentDashboardFormula(),
}

COLLECTION_KEYS: tuple[str, ...] = (
    "users",
    "courses",
    "categories",
    "companies",
    "enrollments",
    "completions",
    "activity",
)


class UnknownRoleError(ValueError):
    """
    Raised when a role outside the canonical set is passed to the engine.

    Valid values are the keys of :data:`_FORMULA_REGISTRY`.
    """


class AggregationService:
    def __init__(self, *, settings: DashboardSettings) -> None:
        self._settings = settings

    def aggregate(
        self,
        role: str,
        results: Sequence[SourceResult[Any]],
        *,
        subject_id: int | None = None,
        subject_company_id: int | None = None,
        now: datetime | None = None,
    ) -> ViewModel:
        """
        Build the view model for *role* from the settled *results*.

        Parameters
        ----------
        role:
            Canonical role selecting the formula.
        results:
            Settled sources, keyed by :attr:`SourceResult.key`. Unknown keys
            are ignored.
        subject_id:
            User the view is built for (teacher and student scoping).
        now:
            Reference time; defaults to the current UTC time.

        Raises
        ------
        UnknownRoleError
            If *role* is not a canonical role.
        """

        formula = _FORMULA_REGISTRY.get(role)
        if formula is None:
            raise UnknownRoleError(f"Unknown role {role!r}. Valid roles: {sorted(_FORMULA_REGISTRY)}")

        now = now or datetime.now(timezone.utc)
        inputs = self._build_inputs(results)
        inputs.update(
            {
                "now": now,
                "subject_id": subject_id,
                "subject_company_id": subject_company_id,
                "activity_window_days": self._settings.activity_window_days,
                "pass_grade_percent": self._settings.pass_grade_percent,
                "trend_weeks": self._settings.trend_weeks,
            }
        )
        output = formula.calculate(inputs)
        return ViewModel(
            role=role,
            stats=output["stats"],
            breakdowns=output["breakdowns"],
            generated_at=now,
        )

    @staticmethod
    def _build_inputs(results: Sequence[SourceResult[Any]]) -> dict[str, Any]:
        inputs: dict[str, Any] = {key: [] for key in COLLECTION_KEYS}
        for result in results:
            if result.key not in inputs:
                logger.debug("Ignoring unknown source key=%s", result.key)
                continue
            if result.usable and isinstance(result.value, list):
                inputs[result.key] = result.value

        inputs["user_roles"] = {user.id: classify(user.roles) for user in inputs["users"]}
        inputs["enrollment_roles"] = {
            (enrollment.course_id, enrollment.user_id): classify(enrollment.roles)
            for enrollment in inputs["enrollments"]
        }
        return inputs
