"""
kpi/admin.py

Platform-wide dashboard for site administrators.

Expected inputs
---------------
users, activity, courses, categories, companies, enrollments, completions
    Settled collections (missing ones are treated as empty).
user_roles : dict[int, str]
    Canonical role per user id.
now : datetime
    Reference time for the activity window and trend.
activity_window_days : int
trend_weeks : int

Formulas
--------
Engagement Rate = active_users / total_users
Completion Rate = completed / completion records
Average Grade   = mean(course-total grade percent)
"""

from __future__ import annotations

from typing import Any

from app.domain.roles import ROLE_PRECEDENCE, CanonicalRole
from kpi.base import BaseDashboardFormula
from kpi.metrics import (
    average,
    completion_counts,
    count_active,
    courses_by_category,
    grades,
    is_active,
    rate,
    weekly_trend,
)


class AdminDashboardFormula(BaseDashboardFormula):
    def calculate(self, inputs: dict[str, Any]) -> dict[str, Any]:
        users = inputs.get("users") or []
        activity = inputs.get("activity") or []
        courses = inputs.get("courses") or []
        categories = inputs.get("categories") or []
        companies = inputs.get("companies") or []
        enrollments = inputs.get("enrollments") or []
        completions = inputs.get("completions") or []
        user_roles: dict[int, str] = inputs.get("user_roles") or {}
        now = inputs["now"]
        window_days = inputs["activity_window_days"]

        role_counts = {role: 0 for role in ROLE_PRECEDENCE}
        for user in users:
            role_counts[user_roles.get(user.id, CanonicalRole.STUDENT)] += 1

        active_users = count_active((record.last_access for record in activity), now, window_days)
        active_teachers = sum(
            1
            for record in activity
            if user_roles.get(record.user_id) == CanonicalRole.TEACHER
            and is_active(record.last_access, now, window_days)
        )
        new_users = count_active((record.first_access for record in activity), now, window_days)
        completed, total = completion_counts(completions)

        stats = {
            "total_users": len(users),
            "total_admins": role_counts[CanonicalRole.ADMIN],
            "total_school_admins": role_counts[CanonicalRole.SCHOOL_ADMIN],
            "total_teachers": role_counts[CanonicalRole.TEACHER],
            "total_students": role_counts[CanonicalRole.STUDENT],
            "active_users": active_users,
            "active_teachers": active_teachers,
            "new_users": new_users,
            "engagement_rate": rate(active_users, len(users)),
            "total_schools": len(companies),
            "total_courses": len(courses),
            "total_categories": len(categories),
            "total_enrollments": len(enrollments),
            "course_completion_rate": rate(completed, total),
            "average_grade": average(grades(completions)),
        }
        breakdowns = {
            "courses_by_category": courses_by_category(courses, categories, enrollments, completions),
            "role_distribution": [{"role": role, "count": role_counts[role]} for role in ROLE_PRECEDENCE],
            "activity_trend": weekly_trend(activity, now, inputs["trend_weeks"]),
        }
        return {"stats": stats, "breakdowns": breakdowns}
