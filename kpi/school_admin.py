"""
kpi/school_admin.py

Organisation dashboard for school administrators.

Headcounts come from the canonical role of each user. The schools breakdown
lists every school known to the LMS and flags the subject's own school.
"""

from __future__ import annotations

from typing import Any

from app.domain.roles import CanonicalRole
from kpi.base import BaseDashboardFormula
from kpi.metrics import completion_counts, count_active, courses_by_category, rate


class SchoolAdminDashboardFormula(BaseDashboardFormula):
    def calculate(self, inputs: dict[str, Any]) -> dict[str, Any]:
        users = inputs.get("users") or []
        activity = inputs.get("activity") or []
        courses = inputs.get("courses") or []
        categories = inputs.get("categories") or []
        companies = inputs.get("companies") or []
        enrollments = inputs.get("enrollments") or []
        completions = inputs.get("completions") or []
        user_roles: dict[int, str] = inputs.get("user_roles") or {}
        subject_company_id = inputs.get("subject_company_id")
        now = inputs["now"]
        window_days = inputs["activity_window_days"]

        def headcount(role: str) -> int:
            return sum(1 for user in users if user_roles.get(user.id, CanonicalRole.STUDENT) == role)

        enrolled_course_ids = {enrollment.course_id for enrollment in enrollments}
        completed, total = completion_counts(completions)
        active_users = count_active((record.last_access for record in activity), now, window_days)

        stats = {
            "total_teachers": headcount(CanonicalRole.TEACHER),
            "total_students": headcount(CanonicalRole.STUDENT),
            "total_school_admins": headcount(CanonicalRole.SCHOOL_ADMIN),
            "active_courses": sum(1 for course in courses if course.id in enrolled_course_ids),
            "total_enrollments": len(enrollments),
            "pending_completions": total - completed,
            "completion_rate": rate(completed, total),
            "engagement_rate": rate(active_users, len(users)),
        }
        schools = [
            {
                "id": company.id,
                "name": company.name,
                "users": company.usercount,
                "courses": company.coursecount,
                "status": company.status,
                "is_own_school": company.id == subject_company_id,
            }
            for company in companies
        ]
        breakdowns = {
            "schools": schools,
            "courses_by_category": courses_by_category(courses, categories, enrollments, completions),
        }
        return {"stats": stats, "breakdowns": breakdowns}
