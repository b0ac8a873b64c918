"""
kpi/student.py

Personal progress dashboard for students.
"""

from __future__ import annotations

from typing import Any

from kpi.base import BaseDashboardFormula
from kpi.metrics import average, rate


class StudentDashboardFormula(BaseDashboardFormula):
    def calculate(self, inputs: dict[str, Any]) -> dict[str, Any]:
        courses = inputs.get("courses") or []
        enrollments = inputs.get("enrollments") or []
        completions = inputs.get("completions") or []
        subject_id = inputs.get("subject_id")
        pass_grade = inputs["pass_grade_percent"]

        course_names = {course.id: course.fullname for course in courses}
        own_enrollments = {
            enrollment.course_id: enrollment for enrollment in enrollments if enrollment.user_id == subject_id
        }
        own_completions = {
            record.course_id: record
            for record in completions
            if record.user_id == subject_id and record.course_id in own_enrollments
        }

        completed = sum(1 for record in own_completions.values() if record.completed)
        graded = [record.grade_percent for record in own_completions.values() if record.grade_percent is not None]
        stats = {
            "enrolled_courses": len(own_enrollments),
            "completed_courses": completed,
            "in_progress_courses": len(own_enrollments) - completed,
            "completion_rate": rate(completed, len(own_enrollments)),
            "average_grade": average(graded),
            "pass_rate": rate(sum(1 for grade in graded if grade >= pass_grade), len(graded)),
        }

        progress = []
        for course_id, enrollment in sorted(own_enrollments.items()):
            record = own_completions.get(course_id)
            progress.append(
                {
                    "course_id": course_id,
                    "course": course_names.get(course_id, ""),
                    "completed": bool(record and record.completed),
                    "grade_percent": record.grade_percent if record else None,
                    "last_access": enrollment.last_access,
                }
            )
        return {"stats": stats, "breakdowns": {"course_progress": progress}}
