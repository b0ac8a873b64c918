"""
kpi/teacher.py

Course-level dashboard for teachers.

The view covers the courses the subject teaches, taken from their course
enrollment roles. A subject who teaches nothing sees every course.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any

from app.domain.roles import CanonicalRole
from kpi.base import BaseDashboardFormula
from kpi.metrics import average, completion_counts, count_active, grades, rate


class TeacherDashboardFormula(BaseDashboardFormula):
    def calculate(self, inputs: dict[str, Any]) -> dict[str, Any]:
        courses = inputs.get("courses") or []
        enrollments = inputs.get("enrollments") or []
        completions = inputs.get("completions") or []
        enrollment_roles: dict[tuple[int, int], str] = inputs.get("enrollment_roles") or {}
        subject_id = inputs.get("subject_id")
        pass_grade = inputs["pass_grade_percent"]
        now = inputs["now"]
        window_days = inputs["activity_window_days"]

        taught_ids = {
            enrollment.course_id
            for enrollment in enrollments
            if enrollment.user_id == subject_id
            and enrollment_roles.get((enrollment.course_id, enrollment.user_id)) == CanonicalRole.TEACHER
        }
        scoped = [course for course in courses if course.id in taught_ids] or list(courses)
        scoped_ids = {course.id for course in scoped}

        student_last_access: dict[int, int] = {}
        students_by_course: dict[int, set[int]] = defaultdict(set)
        for enrollment in enrollments:
            if enrollment.course_id not in scoped_ids:
                continue
            role = enrollment_roles.get((enrollment.course_id, enrollment.user_id), CanonicalRole.STUDENT)
            if role != CanonicalRole.STUDENT:
                continue
            students_by_course[enrollment.course_id].add(enrollment.user_id)
            previous = student_last_access.get(enrollment.user_id, 0)
            student_last_access[enrollment.user_id] = max(previous, enrollment.last_access)

        scoped_completions = [record for record in completions if record.course_id in scoped_ids]
        completions_by_course: dict[int, list[Any]] = defaultdict(list)
        for record in scoped_completions:
            completions_by_course[record.course_id].append(record)

        completed, total = completion_counts(scoped_completions)
        graded = grades(scoped_completions)
        stats = {
            "total_courses": len(scoped),
            "total_students": len(student_last_access),
            "active_students": count_active(student_last_access.values(), now, window_days),
            "completion_rate": rate(completed, total),
            "pass_rate": rate(sum(1 for grade in graded if grade >= pass_grade), len(graded)),
            "average_grade": average(graded),
        }

        course_rows = []
        for course in scoped:
            records = completions_by_course.get(course.id, [])
            course_completed, course_total = completion_counts(records)
            course_rows.append(
                {
                    "course_id": course.id,
                    "course": course.fullname,
                    "students": len(students_by_course.get(course.id, ())),
                    "completed": course_completed,
                    "completion_rate": rate(course_completed, course_total),
                    "average_grade": average(grades(records)),
                }
            )
        return {"stats": stats, "breakdowns": {"courses": course_rows}}
