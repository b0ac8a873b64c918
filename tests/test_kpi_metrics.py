"""
tests/test_kpi_metrics.py

Pytest unit tests for the shared dashboard arithmetic in kpi/metrics.py.

All tests are pure Python with mock records only.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.lms.schemas import CourseCompletion, CourseEnrollment, LMSCategory, LMSCourse, UserActivity
from kpi.metrics import (
    UNCATEGORISED,
    average,
    count_active,
    courses_by_category,
    is_active,
    rate,
    round_half_up,
    weekly_trend,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _ts(delta: timedelta) -> int:
    return int((NOW - delta).timestamp())


class TestRate:
    def test_zero_over_zero(self) -> None:
        assert rate(0, 0) == 0

    def test_nonzero_over_zero(self) -> None:
        assert rate(5, 0) == 0

    def test_84_over_200(self) -> None:
        assert rate(84, 200) == 42

    def test_half_rounds_up(self) -> None:
        assert rate(1, 8) == 13  # 12.5
        assert rate(5, 8) == 63  # 62.5

    def test_full(self) -> None:
        assert rate(3, 3) == 100

    def test_returns_int(self) -> None:
        assert isinstance(rate(1, 3), int)


class TestRounding:
    @pytest.mark.parametrize("value, expected", [(2.5, 3), (2.4999, 2), (-2.5, -2), (0.0, 0)])
    def test_round_half_up(self, value: float, expected: int) -> None:
        assert round_half_up(value) == expected


class TestAverage:
    def test_empty_is_zero(self) -> None:
        assert average([]) == 0

    def test_one_decimal(self) -> None:
        assert average([80, 85, 91]) == pytest.approx(85.3)

    def test_half_up_on_second_decimal(self) -> None:
        assert average([4.25]) == pytest.approx(4.3)

    def test_whole_mean(self) -> None:
        assert average([70, 90]) == pytest.approx(80.0)


class TestActivityWindow:
    def test_inside_window(self) -> None:
        assert is_active(_ts(timedelta(days=29, hours=23)), NOW, 30)

    def test_outside_window(self) -> None:
        assert not is_active(_ts(timedelta(days=30, seconds=1)), NOW, 30)

    def test_exact_boundary_is_inactive(self) -> None:
        assert not is_active(_ts(timedelta(days=30)), NOW, 30)

    def test_never_accessed(self) -> None:
        assert not is_active(0, NOW, 30)

    def test_count_active(self) -> None:
        stamps = [_ts(timedelta(days=1)), _ts(timedelta(days=45)), 0, _ts(timedelta(hours=2))]
        assert count_active(stamps, NOW, 30) == 2


class TestWeeklyTrend:
    def test_oldest_first_with_requested_length(self) -> None:
        rows = weekly_trend([], NOW, 4)
        assert len(rows) == 4
        assert rows[0]["week_start"] < rows[-1]["week_start"]
        assert all(row["active_users"] == 0 for row in rows)

    def test_span_overlap(self) -> None:
        activity = [
            # active across the whole period
            UserActivity(user_id=1, first_access=_ts(timedelta(days=60)), last_access=_ts(timedelta(days=1))),
            # only in the most recent week
            UserActivity(user_id=2, first_access=_ts(timedelta(days=2)), last_access=_ts(timedelta(days=1))),
            # last seen five weeks ago
            UserActivity(user_id=3, first_access=_ts(timedelta(days=90)), last_access=_ts(timedelta(days=36))),
        ]
        counts = [row["active_users"] for row in weekly_trend(activity, NOW, 4)]
        assert counts == [1, 1, 1, 2]


class TestCoursesByCategory:
    def test_grouping_and_rates(self) -> None:
        categories = [LMSCategory(id=1, name="Science"), LMSCategory(id=2, name="Arts")]
        courses = [
            LMSCourse(id=10, fullname="Physics", categoryid=1),
            LMSCourse(id=11, fullname="Chemistry", categoryid=1),
            LMSCourse(id=12, fullname="Drawing", categoryid=2),
            LMSCourse(id=13, fullname="Orphan", categoryid=99),
        ]
        enrollments = [
            CourseEnrollment(course_id=10, user_id=1),
            CourseEnrollment(course_id=10, user_id=2),
            CourseEnrollment(course_id=11, user_id=1),
            CourseEnrollment(course_id=12, user_id=3),
        ]
        completions = [
            CourseCompletion(course_id=10, user_id=1, completed=True),
            CourseCompletion(course_id=10, user_id=2, completed=False),
            CourseCompletion(course_id=11, user_id=1, completed=True),
            CourseCompletion(course_id=12, user_id=3, completed=False),
        ]

        rows = courses_by_category(courses, categories, enrollments, completions)

        assert [row["category"] for row in rows] == ["Science", "Arts", UNCATEGORISED]
        science = rows[0]
        assert science == {"category": "Science", "course_count": 2, "enrollments": 3, "completion_rate": 67}
        assert rows[1]["completion_rate"] == 0
        assert rows[2]["enrollments"] == 0
