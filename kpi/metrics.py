"""
kpi/metrics.py

Shared arithmetic for the role formulas.

Rounding follows the half-up convention used by the dashboard front end:
``2.5 -> 3`` and ``-2.5 -> -2``. Rates are whole percentages and averages
keep at most one decimal place.
"""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from typing import Any

UNCATEGORISED = "Uncategorised"


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def rate(numerator: float, denominator: float) -> int:
    """
    Whole-number percentage of *numerator* over *denominator*; 0 when the
    denominator is not positive.
    """

    if denominator <= 0:
        return 0
    return round_half_up(numerator / denominator * 100)


def average(values: Iterable[float]) -> float:
    """
    Arithmetic mean rounded half-up to one decimal; 0 for no values.
    """

    items = [float(value) for value in values]
    if not items:
        return 0.0
    return math.floor(sum(items) / len(items) * 10 + 0.5) / 10


def window_start(now: datetime, days: int) -> int:
    return int((now - timedelta(days=days)).timestamp())


def is_active(last_access: int, now: datetime, window_days: int) -> bool:
    """
    True when *last_access* (epoch seconds) falls inside the rolling window.
    """

    return last_access > 0 and last_access > window_start(now, window_days)


def count_active(last_accesses: Iterable[int], now: datetime, window_days: int) -> int:
    return sum(1 for value in last_accesses if is_active(value, now, window_days))


def weekly_trend(activity: Sequence[Any], now: datetime, weeks: int) -> list[dict[str, Any]]:
    """
    Active-user counts for each of the last *weeks* weeks, oldest first.

    A user counts towards a week when their known active span (first access
    to last access) overlaps it.
    """

    rows: list[dict[str, Any]] = []
    for offset in range(weeks, 0, -1):
        start = now - timedelta(weeks=offset)
        end = start + timedelta(weeks=1)
        start_ts, end_ts = int(start.timestamp()), int(end.timestamp())
        active = sum(
            1
            for record in activity
            if record.last_access >= start_ts and 0 < (record.first_access or record.last_access) < end_ts
        )
        rows.append({"week_start": start.date().isoformat(), "active_users": active})
    return rows


def completion_counts(completions: Iterable[Any]) -> tuple[int, int]:
    """
    Return ``(completed, total)`` over completion records.
    """

    completed = total = 0
    for record in completions:
        total += 1
        if record.completed:
            completed += 1
    return completed, total


def grades(completions: Iterable[Any]) -> list[float]:
    return [record.grade_percent for record in completions if record.grade_percent is not None]


def courses_by_category(
    courses: Sequence[Any],
    categories: Sequence[Any],
    enrollments: Sequence[Any],
    completions: Sequence[Any],
) -> list[dict[str, Any]]:
    """
    Course count, enrollment count and completion rate per category.

    Rows are ordered by course count (descending), then category name.
    """

    category_names = {category.id: category.name for category in categories}
    enrollment_counts: dict[int, int] = defaultdict(int)
    for enrollment in enrollments:
        enrollment_counts[enrollment.course_id] += 1
    completions_by_course: dict[int, list[Any]] = defaultdict(list)
    for completion in completions:
        completions_by_course[completion.course_id].append(completion)

    grouped: dict[str, list[Any]] = defaultdict(list)
    for course in courses:
        name = category_names.get(course.categoryid) or course.categoryname or UNCATEGORISED
        grouped[name].append(course)

    rows: list[dict[str, Any]] = []
    for name, members in grouped.items():
        member_completions = [c for course in members for c in completions_by_course.get(course.id, [])]
        completed, total = completion_counts(member_completions)
        rows.append(
            {
                "category": name,
                "course_count": len(members),
                "enrollments": sum(enrollment_counts.get(course.id, 0) for course in members),
                "completion_rate": rate(completed, total),
            }
        )
    rows.sort(key=lambda row: (-row["course_count"], row["category"]))
    return rows
