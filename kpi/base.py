"""
kpi/base.py

Abstract base class for all role dashboard formula implementations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class BaseDashboardFormula(ABC):
    """
    Contract for per-role dashboard formulas.

    Subclasses receive a plain dictionary of settled collections and
    aggregation parameters and return ``{"stats": ..., "breakdowns": ...}``.

    No I/O, no logging, and no side effects are permitted inside
    :meth:`calculate`. Missing collections are treated as empty.
    """

    @abstractmethod
    def calculate(self, inputs: dict[str, Any]) -> dict[str, Any]:
        """
        Compute the role's statistics from *inputs*.

        Parameters
        ----------
        inputs:
            Collections keyed by source name (``users``, ``courses``,
            ``categories``, ``companies``, ``enrollments``, ``completions``,
            ``activity``) plus ``now``, ``subject_id``, ``user_roles``,
            ``enrollment_roles``, ``activity_window_days``,
            ``pass_grade_percent`` and ``trend_weeks``.

        Returns
        -------
        dict[str, Any]
            ``stats``: flat metric name to number mapping.
            ``breakdowns``: named lists of row dictionaries.
        """
