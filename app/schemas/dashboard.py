"""
app/schemas/dashboard.py

Response schemas for dashboard endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from app.domain.dashboard import DashboardData


class ViewModelResponse(BaseModel):
    stats: dict[str, int | float]
    breakdowns: dict[str, list[dict[str, Any]]]
    generated_at: datetime


class DashboardResponse(BaseModel):
    """
    API response model for one role-scoped dashboard.
    """

    user_id: int
    role: str
    state: str
    is_degraded: bool
    degraded_sources: list[str] = Field(default_factory=list)
    notice: str | None = None
    capabilities: list[str] = Field(default_factory=list)
    view_model: ViewModelResponse

    @classmethod
    def from_domain(cls, data: DashboardData) -> DashboardResponse:
        return cls(
            user_id=data.user_id,
            role=data.role,
            state=data.state,
            is_degraded=data.is_degraded,
            degraded_sources=list(data.degraded_sources),
            notice=data.notice,
            capabilities=sorted(data.capabilities),
            view_model=ViewModelResponse(
                stats=data.view_model.stats,
                breakdowns=data.view_model.breakdowns,
                generated_at=data.view_model.generated_at,
            ),
        )


class HealthResponse(BaseModel):
    status: str
    cache_backend: str
