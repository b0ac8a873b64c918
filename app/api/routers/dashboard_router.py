"""
app/api/routers/dashboard_router.py

Role-scoped dashboard endpoints.

``GET /dashboard/{user_id}`` builds a fresh dashboard; degraded sources are
reported in the body, never as an error status. Only a total source failure
returns 503, which clients should treat as retryable.
``GET /dashboard/{user_id}/cached`` serves the last stored dashboard without
touching the LMS.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.schemas.dashboard import DashboardResponse
from app.services.dashboard_service import (
    DashboardService,
    TotalSourceFailureError,
    get_dashboard_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get(
    "/{user_id}",
    response_model=DashboardResponse,
    status_code=status.HTTP_200_OK,
)
async def get_dashboard(
    user_id: int,
    service: DashboardService = Depends(get_dashboard_service),
) -> DashboardResponse:
    try:
        data = await service.get_role_scoped_dashboard_data(user_id)
    except TotalSourceFailureError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "message": "Dashboard data is temporarily unavailable.",
                "failed_sources": list(exc.failed_keys),
                "retryable": True,
            },
        ) from exc
    return DashboardResponse.from_domain(data)


@router.get(
    "/{user_id}/cached",
    response_model=DashboardResponse,
    status_code=status.HTTP_200_OK,
)
def get_cached_dashboard(
    user_id: int,
    service: DashboardService = Depends(get_dashboard_service),
) -> DashboardResponse:
    data = service.peek_dashboard_data(user_id)
    if data is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No stored dashboard for this user.",
        )
    return DashboardResponse.from_domain(data)
