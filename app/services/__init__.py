"""
app/services package marker.
"""

from app.services.dashboard_service import (
    DashboardService,
    DashboardSession,
    TotalSourceFailureError,
    get_dashboard_service,
)

__all__ = [
    "DashboardService",
    "DashboardSession",
    "TotalSourceFailureError",
    "get_dashboard_service",
]
