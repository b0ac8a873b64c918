"""
app/schemas package marker.
"""

from app.schemas.dashboard import DashboardResponse, HealthResponse, ViewModelResponse

__all__ = [
    "DashboardResponse",
    "HealthResponse",
    "ViewModelResponse",
]
