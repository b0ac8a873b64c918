"""
app/domain package marker.
"""

from app.domain.dashboard import DashboardData, DashboardState, FetchTask, SourceResult, SourceStatus, ViewModel
from app.domain.roles import CanonicalRole, Capability, RawRole, capabilities_for

__all__ = [
    "CanonicalRole",
    "Capability",
    "DashboardData",
    "DashboardState",
    "FetchTask",
    "RawRole",
    "SourceResult",
    "SourceStatus",
    "ViewModel",
    "capabilities_for",
]
