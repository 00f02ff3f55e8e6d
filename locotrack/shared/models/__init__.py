# locotrack/shared/models/__init__.py
"""
Pydantic-модели домена, API и realtime-событий.
"""

from locotrack.shared.models.common import ErrorResponse, HealthStatus
from locotrack.shared.models.location import (
    VehiclePosition,
    VehicleLocationRecord,
    LocationUpdateRequest,
    SubmitResponse,
    LocationSnapshot,
    RouteDetails,
    VehicleRegistration,
)
from locotrack.shared.models.events import RealtimeEvent

__all__ = [
    # Common
    "ErrorResponse",
    "HealthStatus",
    # Location
    "VehiclePosition",
    "VehicleLocationRecord",
    "LocationUpdateRequest",
    "SubmitResponse",
    "LocationSnapshot",
    "RouteDetails",
    "VehicleRegistration",
    # Realtime
    "RealtimeEvent",
]
