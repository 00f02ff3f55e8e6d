# locotrack/common/__init__.py
"""
Общие утилиты, константы, исключения и логгер.
"""

from locotrack.common.logger import get_logger, log_info, log_error, log_warning, log_debug
from locotrack.common.constants import TypeMsg, VehicleStatus, RealtimeEventType, RejectReason
from locotrack.common.exceptions import (
    TrackingError,
    InvalidInputError,
    VehicleNotFoundError,
    VehicleConflictError,
    StoreUnavailableError,
    InternalError,
    AccessDeniedError,
)

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "TypeMsg",
    "VehicleStatus",
    "RealtimeEventType",
    "RejectReason",
    "TrackingError",
    "InvalidInputError",
    "VehicleNotFoundError",
    "VehicleConflictError",
    "StoreUnavailableError",
    "InternalError",
    "AccessDeniedError",
]
