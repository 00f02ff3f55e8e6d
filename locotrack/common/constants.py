# locotrack/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class VehicleStatus(str, Enum):
    """Статусы транспорта."""
    ONLINE = "online"
    OFFLINE = "offline"

    def __str__(self) -> str:
        return self.value


class StoreBackend(str, Enum):
    """Реализации хранилища локаций."""
    POSTGRES = "postgres"
    MEMORY = "memory"


class RealtimeEventType(str, Enum):
    """Типы событий realtime-канала."""
    # Сервер -> клиент
    LOCATION_UPDATE = "location-update"
    BUS_STATUS_CHANGE = "bus-status-change"
    BUS_ADDED = "bus-added"
    BUS_REMOVED = "bus-removed"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"
    PONG = "pong"
    ERROR = "error"

    # Клиент -> сервер
    TRACK_BUS = "track-bus"
    STOP_TRACKING = "stop-tracking"
    PING = "ping"

    def __str__(self) -> str:
        return self.value


class RejectReason(str, Enum):
    """Машиночитаемые причины отказа в приёме локации."""
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    STORE_UNAVAILABLE = "store_unavailable"
    INTERNAL_ERROR = "internal_error"

    def __str__(self) -> str:
        return self.value
