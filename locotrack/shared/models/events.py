# locotrack/shared/models/events.py
"""
События realtime-канала.

Формат на проводе: {"event": "<тип>", "data": {...}}.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from locotrack.common.constants import RealtimeEventType, VehicleStatus
from locotrack.common.time_utils import to_iso
from locotrack.shared.models.location import VehicleLocationRecord


class RealtimeEvent(BaseModel):
    """Событие для отправки клиентам."""

    event: RealtimeEventType
    data: dict[str, Any] = Field(default_factory=dict)

    def to_message(self) -> dict[str, Any]:
        """JSON-совместимый словарь для websocket.send_json."""
        return {"event": self.event.value, "data": self.data}

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> "RealtimeEvent":
        return cls(event=RealtimeEventType(message["event"]), data=message.get("data") or {})

    # =========================================================================
    # ФАБРИКИ
    # =========================================================================

    @classmethod
    def location_update(cls, record: VehicleLocationRecord) -> "RealtimeEvent":
        """location-update строится из записи, которую вернуло хранилище."""
        if record.position is None:
            raise ValueError(f"У записи {record.vehicle_id} нет позиции")
        position = record.position
        return cls(
            event=RealtimeEventType.LOCATION_UPDATE,
            data={
                "vehicleId": record.vehicle_id,
                "latitude": position.latitude,
                "longitude": position.longitude,
                "accuracy": position.accuracy,
                "capturedAt": to_iso(position.captured_at),
            },
        )

    @classmethod
    def status_change(cls, vehicle_id: str, status: VehicleStatus) -> "RealtimeEvent":
        return cls(
            event=RealtimeEventType.BUS_STATUS_CHANGE,
            data={"vehicleId": vehicle_id, "status": status.value},
        )

    @classmethod
    def bus_added(cls, record: VehicleLocationRecord) -> "RealtimeEvent":
        return cls(
            event=RealtimeEventType.BUS_ADDED,
            data={
                "vehicleId": record.vehicle_id,
                "busNumber": record.bus_number,
                "organizationId": record.organization_id,
                "route": record.route,
            },
        )

    @classmethod
    def bus_removed(cls, vehicle_id: str) -> "RealtimeEvent":
        return cls(event=RealtimeEventType.BUS_REMOVED, data={"vehicleId": vehicle_id})

    @classmethod
    def error(cls, message: str) -> "RealtimeEvent":
        return cls(event=RealtimeEventType.ERROR, data={"message": message})
