# locotrack/shared/models/location.py
"""
Модели локации транспорта.

VehicleLocationRecord — неизменяемый снимок записи хранилища:
позиция, статус и last_seen_at всегда меняются одной заменой объекта,
поэтому читатель никогда не увидит «новую» позицию со «старым» last_seen_at.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from locotrack.common.constants import VehicleStatus


# =============================================================================
# ДОМЕННЫЕ МОДЕЛИ
# =============================================================================

class VehiclePosition(BaseModel):
    """GPS-фикс транспорта."""

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    accuracy: Optional[float] = None  # метры, None если клиент не передал
    captured_at: datetime


class VehicleLocationRecord(BaseModel):
    """Запись о последнем известном положении транспорта."""

    model_config = ConfigDict(frozen=True)

    vehicle_id: str
    organization_id: Optional[str] = None
    bus_number: Optional[str] = None
    route: str = ""
    start: str = ""
    destination: str = ""
    stops: tuple[str, ...] = ()

    position: Optional[VehiclePosition] = None
    status: VehicleStatus = VehicleStatus.OFFLINE
    last_seen_at: Optional[datetime] = None
    version: int = 0

    @property
    def is_online(self) -> bool:
        return self.status == VehicleStatus.ONLINE

    def with_location(self, position: VehiclePosition, seen_at: datetime) -> "VehicleLocationRecord":
        """Новая версия записи после принятого обновления."""
        return self.model_copy(update={
            "position": position,
            "status": VehicleStatus.ONLINE,
            "last_seen_at": seen_at,
            "version": self.version + 1,
        })

    def as_offline(self) -> "VehicleLocationRecord":
        """Новая версия записи после перевода в offline."""
        return self.model_copy(update={
            "status": VehicleStatus.OFFLINE,
            "version": self.version + 1,
        })


# =============================================================================
# API МОДЕЛИ
# =============================================================================

class CamelModel(BaseModel):
    """Базовая модель с camelCase-алиасами для JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LocationUpdateRequest(BaseModel):
    """
    Тело POST /api/update-location.

    Поля не приводятся к типам: типы, диапазоны и обязательность
    проверяет диспетчер, иначе true превратилось бы в 1.0.
    Старые клиенты присылают regNo/lat/lng.
    """

    vehicle_id: Any = Field(
        default=None,
        validation_alias=AliasChoices("vehicleId", "vehicle_id", "regNo"),
    )
    latitude: Any = Field(default=None, validation_alias=AliasChoices("latitude", "lat"))
    longitude: Any = Field(default=None, validation_alias=AliasChoices("longitude", "lng", "lon"))
    accuracy: Any = None
    captured_at: Any = Field(
        default=None,
        validation_alias=AliasChoices("capturedAt", "captured_at"),
    )


class SubmitResponse(BaseModel):
    """Ответ на приём локации."""

    success: bool
    reason: Optional[str] = None
    message: Optional[str] = None


class LocationSnapshot(CamelModel):
    """Текущая позиция транспорта."""

    vehicle_id: str
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    captured_at: datetime
    status: VehicleStatus
    last_seen_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: VehicleLocationRecord) -> "LocationSnapshot":
        if record.position is None:
            raise ValueError(f"У записи {record.vehicle_id} нет позиции")
        return cls(
            vehicle_id=record.vehicle_id,
            latitude=record.position.latitude,
            longitude=record.position.longitude,
            accuracy=record.position.accuracy,
            captured_at=record.position.captured_at,
            status=record.status,
            last_seen_at=record.last_seen_at,
        )


class RouteDetails(CamelModel):
    """Статические данные маршрута."""

    vehicle_id: str
    bus_number: str = ""
    route: str = ""
    start: str = ""
    destination: str = ""
    stops: list[str] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: VehicleLocationRecord) -> "RouteDetails":
        return cls(
            vehicle_id=record.vehicle_id,
            bus_number=record.bus_number or "",
            route=record.route,
            start=record.start,
            destination=record.destination,
            stops=list(record.stops),
        )


class VehicleRegistration(CamelModel):
    """Регистрация транспорта слоем администрирования."""

    vehicle_id: str = Field(min_length=1)
    organization_id: str = Field(min_length=1)
    bus_number: Optional[str] = None
    route: str = ""
    start: str = ""
    destination: str = ""
    stops: list[str] = Field(default_factory=list)
