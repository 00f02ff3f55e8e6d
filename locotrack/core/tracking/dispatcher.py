# locotrack/core/tracking/dispatcher.py
"""
Приём координат и административные операции над транспортом.

Ответственности:
- Валидация входных данных
- Запись позиции в хранилище
- Рассылка location-update подписчикам транспорта
- Оповещение о регистрации и удалении транспорта
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Iterable

from locotrack.common.constants import RejectReason, TypeMsg
from locotrack.common.exceptions import (
    InternalError,
    InvalidInputError,
    StoreUnavailableError,
    VehicleNotFoundError,
)
from locotrack.common.logger import log_debug, log_error, log_info, log_warning
from locotrack.common.time_utils import utcnow
from locotrack.core.tracking.locks import VehicleLocks
from locotrack.core.tracking.store import LocationStore
from locotrack.core.tracking.validation import (
    canonical_id,
    normalize_vehicle_id,
    parse_captured_at,
    validate_accuracy,
    validate_coordinates,
)
from locotrack.shared.models.events import RealtimeEvent
from locotrack.shared.models.location import VehicleLocationRecord, VehiclePosition

if TYPE_CHECKING:
    from locotrack.services.realtime_ws.broadcaster import Broadcaster


@dataclass(frozen=True)
class SubmitResult:
    """Результат приёма локации."""
    accepted: bool
    reason: RejectReason | None = None
    message: str | None = None
    record: VehicleLocationRecord | None = None

    @classmethod
    def ok(cls, record: VehicleLocationRecord) -> "SubmitResult":
        return cls(accepted=True, record=record)

    @classmethod
    def rejected(cls, reason: RejectReason, message: str) -> "SubmitResult":
        return cls(accepted=False, reason=reason, message=message)


class UpdateDispatcher:
    """
    Единственная точка записи позиций.

    Запись в хранилище и рассылка выполняются под блокировкой транспорта,
    поэтому подписчики получают обновления одного автобуса в порядке приёма,
    а событие строится из записи, которую вернуло хранилище.
    """

    def __init__(
        self,
        store: LocationStore,
        broadcaster: "Broadcaster",
        locks: VehicleLocks | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._broadcaster = broadcaster
        self._locks = locks or VehicleLocks()
        self._clock = clock

        # Статистика
        self._total_updates = 0
        self._rejected_updates = 0
        self._updates_per_vehicle: dict[str, int] = {}

    @property
    def store(self) -> LocationStore:
        return self._store

    @property
    def locks(self) -> VehicleLocks:
        return self._locks

    # =========================================================================
    # ПРИЁМ КООРДИНАТ
    # =========================================================================

    async def submit_location(
        self,
        vehicle_id: Any,
        latitude: Any,
        longitude: Any,
        accuracy: Any = None,
        captured_at: Any = None,
    ) -> SubmitResult:
        """
        Принять координаты транспорта.

        1. Валидация (без побочных эффектов при ошибке)
        2. Запись в хранилище: позиция, online, last_seen_at
        3. location-update подписчикам транспорта

        Returns:
            SubmitResult с причиной отказа или принятой записью
        """
        try:
            key = normalize_vehicle_id(vehicle_id)
            lat, lon = validate_coordinates(latitude, longitude)
            acc = validate_accuracy(accuracy)
            captured = parse_captured_at(captured_at)
        except InvalidInputError as e:
            return await self._reject(RejectReason.INVALID_INPUT, e.message, vehicle_id)

        try:
            async with self._locks.hold(key):
                seen_at = self._clock()
                position = VehiclePosition(
                    latitude=lat,
                    longitude=lon,
                    accuracy=acc,
                    captured_at=captured or seen_at,
                )
                record = await self._store.apply_location(key, position, seen_at)
                if record is None:
                    return await self._reject(
                        RejectReason.NOT_FOUND,
                        f"Транспорт {key} не зарегистрирован",
                        key,
                    )

                await self._publish_to_subscribers(key, RealtimeEvent.location_update(record))
        except StoreUnavailableError as e:
            return await self._reject(RejectReason.STORE_UNAVAILABLE, e.message, key)
        except Exception as e:
            error = InternalError(f"Ошибка приёма локации {key}: {e}")
            await log_error(error.message, exc_info=True)
            return await self._reject(RejectReason.INTERNAL_ERROR, error.message, key)

        self._total_updates += 1
        self._updates_per_vehicle[key] = self._updates_per_vehicle.get(key, 0) + 1
        await log_debug(
            f"Локация {key} принята: {lat}, {lon}",
            extra={"vehicle_id": key, "version": record.version},
        )
        return SubmitResult.ok(record)

    async def _reject(self, reason: RejectReason, message: str, vehicle_id: Any) -> SubmitResult:
        self._rejected_updates += 1
        await log_info(
            f"Локация отклонена ({reason}): {message}",
            type_msg=TypeMsg.INFO,
            extra={"vehicle_id": str(vehicle_id), "reason": reason.value},
        )
        return SubmitResult.rejected(reason, message)

    # =========================================================================
    # ЗАПРОСЫ
    # =========================================================================

    async def get_location(self, identifier: str) -> VehicleLocationRecord:
        """
        Текущая позиция транспорта в сети.

        Raises:
            VehicleNotFoundError: транспорт неизвестен, offline или ещё не присылал координаты
        """
        record = await self._store.find_vehicle(identifier)
        if record is None:
            raise VehicleNotFoundError(f"Транспорт {canonical_id(identifier)} не найден")
        if not record.is_online or record.position is None:
            raise VehicleNotFoundError(
                f"Транспорт {record.vehicle_id} не в сети",
                details={"vehicleId": record.vehicle_id, "status": record.status.value},
            )
        return record

    async def get_route_details(self, identifier: str) -> VehicleLocationRecord:
        """Статические данные маршрута транспорта."""
        record = await self._store.find_vehicle(identifier)
        if record is None:
            raise VehicleNotFoundError(f"Транспорт {canonical_id(identifier)} не найден")
        return record

    async def list_online(self) -> list[VehicleLocationRecord]:
        """Транспорт в сети, у которого есть позиция."""
        records = await self._store.list_online()
        return [record for record in records if record.position is not None]

    # =========================================================================
    # РЕГИСТРАЦИЯ
    # =========================================================================

    async def register_vehicle(
        self,
        vehicle_id: str,
        organization_id: str,
        bus_number: str | None = None,
        route: str = "",
        start: str = "",
        destination: str = "",
        stops: Iterable[str] = (),
    ) -> VehicleLocationRecord:
        """Регистрирует транспорт (offline, без позиции) и рассылает bus-added."""
        key = normalize_vehicle_id(vehicle_id)
        org = organization_id.strip()
        if not org:
            raise InvalidInputError("organizationId не может быть пустым", details={"field": "organizationId"})

        record = VehicleLocationRecord(
            vehicle_id=key,
            organization_id=org,
            bus_number=canonical_id(bus_number) if bus_number and bus_number.strip() else None,
            route=route,
            start=start,
            destination=destination,
            stops=tuple(stops),
        )
        async with self._locks.hold(key):
            created = await self._store.register_vehicle(record)

        await log_info(f"Транспорт {key} зарегистрирован в организации {org}", type_msg=TypeMsg.INFO)
        await self._publish_to_all(RealtimeEvent.bus_added(created))
        return created

    async def remove_vehicle(self, vehicle_id: str) -> None:
        """
        Снимает транспорт с учёта и рассылает bus-removed.

        Raises:
            VehicleNotFoundError: транспорта нет в хранилище
        """
        key = canonical_id(vehicle_id)
        async with self._locks.hold(key):
            removed = await self._store.remove_vehicle(key)
            if not removed:
                raise VehicleNotFoundError(f"Транспорт {key} не найден")
            await self._publish_to_all(RealtimeEvent.bus_removed(key))

        await log_info(f"Транспорт {key} снят с учёта", type_msg=TypeMsg.INFO)

    async def remove_organization(self, organization_id: str) -> list[str]:
        """Снимает с учёта весь транспорт организации."""
        removed = await self._store.remove_organization(organization_id.strip())
        for vehicle_id in removed:
            await self._publish_to_all(RealtimeEvent.bus_removed(vehicle_id))

        await log_info(
            f"Организация {organization_id}: снято с учёта {len(removed)} ед. транспорта",
            type_msg=TypeMsg.INFO,
        )
        return removed

    # =========================================================================
    # РАССЫЛКА
    # =========================================================================

    async def _publish_to_subscribers(self, vehicle_id: str, event: RealtimeEvent) -> None:
        # Сбой доставки не отменяет уже принятую запись
        try:
            await self._broadcaster.push_to_subscribers(vehicle_id, event)
        except Exception as e:
            await log_warning(f"Не удалось разослать {event.event} для {vehicle_id}: {e}")

    async def _publish_to_all(self, event: RealtimeEvent) -> None:
        try:
            await self._broadcaster.push_to_all(event)
        except Exception as e:
            await log_warning(f"Не удалось разослать {event.event}: {e}")

    def get_stats(self) -> dict[str, Any]:
        """Статистика приёма."""
        return {
            "total_updates": self._total_updates,
            "rejected_updates": self._rejected_updates,
            "unique_vehicles": len(self._updates_per_vehicle),
        }
