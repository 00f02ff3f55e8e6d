# locotrack/core/tracking/store.py
"""
Хранилище локаций транспорта.

LocationStore — интерфейс, которым пользуются диспетчер, монитор и API.
Реализация выбирается один раз при старте сервиса:
- PostgresLocationStore (pg_store.py) — основной реестр;
- InMemoryLocationStore — запасной вариант, когда БД недоступна;
- FailoverLocationStore — PostgreSQL с переключением на память при сбоях.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime

from locotrack.common.constants import TypeMsg
from locotrack.common.exceptions import StoreUnavailableError, VehicleConflictError
from locotrack.common.logger import log_info, log_warning
from locotrack.core.tracking.validation import canonical_id
from locotrack.shared.models.location import VehicleLocationRecord, VehiclePosition


class LocationStore(ABC):
    """Интерфейс хранилища локаций."""

    # True: есть канонический реестр, неизвестный транспорт отклоняется.
    # False: транспорт регистрируется неявно при первом обновлении.
    is_authoritative: bool = True

    @property
    @abstractmethod
    def name(self) -> str:
        """Имя реализации для /health."""

    @abstractmethod
    async def find_vehicle(self, identifier: str) -> VehicleLocationRecord | None:
        """Поиск по vehicle_id, затем по bus_number."""

    @abstractmethod
    async def get_vehicle(self, vehicle_id: str) -> VehicleLocationRecord | None:
        """Поиск строго по vehicle_id."""

    @abstractmethod
    async def apply_location(
        self,
        vehicle_id: str,
        position: VehiclePosition,
        seen_at: datetime,
    ) -> VehicleLocationRecord | None:
        """
        Атомарно записывает позицию, status=online и last_seen_at.

        Returns:
            Новая версия записи или None, если транспорт неизвестен
            авторитетному хранилищу
        """

    @abstractmethod
    async def list_online(self) -> list[VehicleLocationRecord]:
        """Все записи со статусом online."""

    @abstractmethod
    async def mark_offline_if_stale(
        self,
        vehicle_id: str,
        expected_last_seen_at: datetime | None,
    ) -> VehicleLocationRecord | None:
        """
        Compare-and-swap online -> offline.

        Срабатывает только если запись всё ещё online и её last_seen_at
        равен expected_last_seen_at. Иначе возвращает None.
        """

    @abstractmethod
    async def register_vehicle(self, record: VehicleLocationRecord) -> VehicleLocationRecord:
        """Регистрирует транспорт. VehicleConflictError при дубликате."""

    @abstractmethod
    async def remove_vehicle(self, vehicle_id: str) -> bool:
        """Удаляет транспорт. False, если его не было."""

    @abstractmethod
    async def remove_organization(self, organization_id: str) -> list[str]:
        """Удаляет весь транспорт организации и возвращает удалённые vehicle_id."""

    async def health_check(self) -> bool:
        return True


# =============================================================================
# IN-MEMORY
# =============================================================================

class InMemoryLocationStore(LocationStore):
    """
    Хранилище в памяти процесса.

    Записи неизменяемы и заменяются целиком под одной asyncio.Lock,
    поэтому читатель всегда видит целостный снимок.
    """

    def __init__(self, authoritative: bool = False) -> None:
        self.is_authoritative = authoritative
        self._records: dict[str, VehicleLocationRecord] = {}
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return "memory"

    def __len__(self) -> int:
        return len(self._records)

    async def find_vehicle(self, identifier: str) -> VehicleLocationRecord | None:
        key = canonical_id(identifier)
        record = self._records.get(key)
        if record is not None:
            return record

        for candidate in self._records.values():
            if candidate.bus_number == key:
                return candidate
        return None

    async def get_vehicle(self, vehicle_id: str) -> VehicleLocationRecord | None:
        return self._records.get(canonical_id(vehicle_id))

    async def apply_location(
        self,
        vehicle_id: str,
        position: VehiclePosition,
        seen_at: datetime,
    ) -> VehicleLocationRecord | None:
        key = canonical_id(vehicle_id)
        async with self._lock:
            record = self._records.get(key)
            if record is None:
                if self.is_authoritative:
                    return None
                record = VehicleLocationRecord(vehicle_id=key)
                await log_info(
                    f"Транспорт {key} зарегистрирован неявно при первом обновлении",
                    type_msg=TypeMsg.INFO,
                )

            updated = record.with_location(position, seen_at)
            self._records[key] = updated
            return updated

    async def list_online(self) -> list[VehicleLocationRecord]:
        return [record for record in self._records.values() if record.is_online]

    async def mark_offline_if_stale(
        self,
        vehicle_id: str,
        expected_last_seen_at: datetime | None,
    ) -> VehicleLocationRecord | None:
        key = canonical_id(vehicle_id)
        async with self._lock:
            record = self._records.get(key)
            if record is None or not record.is_online:
                return None
            if record.last_seen_at != expected_last_seen_at:
                return None

            updated = record.as_offline()
            self._records[key] = updated
            return updated

    async def register_vehicle(self, record: VehicleLocationRecord) -> VehicleLocationRecord:
        async with self._lock:
            if record.vehicle_id in self._records:
                raise VehicleConflictError(
                    f"Транспорт {record.vehicle_id} уже зарегистрирован",
                    details={"vehicleId": record.vehicle_id},
                )
            if record.bus_number and any(
                existing.organization_id == record.organization_id
                and existing.bus_number == record.bus_number
                for existing in self._records.values()
            ):
                raise VehicleConflictError(
                    f"Номер {record.bus_number} уже используется в организации",
                    details={"busNumber": record.bus_number},
                )

            self._records[record.vehicle_id] = record
            return record

    async def remove_vehicle(self, vehicle_id: str) -> bool:
        async with self._lock:
            return self._records.pop(canonical_id(vehicle_id), None) is not None

    async def remove_organization(self, organization_id: str) -> list[str]:
        async with self._lock:
            removed = [
                vehicle_id
                for vehicle_id, record in self._records.items()
                if record.organization_id == organization_id
            ]
            for vehicle_id in removed:
                del self._records[vehicle_id]
            return removed


# =============================================================================
# FAILOVER
# =============================================================================

class FailoverLocationStore(LocationStore):
    """
    Основное хранилище с переключением на запасное при StoreUnavailableError.

    Приём и чтение локаций продолжают работать во время сбоя БД.
    После восстановления запасное хранилище дополняет ответы основного только
    транспортом, которого основной реестр не знает. Копии известного ему
    транспорта удаляются при первом успешном обновлении, переходе или list_online.
    """

    def __init__(self, primary: LocationStore, fallback: LocationStore) -> None:
        self._primary = primary
        self._fallback = fallback
        self._degraded = False

    @property
    def name(self) -> str:
        return f"{self._primary.name}+{self._fallback.name}"

    @property
    def is_authoritative(self) -> bool:  # type: ignore[override]
        return self._primary.is_authoritative

    @property
    def degraded(self) -> bool:
        """Обслуживается ли сейчас трафик запасным хранилищем."""
        return self._degraded

    async def _on_primary_failure(self, error: StoreUnavailableError) -> None:
        if not self._degraded:
            self._degraded = True
            await log_warning(
                f"Основное хранилище {self._primary.name} недоступно, "
                f"переключение на {self._fallback.name}: {error.message}"
            )

    async def _on_primary_success(self) -> None:
        if self._degraded:
            self._degraded = False
            await log_info(
                f"Основное хранилище {self._primary.name} снова доступно",
                type_msg=TypeMsg.INFO,
            )

    async def find_vehicle(self, identifier: str) -> VehicleLocationRecord | None:
        try:
            record = await self._primary.find_vehicle(identifier)
        except StoreUnavailableError as e:
            await self._on_primary_failure(e)
            return await self._fallback.find_vehicle(identifier)

        await self._on_primary_success()
        if record is None:
            return await self._fallback.find_vehicle(identifier)
        return record

    async def get_vehicle(self, vehicle_id: str) -> VehicleLocationRecord | None:
        try:
            record = await self._primary.get_vehicle(vehicle_id)
        except StoreUnavailableError as e:
            await self._on_primary_failure(e)
            return await self._fallback.get_vehicle(vehicle_id)

        await self._on_primary_success()
        if record is None:
            return await self._fallback.get_vehicle(vehicle_id)
        return record

    async def apply_location(
        self,
        vehicle_id: str,
        position: VehiclePosition,
        seen_at: datetime,
    ) -> VehicleLocationRecord | None:
        try:
            record = await self._primary.apply_location(vehicle_id, position, seen_at)
        except StoreUnavailableError as e:
            await self._on_primary_failure(e)
            return await self._fallback.apply_location(vehicle_id, position, seen_at)

        await self._on_primary_success()
        if record is not None:
            await self._fallback.remove_vehicle(vehicle_id)
        return record

    async def list_online(self) -> list[VehicleLocationRecord]:
        fallback_records = await self._fallback.list_online()
        try:
            primary_records = await self._primary.list_online()
            seen = {record.vehicle_id for record in primary_records}
            outage_only = []
            for record in fallback_records:
                # Копия времён сбоя не нужна, если основной реестр знает транспорт
                if record.vehicle_id in seen or await self._primary.get_vehicle(record.vehicle_id):
                    await self._fallback.remove_vehicle(record.vehicle_id)
                    continue
                outage_only.append(record)
        except StoreUnavailableError as e:
            await self._on_primary_failure(e)
            return fallback_records

        await self._on_primary_success()
        return primary_records + outage_only

    async def mark_offline_if_stale(
        self,
        vehicle_id: str,
        expected_last_seen_at: datetime | None,
    ) -> VehicleLocationRecord | None:
        try:
            record = await self._primary.mark_offline_if_stale(vehicle_id, expected_last_seen_at)
        except StoreUnavailableError as e:
            await self._on_primary_failure(e)
            record = None

        if record is not None:
            await self._fallback.remove_vehicle(vehicle_id)
            return record
        return await self._fallback.mark_offline_if_stale(vehicle_id, expected_last_seen_at)

    async def register_vehicle(self, record: VehicleLocationRecord) -> VehicleLocationRecord:
        # Регистрация только в основном реестре
        return await self._primary.register_vehicle(record)

    async def remove_vehicle(self, vehicle_id: str) -> bool:
        removed = await self._primary.remove_vehicle(vehicle_id)
        removed_fallback = await self._fallback.remove_vehicle(vehicle_id)
        return removed or removed_fallback

    async def remove_organization(self, organization_id: str) -> list[str]:
        removed = await self._primary.remove_organization(organization_id)
        for vehicle_id in await self._fallback.remove_organization(organization_id):
            if vehicle_id not in removed:
                removed.append(vehicle_id)
        return removed

    async def health_check(self) -> bool:
        return await self._primary.health_check()
