# locotrack/core/tracking/pg_store.py
"""
Хранилище локаций в PostgreSQL (таблица tracking.vehicles).

Ошибки соединения переводятся в StoreUnavailableError,
чтобы FailoverLocationStore мог переключиться на запасное хранилище.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from functools import wraps
from typing import Any, Callable, TypeVar

import asyncpg
from asyncpg import Record

from locotrack.common.constants import VehicleStatus
from locotrack.common.exceptions import StoreUnavailableError, VehicleConflictError
from locotrack.common.logger import log_error
from locotrack.core.tracking.store import LocationStore
from locotrack.core.tracking.validation import canonical_id
from locotrack.infra.database import CONNECTION_ERRORS, DatabaseManager, get_db
from locotrack.shared.models.location import VehicleLocationRecord, VehiclePosition

T = TypeVar("T")

COLUMNS = """
    vehicle_id, organization_id, bus_number, route, start_point, destination, stops,
    latitude, longitude, accuracy, captured_at, status, last_seen_at, version
"""


def translate_store_errors(func: Callable[..., T]) -> Callable[..., T]:
    """Декоратор: ошибки соединения с БД -> StoreUnavailableError."""
    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await func(*args, **kwargs)
        except (*CONNECTION_ERRORS, asyncio.TimeoutError) as e:
            await log_error(f"PostgreSQL недоступен в {func.__name__}: {e}")
            raise StoreUnavailableError(
                "Хранилище локаций недоступно",
                details={"operation": func.__name__},
            ) from e
        except RuntimeError as e:
            # Пул не инициализирован
            raise StoreUnavailableError(str(e), details={"operation": func.__name__}) from e

    return wrapper  # type: ignore


def row_to_record(row: Record) -> VehicleLocationRecord:
    """Строка tracking.vehicles -> VehicleLocationRecord."""
    position = None
    if row["latitude"] is not None and row["longitude"] is not None and row["captured_at"] is not None:
        position = VehiclePosition(
            latitude=row["latitude"],
            longitude=row["longitude"],
            accuracy=row["accuracy"],
            captured_at=row["captured_at"],
        )

    return VehicleLocationRecord(
        vehicle_id=row["vehicle_id"],
        organization_id=row["organization_id"],
        bus_number=row["bus_number"],
        route=row["route"] or "",
        start=row["start_point"] or "",
        destination=row["destination"] or "",
        stops=tuple(row["stops"] or ()),
        position=position,
        status=VehicleStatus(row["status"]),
        last_seen_at=row["last_seen_at"],
        version=row["version"],
    )


class PostgresLocationStore(LocationStore):
    """Авторитетное хранилище: неизвестный транспорт не создаётся."""

    is_authoritative = True

    def __init__(self, db: DatabaseManager | None = None) -> None:
        self._db = db or get_db()

    @property
    def name(self) -> str:
        return "postgres"

    @translate_store_errors
    async def find_vehicle(self, identifier: str) -> VehicleLocationRecord | None:
        row = await self._db.fetchrow(
            f"""
            SELECT {COLUMNS}
            FROM tracking.vehicles
            WHERE vehicle_id = $1 OR bus_number = $1
            ORDER BY (vehicle_id = $1) DESC
            LIMIT 1
            """,
            canonical_id(identifier),
        )
        return row_to_record(row) if row else None

    @translate_store_errors
    async def get_vehicle(self, vehicle_id: str) -> VehicleLocationRecord | None:
        row = await self._db.fetchrow(
            f"SELECT {COLUMNS} FROM tracking.vehicles WHERE vehicle_id = $1",
            canonical_id(vehicle_id),
        )
        return row_to_record(row) if row else None

    @translate_store_errors
    async def apply_location(
        self,
        vehicle_id: str,
        position: VehiclePosition,
        seen_at: datetime,
    ) -> VehicleLocationRecord | None:
        row = await self._db.fetchrow(
            f"""
            UPDATE tracking.vehicles
            SET latitude = $2,
                longitude = $3,
                accuracy = $4,
                captured_at = $5,
                status = 'online',
                last_seen_at = $6,
                version = version + 1
            WHERE vehicle_id = $1
            RETURNING {COLUMNS}
            """,
            canonical_id(vehicle_id),
            position.latitude,
            position.longitude,
            position.accuracy,
            position.captured_at,
            seen_at,
        )
        return row_to_record(row) if row else None

    @translate_store_errors
    async def list_online(self) -> list[VehicleLocationRecord]:
        rows = await self._db.fetch(
            f"SELECT {COLUMNS} FROM tracking.vehicles WHERE status = 'online' ORDER BY vehicle_id"
        )
        return [row_to_record(row) for row in rows]

    @translate_store_errors
    async def mark_offline_if_stale(
        self,
        vehicle_id: str,
        expected_last_seen_at: datetime | None,
    ) -> VehicleLocationRecord | None:
        # Без повторов: повтор после потерянного ответа не увидит выполненный переход
        async with self._db.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE tracking.vehicles
                SET status = 'offline',
                    version = version + 1
                WHERE vehicle_id = $1
                  AND status = 'online'
                  AND last_seen_at IS NOT DISTINCT FROM $2
                RETURNING {COLUMNS}
                """,
                canonical_id(vehicle_id),
                expected_last_seen_at,
            )
        return row_to_record(row) if row else None

    @translate_store_errors
    async def register_vehicle(self, record: VehicleLocationRecord) -> VehicleLocationRecord:
        try:
            row = await self._db.fetchrow(
                f"""
                INSERT INTO tracking.vehicles (
                    vehicle_id, organization_id, bus_number, route,
                    start_point, destination, stops, status
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, 'offline')
                RETURNING {COLUMNS}
                """,
                record.vehicle_id,
                record.organization_id,
                record.bus_number,
                record.route,
                record.start,
                record.destination,
                list(record.stops),
            )
        except asyncpg.UniqueViolationError as e:
            raise VehicleConflictError(
                f"Транспорт {record.vehicle_id} уже зарегистрирован",
                details={"vehicleId": record.vehicle_id, "constraint": e.constraint_name},
            ) from e
        return row_to_record(row)

    @translate_store_errors
    async def remove_vehicle(self, vehicle_id: str) -> bool:
        removed = await self._db.fetchval(
            "DELETE FROM tracking.vehicles WHERE vehicle_id = $1 RETURNING vehicle_id",
            canonical_id(vehicle_id),
        )
        return removed is not None

    @translate_store_errors
    async def remove_organization(self, organization_id: str) -> list[str]:
        rows = await self._db.fetch(
            "DELETE FROM tracking.vehicles WHERE organization_id = $1 RETURNING vehicle_id",
            organization_id,
        )
        return [row["vehicle_id"] for row in rows]

    async def health_check(self) -> bool:
        return await self._db.health_check()
