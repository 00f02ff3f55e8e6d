# tests/core/tracking/test_memory_store.py
"""
Тесты для хранилища локаций в памяти.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from locotrack.common.constants import VehicleStatus
from locotrack.common.exceptions import VehicleConflictError
from locotrack.core.tracking.store import InMemoryLocationStore
from locotrack.shared.models.location import VehiclePosition

NOW = datetime(2026, 1, 18, 12, 0, tzinfo=timezone.utc)


def _position(lat: float = 11.05, lon: float = 78.10) -> VehiclePosition:
    return VehiclePosition(latitude=lat, longitude=lon, accuracy=20.0, captured_at=NOW)


class TestInMemoryLookup:
    """Поиск транспорта."""

    @pytest.mark.asyncio
    async def test_find_by_vehicle_id_case_insensitive(self, memory_store, make_record) -> None:
        await memory_store.register_vehicle(make_record("KA01AB1234"))

        record = await memory_store.find_vehicle("ka01ab1234")

        assert record is not None
        assert record.vehicle_id == "KA01AB1234"

    @pytest.mark.asyncio
    async def test_find_by_bus_number(self, memory_store, make_record) -> None:
        """Если vehicle_id не совпал, ищем по номеру автобуса."""
        await memory_store.register_vehicle(make_record("A4", bus_number="21G"))

        record = await memory_store.find_vehicle("21g")

        assert record is not None
        assert record.vehicle_id == "A4"

    @pytest.mark.asyncio
    async def test_find_unknown(self, memory_store) -> None:
        assert await memory_store.find_vehicle("NOPE") is None
        assert await memory_store.get_vehicle("NOPE") is None


class TestInMemoryApplyLocation:
    """Запись позиции."""

    @pytest.mark.asyncio
    async def test_apply_sets_online_and_last_seen(self, memory_store, make_record) -> None:
        """Позиция, online и last_seen_at записываются вместе."""
        await memory_store.register_vehicle(make_record("A4"))

        record = await memory_store.apply_location("a4", _position(), NOW)

        assert record is not None
        assert record.status == VehicleStatus.ONLINE
        assert record.last_seen_at == NOW
        assert record.position == _position()
        assert record.version == 1
        assert await memory_store.get_vehicle("A4") == record

    @pytest.mark.asyncio
    async def test_unknown_vehicle_rejected_when_authoritative(self, memory_store) -> None:
        assert await memory_store.apply_location("GHOST", _position(), NOW) is None
        assert len(memory_store) == 0

    @pytest.mark.asyncio
    async def test_unknown_vehicle_registered_implicitly_in_fallback_mode(self) -> None:
        """Без реестра транспорт создаётся при первом обновлении."""
        store = InMemoryLocationStore()

        with patch("locotrack.core.tracking.store.log_info", new_callable=AsyncMock) as mock_log:
            record = await store.apply_location("ghost", _position(), NOW)

        assert record is not None
        assert record.vehicle_id == "GHOST"
        assert record.organization_id is None
        assert record.is_online
        mock_log.assert_called_once()

    @pytest.mark.asyncio
    async def test_static_fields_preserved(self, memory_store, make_record) -> None:
        await memory_store.register_vehicle(make_record("A4", route="R1"))

        record = await memory_store.apply_location("A4", _position(), NOW)

        assert record.route == "R1"
        assert record.organization_id == "ORG-1"


class TestInMemoryCompareAndSwap:
    """Перевод в offline."""

    @pytest.mark.asyncio
    async def test_mark_offline_when_last_seen_matches(self, memory_store, make_record) -> None:
        await memory_store.register_vehicle(make_record("A4"))
        online = await memory_store.apply_location("A4", _position(), NOW)

        result = await memory_store.mark_offline_if_stale("A4", online.last_seen_at)

        assert result is not None
        assert result.status == VehicleStatus.OFFLINE
        assert result.version == online.version + 1
        assert await memory_store.list_online() == []

    @pytest.mark.asyncio
    async def test_fresh_update_wins_over_stale_snapshot(self, memory_store, make_record) -> None:
        """Координаты, пришедшие после чтения монитором, не теряются."""
        await memory_store.register_vehicle(make_record("A4"))
        stale = await memory_store.apply_location("A4", _position(), NOW)
        await memory_store.apply_location("A4", _position(12.0, 79.0), NOW + timedelta(seconds=20))

        result = await memory_store.mark_offline_if_stale("A4", stale.last_seen_at)

        assert result is None
        current = await memory_store.get_vehicle("A4")
        assert current.is_online
        assert current.position.latitude == 12.0

    @pytest.mark.asyncio
    async def test_already_offline(self, memory_store, make_record) -> None:
        await memory_store.register_vehicle(make_record("A4"))

        assert await memory_store.mark_offline_if_stale("A4", None) is None


class TestInMemoryRegistration:
    """Регистрация и удаление."""

    @pytest.mark.asyncio
    async def test_registered_vehicle_is_offline_without_position(self, memory_store, make_record) -> None:
        record = await memory_store.register_vehicle(make_record("A4"))

        assert record.status == VehicleStatus.OFFLINE
        assert record.position is None
        assert record.last_seen_at is None

    @pytest.mark.asyncio
    async def test_duplicate_vehicle_id(self, memory_store, make_record) -> None:
        await memory_store.register_vehicle(make_record("A4"))

        with pytest.raises(VehicleConflictError):
            await memory_store.register_vehicle(make_record("A4", bus_number="OTHER"))

    @pytest.mark.asyncio
    async def test_duplicate_bus_number_in_organization(self, memory_store, make_record) -> None:
        await memory_store.register_vehicle(make_record("A4", bus_number="21G"))

        with pytest.raises(VehicleConflictError):
            await memory_store.register_vehicle(make_record("B7", bus_number="21G"))

    @pytest.mark.asyncio
    async def test_same_bus_number_in_other_organization(self, memory_store, make_record) -> None:
        await memory_store.register_vehicle(make_record("A4", bus_number="21G"))

        record = await memory_store.register_vehicle(
            make_record("B7", bus_number="21G", organization_id="ORG-2")
        )

        assert record.vehicle_id == "B7"

    @pytest.mark.asyncio
    async def test_remove_vehicle(self, memory_store, make_record) -> None:
        await memory_store.register_vehicle(make_record("A4"))

        assert await memory_store.remove_vehicle("a4") is True
        assert await memory_store.remove_vehicle("A4") is False
        assert await memory_store.find_vehicle("A4") is None

    @pytest.mark.asyncio
    async def test_remove_organization(self, memory_store, make_record) -> None:
        await memory_store.register_vehicle(make_record("A4"))
        await memory_store.register_vehicle(make_record("B7"))
        await memory_store.register_vehicle(make_record("C9", organization_id="ORG-2"))

        removed = await memory_store.remove_organization("ORG-1")

        assert sorted(removed) == ["A4", "B7"]
        assert len(memory_store) == 1
