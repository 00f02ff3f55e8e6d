# locotrack/core/tracking/subscriptions.py
"""
Реестр подписок зрителей на транспорт.

Все методы синхронные: внутри нет точек переключения корутин,
поэтому каждая операция атомарна относительно остального event loop.
Наружу отдаются только неизменяемые снимки.
"""

from __future__ import annotations

from typing import Any

from locotrack.core.tracking.validation import canonical_id


class SubscriptionRegistry:
    """Связи connection_id <-> vehicle_id. Живут только в памяти процесса."""

    def __init__(self) -> None:
        # vehicle_id -> set of connection_ids
        self._by_vehicle: dict[str, set[str]] = {}
        # connection_id -> set of vehicle_ids
        self._by_connection: dict[str, set[str]] = {}

    def subscribe(self, connection_id: str, vehicle_id: str) -> bool:
        """
        Подписывает соединение на транспорт. Существование транспорта не проверяется.

        Returns:
            True если подписка новая, False если уже была
        """
        key = canonical_id(vehicle_id)
        subscribers = self._by_vehicle.setdefault(key, set())
        if connection_id in subscribers:
            return False

        subscribers.add(connection_id)
        self._by_connection.setdefault(connection_id, set()).add(key)
        return True

    def unsubscribe(self, connection_id: str, vehicle_id: str) -> bool:
        """Отписка. Повторный вызов ничего не делает."""
        key = canonical_id(vehicle_id)
        subscribers = self._by_vehicle.get(key)
        if subscribers is None or connection_id not in subscribers:
            return False

        self._discard(self._by_vehicle, key, connection_id)
        self._discard(self._by_connection, connection_id, key)
        return True

    def on_connection_closed(self, connection_id: str) -> set[str]:
        """Удаляет все подписки соединения и возвращает транспорт, на который оно было подписано."""
        vehicles = self._by_connection.pop(connection_id, set())
        for vehicle_id in vehicles:
            self._discard(self._by_vehicle, vehicle_id, connection_id)
        return vehicles

    def drop_vehicle(self, vehicle_id: str) -> frozenset[str]:
        """Удаляет все подписки на транспорт (транспорт снят с учёта)."""
        key = canonical_id(vehicle_id)
        connections = self._by_vehicle.pop(key, set())
        for connection_id in connections:
            self._discard(self._by_connection, connection_id, key)
        return frozenset(connections)

    def subscribers_of(self, vehicle_id: str) -> frozenset[str]:
        return frozenset(self._by_vehicle.get(canonical_id(vehicle_id), ()))

    def subscriptions_of(self, connection_id: str) -> frozenset[str]:
        return frozenset(self._by_connection.get(connection_id, ()))

    def stats(self) -> dict[str, Any]:
        return {
            "tracked_vehicles": len(self._by_vehicle),
            "subscribed_connections": len(self._by_connection),
            "total_subscriptions": sum(len(s) for s in self._by_vehicle.values()),
        }

    @staticmethod
    def _discard(index: dict[str, set[str]], key: str, value: str) -> None:
        bucket = index.get(key)
        if bucket is None:
            return
        bucket.discard(value)
        if not bucket:
            del index[key]
