# locotrack/core/tracking/locks.py
"""
Блокировки по транспорту.

Диспетчер и монитор берут одну и ту же блокировку на vehicle_id,
поэтому запись + рассылка по одному автобусу выполняются строго по очереди,
а разные автобусы не мешают друг другу.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator


class VehicleLocks:
    """Реестр asyncio.Lock с ключом vehicle_id. Неиспользуемые блокировки удаляются."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, vehicle_id: str) -> AsyncGenerator[None, None]:
        """
        Захватывает блокировку транспорта.

        Example:
            async with locks.hold("KA01AB1234"):
                ...
        """
        lock = self._locks.get(vehicle_id)
        if lock is None:
            lock = self._locks[vehicle_id] = asyncio.Lock()
        self._holders[vehicle_id] = self._holders.get(vehicle_id, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._holders[vehicle_id] -= 1
            if self._holders[vehicle_id] == 0:
                del self._holders[vehicle_id]
                del self._locks[vehicle_id]

    def is_locked(self, vehicle_id: str) -> bool:
        lock = self._locks.get(vehicle_id)
        return lock is not None and lock.locked()
