# locotrack/core/tracking/staleness.py
"""
Монитор устаревания: переводит в offline транспорт, который перестал присылать координаты.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable

from locotrack.common.constants import TypeMsg, VehicleStatus
from locotrack.common.logger import log_error, log_info, log_warning
from locotrack.common.time_utils import utcnow
from locotrack.core.tracking.locks import VehicleLocks
from locotrack.core.tracking.store import LocationStore
from locotrack.shared.models.events import RealtimeEvent
from locotrack.shared.models.location import VehicleLocationRecord

if TYPE_CHECKING:
    from locotrack.services.realtime_ws.broadcaster import Broadcaster


class StalenessMonitor:
    """
    Периодическая проверка живости транспорта.

    Каждые sweep_interval секунд транспорт в сети, от которого не было
    координат дольше liveness_threshold, переводится в offline.
    Об изменении статуса узнают все подключённые клиенты.
    """

    def __init__(
        self,
        store: LocationStore,
        broadcaster: "Broadcaster",
        locks: VehicleLocks,
        liveness_threshold: float = 15.0,
        sweep_interval: float = 30.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if liveness_threshold <= 0:
            raise ValueError("liveness_threshold должен быть положительным")
        if sweep_interval <= 0:
            raise ValueError("sweep_interval должен быть положительным")

        self._store = store
        self._broadcaster = broadcaster
        self._locks = locks
        self._threshold = liveness_threshold
        self._interval = sweep_interval
        self._clock = clock

        self._task: asyncio.Task | None = None
        self._running = False

        # Статистика
        self._sweeps = 0
        self._failed_sweeps = 0
        self._failed_transitions = 0
        self._vehicles_demoted = 0
        self._last_sweep_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Запускает периодическую проверку."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        await log_info(
            f"Монитор устаревания запущен: порог {self._threshold}с, период {self._interval}с",
            type_msg=TypeMsg.INFO,
        )

    async def stop(self) -> None:
        """Останавливает проверку."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        await log_info("Монитор устаревания остановлен", type_msg=TypeMsg.INFO)

    async def _run(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            await self.run_once()

    async def run_once(self) -> list[str]:
        """Один проход: ошибки логируются и не останавливают расписание."""
        try:
            return await self.sweep()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failed_sweeps += 1
            await log_error(f"Ошибка проверки устаревания: {e}", exc_info=True)
            return []

    def is_stale(self, record: VehicleLocationRecord, now: datetime) -> bool:
        # online без last_seen_at нарушает инвариант записи, такой транспорт тоже снимаем
        if record.last_seen_at is None:
            return True
        return (now - record.last_seen_at).total_seconds() > self._threshold

    async def sweep(self) -> list[str]:
        """
        Переводит устаревший транспорт в offline.

        Переход выполняется compare-and-swap по last_seen_at под блокировкой
        транспорта: если между чтением списка и переходом пришли координаты,
        транспорт остаётся online.

        Returns:
            vehicle_id переведённого в offline транспорта
        """
        now = self._clock()
        self._sweeps += 1
        self._last_sweep_at = now

        demoted: list[str] = []
        for record in await self._store.list_online():
            if not self.is_stale(record, now):
                continue

            try:
                updated = await self._demote(record)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Транспорт остаётся online до следующего прохода
                self._failed_transitions += 1
                await log_error(
                    f"Не удалось перевести {record.vehicle_id} в offline: {e}",
                    extra={"vehicle_id": record.vehicle_id},
                    exc_info=True,
                )
                continue

            if updated is None:
                continue

            demoted.append(updated.vehicle_id)
            await log_info(
                f"Транспорт {updated.vehicle_id} переведён в offline "
                f"(последние координаты: {record.last_seen_at})",
                type_msg=TypeMsg.INFO,
                extra={"vehicle_id": updated.vehicle_id},
            )

        return demoted

    async def _demote(self, record: VehicleLocationRecord) -> VehicleLocationRecord | None:
        async with self._locks.hold(record.vehicle_id):
            updated = await self._store.mark_offline_if_stale(record.vehicle_id, record.last_seen_at)
            if updated is None:
                return None

            self._vehicles_demoted += 1
            await self._publish(RealtimeEvent.status_change(updated.vehicle_id, VehicleStatus.OFFLINE))
            return updated

    async def _publish(self, event: RealtimeEvent) -> None:
        try:
            await self._broadcaster.push_to_all(event)
        except Exception as e:
            await log_warning(f"Не удалось разослать {event.event}: {e}")

    def get_stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "liveness_threshold_seconds": self._threshold,
            "sweep_interval_seconds": self._interval,
            "sweeps": self._sweeps,
            "failed_sweeps": self._failed_sweeps,
            "failed_transitions": self._failed_transitions,
            "vehicles_demoted": self._vehicles_demoted,
            "last_sweep_at": self._last_sweep_at.isoformat() if self._last_sweep_at else None,
        }
