# locotrack/services/realtime_ws/__init__.py
"""
Realtime-доставка событий зрителям.

Обеспечивает:
- WebSocket соединения с ограниченной очередью на каждое
- Подписки на транспорт
- Рассылку внутри процесса или через Redis Pub/Sub
"""

from locotrack.services.realtime_ws.connection_manager import ConnectionManager
from locotrack.services.realtime_ws.broadcaster import Broadcaster, LocalBroadcaster, RedisBroadcaster

__all__ = ["ConnectionManager", "Broadcaster", "LocalBroadcaster", "RedisBroadcaster"]
