# locotrack/services/__init__.py
"""
Сервисы LOCOTrack.

- tracking: FastAPI приложение (HTTP API + WebSocket)
- realtime_ws: доставка realtime-событий зрителям
"""

__all__: list[str] = []
