# locotrack/services/tracking/__init__.py
"""
Сервис трекинга: HTTP API, WebSocket и сборка ядра при старте.
"""
