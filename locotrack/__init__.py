"""
LOCOTrack — сервис live-трекинга автобусов.

Ядро: приём GPS-координат, рассылка позиций подписчикам
и перевод «замолчавших» автобусов в offline.
"""

__version__ = "1.0.0"
