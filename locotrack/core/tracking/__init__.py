# locotrack/core/tracking/__init__.py
"""
Ядро трекинга: хранилище, приём координат, подписки и монитор устаревания.
"""

from locotrack.core.tracking.locks import VehicleLocks
from locotrack.core.tracking.store import LocationStore, InMemoryLocationStore, FailoverLocationStore
from locotrack.core.tracking.pg_store import PostgresLocationStore
from locotrack.core.tracking.subscriptions import SubscriptionRegistry
from locotrack.core.tracking.dispatcher import UpdateDispatcher, SubmitResult
from locotrack.core.tracking.staleness import StalenessMonitor

__all__ = [
    "VehicleLocks",
    "LocationStore",
    "InMemoryLocationStore",
    "FailoverLocationStore",
    "PostgresLocationStore",
    "SubscriptionRegistry",
    "UpdateDispatcher",
    "SubmitResult",
    "StalenessMonitor",
]
