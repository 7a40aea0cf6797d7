# src/core/tracking/__init__.py
"""
Отслеживание водителя в реальном времени.

Источник геолокации -> публикатор -> хранилище (Redis) -> канал изменений
-> подписчик -> карта.
"""

from src.core.tracking.errors import (
    TrackingError,
    GeolocationError,
    GeolocationPermissionDenied,
    GeolocationUnsupported,
    GeolocationUnavailable,
    GeolocationTimeout,
    StoreError,
    WriteFailed,
    ReadFailed,
    SubscriptionDropped,
)
from src.core.tracking.geolocation import GeolocationSource, BrowserGeolocationSource
from src.core.tracking.notifier import Notifier, NullNotifier
from src.core.tracking.store import LocationStore, RedisLocationStore
from src.core.tracking.publisher import LocationPublisher
from src.core.tracking.subscriber import LocationSubscriber
from src.core.tracking.session import TrackingSession, TrackingState

__all__ = [
    # Errors
    "TrackingError",
    "GeolocationError",
    "GeolocationPermissionDenied",
    "GeolocationUnsupported",
    "GeolocationUnavailable",
    "GeolocationTimeout",
    "StoreError",
    "WriteFailed",
    "ReadFailed",
    "SubscriptionDropped",
    # Geolocation
    "GeolocationSource",
    "BrowserGeolocationSource",
    # Notifications
    "Notifier",
    "NullNotifier",
    # Store
    "LocationStore",
    "RedisLocationStore",
    # Session
    "LocationPublisher",
    "LocationSubscriber",
    "TrackingSession",
    "TrackingState",
]
