# src/core/tracking/errors.py
"""
Ошибки подсистемы отслеживания.

Каждая ошибка несёт ключ локализации (message_key) для всплывающего
уведомления пользователю. Ни одна из них не должна ронять страницу.
"""

from __future__ import annotations


class TrackingError(Exception):
    """Базовая ошибка отслеживания."""

    message_key = "TRACKING_ERROR"

    def __init__(self, message: str = "", *, trip_id: str | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.trip_id = trip_id


# =============================================================================
# ГЕОЛОКАЦИЯ
# =============================================================================

class GeolocationError(TrackingError):
    """
    Ошибка получения позиции устройства.

    terminal=True означает, что сессия не должна повторять попытки сама:
    пользователь обязан явно запустить отслеживание заново.
    """

    terminal = False
    message_key = "GEO_UNAVAILABLE"


class GeolocationPermissionDenied(GeolocationError):
    """Пользователь запретил доступ к геолокации."""

    terminal = True
    message_key = "GEO_PERMISSION_DENIED"


class GeolocationUnsupported(GeolocationError):
    """Браузер не предоставляет navigator.geolocation."""

    terminal = True
    message_key = "GEO_UNSUPPORTED"


class GeolocationUnavailable(GeolocationError):
    """Позиция временно недоступна (нет сигнала и т.п.)."""

    message_key = "GEO_UNAVAILABLE"


class GeolocationTimeout(GeolocationError):
    """Позиция не получена за отведённое время."""

    message_key = "GEO_TIMEOUT"


# =============================================================================
# ХРАНИЛИЩЕ И REALTIME-КАНАЛ
# =============================================================================

class StoreError(TrackingError):
    """Ошибка хранилища локаций или канала обновлений."""


class WriteFailed(StoreError):
    """Запись в хранилище не удалась."""

    message_key = "LOCATION_PUBLISH_FAILED"


class ReadFailed(StoreError):
    """Чтение из хранилища не удалось."""

    message_key = "LOCATION_LOAD_FAILED"


class SubscriptionDropped(StoreError):
    """Подписка на канал обновлений потеряна."""

    message_key = "FEED_DROPPED"
