# src/core/tracking/session.py
"""
Сессия отслеживания: всё, чем владеет смонтированный экран поездки.

Водитель публикует свою позицию и видит свою же запись через канал.
Остальные участники (пассажиры) наблюдают водителя и видят свою позицию
отдельным маркером. Все таймеры и подписки освобождаются вместе, ровно
один раз: в dispose(), при смене поездки или при выходе из async with.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from src.common.logger import log_error, log_info, log_warning
from src.common.constants import NotifyType, TrackingRole, TypeMsg
from src.core.tracking.errors import GeolocationError
from src.core.tracking.geolocation import GeolocationSource
from src.core.tracking.notifier import Notifier, NullNotifier
from src.core.tracking.publisher import LocationPublisher
from src.core.tracking.store import LocationStore
from src.core.tracking.subscriber import LocationSubscriber
from src.shared.models.location_dto import DriverLocationRecord, Position


DriverPositionHandler = Callable[[DriverLocationRecord], Awaitable[None]]
OwnPositionHandler = Callable[[Position], Awaitable[None]]


@dataclass
class TrackingState:
    """Состояние экрана отслеживания для одной поездки."""
    trip_id: str
    role: TrackingRole
    tracking_enabled: bool = False
    latest_driver_position: DriverLocationRecord | None = None
    latest_own_position: Position | None = None


class TrackingSession:
    """
    Сессия отслеживания одного пользователя по одной поездке.

    Использование:
        async with TrackingSession(trip_id, user_id, role, store=..., source=...) as session:
            session.start_tracking()
            ...
    """

    def __init__(
        self,
        trip_id: str,
        user_id: str,
        role: TrackingRole,
        *,
        store: LocationStore,
        source: GeolocationSource,
        notifier: Notifier | None = None,
        interval: float = 30.0,
        on_driver_position: DriverPositionHandler | None = None,
        on_own_position: OwnPositionHandler | None = None,
        on_tracking_changed: Callable[[bool], None] | None = None,
    ) -> None:
        """
        Args:
            trip_id: Поездка
            user_id: Текущий пользователь (driver_id публикуемых записей)
            role: DRIVER публикует позицию, VIEWER только наблюдает
            store: Хранилище локаций
            source: Источник позиции устройства
            notifier: Всплывающие уведомления
            interval: Период публикации / обновления своей позиции (сек)
            on_driver_position: Новая позиция водителя (для маркера водителя)
            on_own_position: Новая позиция наблюдателя (для его маркера)
            on_tracking_changed: Публикация включена/выключена (в т.ч. из-за ошибки геолокации)
        """
        self.user_id = user_id
        self.interval = interval
        self._store = store
        self._source = source
        self._notifier = notifier or NullNotifier()
        self._on_driver_position = on_driver_position
        self._on_own_position = on_own_position
        self._on_tracking_changed = on_tracking_changed

        self.state = TrackingState(trip_id=trip_id, role=role)
        self._publisher: LocationPublisher | None = None
        self._subscriber: LocationSubscriber | None = None
        self._watch_task: asyncio.Task | None = None
        self._opened = False
        self._disposed = False

    # =========================================================================
    # СВОЙСТВА
    # =========================================================================

    @property
    def trip_id(self) -> str:
        return self.state.trip_id

    @property
    def role(self) -> TrackingRole:
        return self.state.role

    @property
    def is_driver(self) -> bool:
        return self.state.role == TrackingRole.DRIVER

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def publisher(self) -> LocationPublisher | None:
        return self._publisher

    @property
    def subscriber(self) -> LocationSubscriber | None:
        return self._subscriber

    @property
    def has_pending_timer(self) -> bool:
        """Есть ли активный таймер публикации или наблюдения за своей позицией."""
        publishing = self._publisher is not None and self._publisher.has_pending_timer
        watching = self._watch_task is not None and not self._watch_task.done()
        return publishing or watching

    # =========================================================================
    # ЖИЗНЕННЫЙ ЦИКЛ
    # =========================================================================

    async def open(self) -> None:
        """Загрузить позицию водителя, подписаться и (для наблюдателя) следить за своей позицией."""
        if self._disposed:
            raise RuntimeError(f"Сессия поездки {self.trip_id} уже закрыта")
        if self._opened:
            return
        self._opened = True

        trip_id = self.state.trip_id
        if self.is_driver:
            self._publisher = LocationPublisher(
                trip_id,
                self.user_id,
                self._source,
                self._store,
                notifier=self._notifier,
                interval=self.interval,
                on_captured=self._set_own_position,
                on_tracking_changed=self._set_tracking_enabled,
            )

        self._subscriber = LocationSubscriber(
            trip_id,
            self._store,
            notifier=self._notifier,
            on_driver_position=self._handle_driver_position,
        )
        await self._subscriber.start()

        # dispose() или switch_trip() могли случиться во время загрузки
        if self._disposed or self.state.trip_id != trip_id:
            return

        if not self.is_driver:
            self._watch_task = asyncio.create_task(
                self._watch_own_position(),
                name=f"watch-own:{trip_id}",
            )

        await log_info(
            f"Сессия отслеживания открыта ({self.role.value}, пользователь {self.user_id})",
            type_msg=TypeMsg.INFO,
            logger_name="tracking",
            extra={"trip_id": trip_id},
        )

    def start_tracking(self) -> bool:
        """Начать публикацию своей позиции (только водитель)."""
        if self._publisher is None:
            return False
        return self._publisher.start_tracking()

    def stop_tracking(self) -> None:
        """Остановить публикацию своей позиции."""
        if self._publisher is not None:
            self._publisher.stop_tracking()

    async def switch_trip(self, trip_id: str) -> None:
        """Перейти к другой поездке: ресурсы старой освобождаются до открытия новой."""
        if self._disposed:
            raise RuntimeError("Сессия уже закрыта")
        if trip_id == self.state.trip_id:
            return

        await self._release()
        self.state = TrackingState(trip_id=trip_id, role=self.state.role)
        self._opened = False
        await self.open()

    async def dispose(self) -> None:
        """Освободить таймеры и подписки. Повторный вызов ничего не делает."""
        if self._disposed:
            return
        self._disposed = True
        await self._release()
        await log_info(
            "Сессия отслеживания закрыта",
            type_msg=TypeMsg.INFO,
            logger_name="tracking",
            extra={"trip_id": self.state.trip_id},
        )

    async def __aenter__(self) -> "TrackingSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    async def _release(self) -> None:
        # Сначала синхронно запрашиваем отмену всего, потом ждём
        publisher, self._publisher = self._publisher, None
        subscriber, self._subscriber = self._subscriber, None
        watch_task, self._watch_task = self._watch_task, None

        if publisher is not None:
            publisher.stop_tracking()
        if watch_task is not None:
            watch_task.cancel()

        if publisher is not None:
            await publisher.aclose()
        if subscriber is not None:
            await subscriber.close()
        if watch_task is not None:
            await asyncio.gather(watch_task, return_exceptions=True)

    # =========================================================================
    # ОБРАБОТЧИКИ
    # =========================================================================

    def _set_tracking_enabled(self, enabled: bool) -> None:
        self.state.tracking_enabled = enabled
        if self._on_tracking_changed:
            self._on_tracking_changed(enabled)

    def _set_own_position(self, position: Position) -> None:
        self.state.latest_own_position = position

    async def _handle_driver_position(self, record: DriverLocationRecord) -> None:
        if self._disposed or record.trip_id != self.state.trip_id:
            return
        self.state.latest_driver_position = record
        if self._on_driver_position:
            await self._on_driver_position(record)

    async def _watch_own_position(self) -> None:
        """Позиция наблюдателя раз в interval секунд до отмены или терминальной ошибки."""
        trip_id = self.state.trip_id
        try:
            async for position in self._source.watch(self.interval):
                if self._disposed or trip_id != self.state.trip_id:
                    return
                self._set_own_position(position)
                if self._on_own_position:
                    await self._on_own_position(position)
        except GeolocationError as e:
            await log_warning(f"Позиция наблюдателя недоступна: {e}", logger_name="tracking", extra={"trip_id": trip_id})
            if not self._disposed:
                self._notifier.notify(e.message_key, NotifyType.NEGATIVE)
        except Exception as e:
            await log_error(
                f"Ошибка обновления позиции наблюдателя: {e}",
                logger_name="tracking",
                extra={"trip_id": trip_id},
                exc_info=True,
            )
