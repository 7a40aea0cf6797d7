# src/core/tracking/subscriber.py
"""
Наблюдение за позицией водителя по поездке.

Сначала читается последняя сохранённая позиция, затем открывается подписка
на изменения. Каждое событие канала перезаписывает latest_driver_position.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from src.common.logger import log_info, log_warning
from src.common.constants import NotifyType, TypeMsg
from src.core.tracking.errors import ReadFailed, SubscriptionDropped
from src.core.tracking.notifier import Notifier, NullNotifier
from src.core.tracking.store import LocationStore
from src.infra.realtime_feed import FeedSubscription
from src.shared.models.location_dto import DriverLocationRecord


DriverPositionHandler = Callable[[DriverLocationRecord], Awaitable[None]]


class LocationSubscriber:
    """Подписчик на позицию водителя одной поездки."""

    def __init__(
        self,
        trip_id: str,
        store: LocationStore,
        *,
        notifier: Notifier | None = None,
        on_driver_position: DriverPositionHandler | None = None,
    ) -> None:
        self.trip_id = trip_id
        self._store = store
        self._notifier = notifier or NullNotifier()
        self._on_driver_position = on_driver_position

        self._latest: DriverLocationRecord | None = None
        self._subscription: FeedSubscription | None = None
        self._started = False
        self._closed = False

    @property
    def latest_driver_position(self) -> DriverLocationRecord | None:
        return self._latest

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None and not self._subscription.closed

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> bool:
        """
        Загрузить последнюю позицию и подписаться на изменения.

        Returns:
            False при повторном вызове или после close()
        """
        if self._started or self._closed:
            return False
        self._started = True

        await self._load_latest()
        if self._closed:
            return True

        try:
            subscription = await self._store.subscribe(
                self.trip_id,
                self._handle_change,
                on_drop=self._handle_drop,
                on_resume=self._handle_resume,
            )
        except SubscriptionDropped as e:
            await log_warning(
                f"Не удалось подписаться на позицию водителя: {e}",
                logger_name="tracking",
                extra={"trip_id": self.trip_id},
            )
            self._notifier.notify(e.message_key, NotifyType.WARNING)
            return True

        # close() мог произойти, пока открывалась подписка
        if self._closed:
            await subscription.close()
            return True

        self._subscription = subscription
        await log_info(
            "Подписка на позицию водителя открыта",
            type_msg=TypeMsg.DEBUG,
            logger_name="tracking",
            extra={"trip_id": self.trip_id},
        )
        return True

    async def close(self) -> None:
        """Закрыть подписку. Повторный вызов ничего не делает."""
        if self._closed:
            return
        self._closed = True

        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()

    async def _load_latest(self) -> None:
        try:
            record = await self._store.fetch_latest(self.trip_id)
        except ReadFailed as e:
            await log_warning(
                f"Не удалось загрузить позицию водителя: {e}",
                logger_name="tracking",
                extra={"trip_id": self.trip_id},
            )
            self._notifier.notify(e.message_key, NotifyType.WARNING)
            return

        if record is not None:
            await self._apply(record)

    async def _apply(self, record: DriverLocationRecord) -> None:
        if self._closed:
            return
        self._latest = record
        if self._on_driver_position:
            await self._on_driver_position(record)

    async def _handle_change(self, record: DriverLocationRecord) -> None:
        await self._apply(record)

    async def _handle_drop(self, error: Exception) -> None:
        if self._closed:
            return
        self._notifier.notify(SubscriptionDropped.message_key, NotifyType.WARNING)

    async def _handle_resume(self) -> None:
        if self._closed:
            return
        self._notifier.notify("FEED_RESTORED", NotifyType.POSITIVE)
        # События, опубликованные во время обрыва, потеряны: перечитываем хранилище
        await self._load_latest()
