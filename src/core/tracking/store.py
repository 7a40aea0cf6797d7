# src/core/tracking/store.py
"""
Хранилище последней позиции водителя по поездке и канал её изменений.

Одна запись на поездку, запись перезаписывает предыдущую (last-writer-wins).
Каждая запись публикуется в канал поездки; подписчики получают новое
состояние записи целиком.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from pydantic import ValidationError
from redis.exceptions import RedisError

from src.common.logger import log_info, log_warning
from src.common.constants import TypeMsg
from src.core.tracking.errors import ReadFailed, SubscriptionDropped, WriteFailed
from src.infra.realtime_feed import FeedSubscription, HubSubscription, RedisFeedHub, get_feed_hub
from src.shared.models.location_dto import DriverLocationRecord, utcnow

if TYPE_CHECKING:
    from src.infra.redis_client import RedisClient


ChangeHandler = Callable[[DriverLocationRecord], Awaitable[None]]
DropHandler = Callable[[Exception], Awaitable[None]]
ResumeHandler = Callable[[], Awaitable[None]]


class LocationStore(ABC):
    """Контракт хранилища локаций водителей."""

    @abstractmethod
    async def upsert(self, record: DriverLocationRecord) -> DriverLocationRecord:
        """Записать позицию (заменяет предыдущую для поездки). WriteFailed при ошибке."""

    @abstractmethod
    async def fetch_latest(self, trip_id: str) -> DriverLocationRecord | None:
        """Последняя позиция водителя по поездке или None. ReadFailed при ошибке."""

    @abstractmethod
    async def subscribe(
        self,
        trip_id: str,
        on_change: ChangeHandler,
        *,
        on_drop: DropHandler | None = None,
        on_resume: ResumeHandler | None = None,
    ) -> FeedSubscription:
        """Открыть подписку на изменения по поездке. SubscriptionDropped при ошибке."""

    @property
    @abstractmethod
    def active_subscriptions(self) -> int:
        """Число открытых подписок (для контроля утечек)."""


class RedisLocationStore(LocationStore):
    """
    Реализация на Redis.

    Ключи:
    - driver_location:{trip_id}: хеш с последней позицией (TTL)
    Каналы:
    - driver_location:trip:{trip_id}: JSON записи после каждого upsert
    """

    KEY_PREFIX = "driver_location:"
    CHANNEL_PREFIX = "driver_location:trip:"

    def __init__(
        self,
        redis: "RedisClient",
        *,
        ttl: int | None = None,
        hub: RedisFeedHub | None = None,
    ) -> None:
        """
        Args:
            redis: Клиент Redis
            ttl: Время жизни записи позиции (сек); None - без истечения
            hub: Общий подписчик Pub/Sub (по умолчанию собственный)
        """
        self._redis = redis
        self._ttl = ttl
        self._hub = hub or RedisFeedHub(redis)
        self._subscriptions: set[HubSubscription] = set()

    @classmethod
    def from_settings(cls, redis: "RedisClient") -> "RedisLocationStore":
        """Хранилище с параметрами из секции tracking конфигурации."""
        from src.config import settings

        return cls(redis, ttl=settings.tracking.DRIVER_LOCATION_TTL, hub=get_feed_hub())

    @property
    def active_subscriptions(self) -> int:
        return len(self._subscriptions)

    def _key(self, trip_id: str) -> str:
        return f"{self.KEY_PREFIX}{trip_id}"

    def _channel(self, trip_id: str) -> str:
        return f"{self.CHANNEL_PREFIX}{trip_id}"

    async def upsert(self, record: DriverLocationRecord) -> DriverLocationRecord:
        """
        Записать позицию водителя.

        HSET + EXPIRE + PUBLISH выполняются одной транзакцией, чтобы подписчики
        не получили событие о записи, которой нет в хранилище.
        """
        record = record.model_copy(update={"updated_at": utcnow()})
        key = self._redis.key(self._key(record.trip_id))

        try:
            pipe = self._redis.pipeline()
            pipe.hset(key, mapping=record.to_redis_hash())
            if self._ttl:
                pipe.expire(key, self._ttl)
            pipe.publish(self._redis.channel(self._channel(record.trip_id)), record.model_dump_json())
            await pipe.execute()
        except RedisError as e:
            raise WriteFailed(str(e), trip_id=record.trip_id) from e

        await log_info(
            f"Позиция водителя {record.driver_id} записана ({record.latitude}, {record.longitude})",
            type_msg=TypeMsg.DEBUG,
            logger_name="tracking",
            extra={"trip_id": record.trip_id},
        )
        return record

    async def fetch_latest(self, trip_id: str) -> DriverLocationRecord | None:
        """Прочитать последнюю позицию водителя по поездке."""
        try:
            data = await self._redis.hgetall(self._key(trip_id))
        except RedisError as e:
            raise ReadFailed(str(e), trip_id=trip_id) from e

        if not data:
            return None

        try:
            return DriverLocationRecord.from_redis_hash(data)
        except ValidationError as e:
            raise ReadFailed(f"Повреждённая запись позиции: {e}", trip_id=trip_id) from e

    async def subscribe(
        self,
        trip_id: str,
        on_change: ChangeHandler,
        *,
        on_drop: DropHandler | None = None,
        on_resume: ResumeHandler | None = None,
    ) -> FeedSubscription:
        """Подписаться на изменения позиции водителя по поездке."""

        async def handle(payload: dict[str, Any]) -> None:
            try:
                record = DriverLocationRecord.model_validate(payload)
            except ValidationError as e:
                await log_warning(
                    f"Некорректное событие позиции: {e}",
                    logger_name="tracking",
                    extra={"trip_id": trip_id},
                )
                return
            if record.trip_id != trip_id:
                return
            await on_change(record)

        try:
            subscription = await self._hub.subscribe(
                self._channel(trip_id),
                handle,
                on_drop=on_drop,
                on_resume=on_resume,
                on_close=self._subscriptions.discard,
            )
        except RedisError as e:
            raise SubscriptionDropped(str(e), trip_id=trip_id) from e

        self._subscriptions.add(subscription)
        return subscription
