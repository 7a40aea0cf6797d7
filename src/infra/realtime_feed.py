# src/infra/realtime_feed.py
"""
Подписки на Redis Pub/Sub каналы сущностей (поездки, бронирования).

Один RedisFeedHub на процесс держит одно соединение Pub/Sub и одну
задачу-слушателя для всех каналов. Экраны получают лёгкие регистрации
(HubSubscription): close() снимает обработчик, а канал отписывается,
когда на нём не остаётся обработчиков.

При обрыве соединения хаб переподключается с экспоненциальной
задержкой (с верхней границей) и переподписывает все каналы.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterator

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from src.common.logger import log_error, log_info, log_warning
from src.common.constants import TypeMsg

if TYPE_CHECKING:
    from redis.asyncio.client import PubSub

    from src.infra.redis_client import RedisClient


MessageHandler = Callable[[dict[str, Any]], Awaitable[None]]
DropHandler = Callable[[Exception], Awaitable[None]]
ResumeHandler = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class Backoff:
    """Политика задержек переподключения: initial, initial*factor, ... но не больше maximum."""
    initial: float = 1.0
    maximum: float = 30.0
    factor: float = 2.0

    def delays(self) -> Iterator[float]:
        delay = self.initial
        while True:
            yield delay
            delay = min(delay * self.factor, self.maximum)


class FeedSubscription(ABC):
    """Активная подписка на канал изменений. close() идемпотентен."""

    @property
    @abstractmethod
    def closed(self) -> bool:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class HubSubscription(FeedSubscription):
    """Обработчики одного экрана, зарегистрированные на канале общего хаба."""

    def __init__(
        self,
        hub: "RedisFeedHub",
        channel: str,
        on_message: MessageHandler,
        *,
        on_drop: DropHandler | None = None,
        on_resume: ResumeHandler | None = None,
        on_close: Callable[["HubSubscription"], None] | None = None,
    ) -> None:
        self.channel = channel
        self.on_message = on_message
        self.on_drop = on_drop
        self.on_resume = on_resume
        self._hub = hub
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Снять обработчики с канала. Повторный вызов ничего не делает."""
        if self._closed:
            return
        self._mark_closed()
        await self._hub._remove(self)

    def _mark_closed(self) -> None:
        self._closed = True
        if self._on_close:
            self._on_close(self)


class RedisFeedHub:
    """
    Общий подписчик Redis Pub/Sub процесса.

    Сообщения (JSON) раздаются обработчикам по имени канала. Ошибка
    любого обработчика (сообщения, обрыва, восстановления) логируется
    и не останавливает слушателя.
    """

    def __init__(
        self,
        redis: "RedisClient",
        *,
        poll_timeout: float = 1.0,
        backoff: Backoff | None = None,
    ) -> None:
        """
        Args:
            redis: Клиент Redis
            poll_timeout: Таймаут ожидания одного сообщения
            backoff: Политика задержек переподключения
        """
        self._redis = redis
        self._poll_timeout = poll_timeout
        self._backoff = backoff or Backoff()

        self._pubsub: "PubSub | None" = None
        self._task: asyncio.Task | None = None
        # Полное имя канала (с namespace) -> регистрации в порядке подписки
        self._handlers: dict[str, list[HubSubscription]] = {}
        self._lock = asyncio.Lock()
        self._reconnecting = False
        self._closed = False

    @classmethod
    def from_settings(cls, redis: "RedisClient") -> "RedisFeedHub":
        """Хаб с параметрами переподключения из секции tracking конфигурации."""
        from src.config import settings

        tracking = settings.tracking
        return cls(
            redis,
            poll_timeout=tracking.FEED_POLL_TIMEOUT_SECONDS,
            backoff=Backoff(
                initial=tracking.FEED_RECONNECT_INITIAL_DELAY,
                maximum=tracking.FEED_RECONNECT_MAX_DELAY,
                factor=tracking.FEED_RECONNECT_FACTOR,
            ),
        )

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def channels(self) -> set[str]:
        """Каналы, на которые хаб сейчас подписан (с namespace)."""
        return set(self._handlers)

    @property
    def subscription_count(self) -> int:
        return sum(len(registrations) for registrations in self._handlers.values())

    # =========================================================================
    # РЕГИСТРАЦИИ
    # =========================================================================

    async def subscribe(
        self,
        channel: str,
        on_message: MessageHandler,
        *,
        on_drop: DropHandler | None = None,
        on_resume: ResumeHandler | None = None,
        on_close: Callable[[HubSubscription], None] | None = None,
    ) -> HubSubscription:
        """
        Зарегистрировать обработчики канала.

        Args:
            channel: Имя канала без namespace
            on_message: Обработчик распарсенного сообщения
            on_drop: Вызывается один раз на каждый обрыв соединения
            on_resume: Вызывается после успешной переподписки
            on_close: Вызывается при закрытии регистрации (учёт активных подписок)

        Raises:
            RedisError: Подписка не удалась или соединение сейчас восстанавливается
        """
        if self._closed:
            raise RuntimeError("Хаб подписок уже закрыт")

        full_channel = self._redis.channel(channel)
        subscription = HubSubscription(
            self,
            full_channel,
            on_message,
            on_drop=on_drop,
            on_resume=on_resume,
            on_close=on_close,
        )

        async with self._lock:
            if self._reconnecting:
                raise RedisConnectionError(f"Канал {full_channel} недоступен: соединение восстанавливается")

            registrations = self._handlers.get(full_channel)
            if registrations is None:
                await self._subscribe_channel(full_channel)
                registrations = self._handlers[full_channel] = []
            registrations.append(subscription)

            if self._task is None:
                self._task = asyncio.create_task(self._listen(), name="feed-hub")

        await log_info(f"Подписка на канал {full_channel} открыта", type_msg=TypeMsg.DEBUG, logger_name="redis")
        return subscription

    async def _subscribe_channel(self, full_channel: str) -> None:
        pubsub = self._pubsub or self._redis.pubsub()
        try:
            await pubsub.subscribe(full_channel)
        except RedisError:
            if not self._handlers:
                # Соединение без каналов слушатель не проверяет: следующая подписка начнёт с нового
                self._pubsub = None
                await pubsub.aclose()
            raise
        self._pubsub = pubsub

    async def _remove(self, subscription: HubSubscription) -> None:
        async with self._lock:
            registrations = self._handlers.get(subscription.channel)
            if not registrations or subscription not in registrations:
                return
            registrations.remove(subscription)
            if registrations:
                return
            del self._handlers[subscription.channel]
            if self._pubsub is None:
                return
            try:
                await self._pubsub.unsubscribe(subscription.channel)
            except RedisError as e:
                await log_warning(f"Ошибка при отписке от {subscription.channel}: {e}", logger_name="redis")

        await log_info(f"Подписка на канал {subscription.channel} закрыта", type_msg=TypeMsg.DEBUG, logger_name="redis")

    async def close(self) -> None:
        """Остановить слушателя, закрыть соединение и все регистрации."""
        if self._closed:
            return
        self._closed = True

        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        pubsub, self._pubsub = self._pubsub, None
        if pubsub is not None:
            await self._release(pubsub)

        handlers, self._handlers = self._handlers, {}
        for registrations in handlers.values():
            for subscription in registrations:
                subscription._mark_closed()
        await log_info("Хаб подписок Redis закрыт", type_msg=TypeMsg.INFO, logger_name="redis")

    # =========================================================================
    # СЛУШАТЕЛЬ
    # =========================================================================

    async def _listen(self) -> None:
        """Слушать сообщения до закрытия хаба."""
        while not self._closed:
            if self._pubsub is None or not self._handlers:
                await asyncio.sleep(self._poll_timeout)
                continue

            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=self._poll_timeout,
                )
            except RedisError as e:
                await self._reconnect(e)
                continue

            if message is None:
                continue

            await self._dispatch(message)

    async def _dispatch(self, message: dict[str, Any]) -> None:
        """Распарсить сообщение и передать его обработчикам канала."""
        if message.get("type") not in ("message", "pmessage"):
            return

        channel = message.get("channel", "")
        if isinstance(channel, bytes):
            channel = channel.decode("utf-8")
        registrations = list(self._handlers.get(channel, ()))
        if not registrations:
            return

        data = message.get("data", "")
        if isinstance(data, bytes):
            data = data.decode("utf-8")

        try:
            payload = json.loads(data)
        except (json.JSONDecodeError, TypeError):
            await log_warning(f"Некорректное сообщение в {channel}: {data!r}", logger_name="redis")
            return

        if not isinstance(payload, dict):
            await log_warning(f"Неожиданный формат сообщения в {channel}", logger_name="redis")
            return

        for subscription in registrations:
            if not subscription.closed:
                await self._call(subscription, subscription.on_message, payload)

    async def _call(self, subscription: HubSubscription, callback: Callable[..., Awaitable[None]] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            await callback(*args)
        except Exception as e:
            await log_error(
                f"Ошибка обработчика канала {subscription.channel}: {e}",
                logger_name="redis",
                exc_info=True,
            )

    def _registrations(self) -> list[HubSubscription]:
        return [s for registrations in self._handlers.values() for s in registrations]

    async def _reconnect(self, error: Exception) -> None:
        """Переподписать все каналы с нарастающей задержкой."""
        self._reconnecting = True
        await log_warning(f"Соединение Pub/Sub потеряно: {error}", logger_name="redis")

        pubsub, self._pubsub = self._pubsub, None
        if pubsub is not None:
            await self._release(pubsub)

        for subscription in self._registrations():
            await self._call(subscription, subscription.on_drop, error)

        for delay in self._backoff.delays():
            await asyncio.sleep(delay)
            if self._closed:
                return
            try:
                async with self._lock:
                    channels = list(self._handlers)
                    if channels:
                        pubsub = self._redis.pubsub()
                        try:
                            await pubsub.subscribe(*channels)
                        except RedisError:
                            await pubsub.aclose()
                            raise
                        self._pubsub = pubsub
                    self._reconnecting = False
            except RedisError as e:
                await log_warning(
                    f"Переподписка не удалась, следующая через ≤{self._backoff.maximum}с: {e}",
                    logger_name="redis",
                )
                continue

            await log_info(f"Соединение Pub/Sub восстановлено ({len(channels)} каналов)", type_msg=TypeMsg.INFO, logger_name="redis")
            for subscription in self._registrations():
                await self._call(subscription, subscription.on_resume)
            return

    async def _release(self, pubsub: "PubSub") -> None:
        try:
            await pubsub.unsubscribe()
            await pubsub.aclose()
        except RedisError as e:
            # Соединение уже мертво: освобождать на сервере нечего
            await log_warning(f"Ошибка при закрытии Pub/Sub: {e}", logger_name="redis")


# =============================================================================
# ХАБ ПРОЦЕССА
# =============================================================================

_hub: RedisFeedHub | None = None


def get_feed_hub() -> RedisFeedHub:
    """Общий хаб подписок процесса (поверх глобального RedisClient)."""
    global _hub
    if _hub is None:
        from src.infra.redis_client import get_redis
        _hub = RedisFeedHub.from_settings(get_redis())
    return _hub


async def close_feed_hub() -> None:
    """Закрывает общий хаб подписок."""
    global _hub
    hub, _hub = _hub, None
    if hub is not None:
        await hub.close()
