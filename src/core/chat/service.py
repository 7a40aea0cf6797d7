# src/core/chat/service.py
"""
Чат бронирования: история в Redis-списке и новые сообщения через Pub/Sub.

Ключи:
- chat:{booking_id}:messages: JSON сообщений, от старых к новым (ограниченный список)
Каналы:
- chat:booking:{booking_id}: JSON каждого нового сообщения
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable

from pydantic import ValidationError
from redis.exceptions import RedisError

from src.common.logger import log_info, log_warning
from src.common.constants import NotifyType, TypeMsg
from src.core.tracking.errors import ReadFailed, SubscriptionDropped, WriteFailed
from src.core.tracking.notifier import Notifier, NullNotifier
from src.core.trips.access import can_access_chat
from src.core.trips.repository import TripDirectory
from src.infra.realtime_feed import FeedSubscription, RedisFeedHub, get_feed_hub
from src.shared.models.chat_dto import ChatMessage

if TYPE_CHECKING:
    from src.infra.redis_client import RedisClient


MessageHandler = Callable[[ChatMessage], Awaitable[None]]


class ChatService:
    """Отправка и чтение сообщений чата."""

    def __init__(
        self,
        redis: "RedisClient",
        *,
        history_limit: int = 200,
        max_length: int = 2000,
        hub: RedisFeedHub | None = None,
    ) -> None:
        self._redis = redis
        self.history_limit = history_limit
        self.max_length = max_length
        self._hub = hub or RedisFeedHub(redis)

    @classmethod
    def from_settings(cls, redis: "RedisClient") -> "ChatService":
        from src.config import settings

        return cls(
            redis,
            history_limit=settings.chat.CHAT_HISTORY_LIMIT,
            max_length=settings.chat.CHAT_MESSAGE_MAX_LENGTH,
            hub=get_feed_hub(),
        )

    @staticmethod
    def _history_key(booking_id: str) -> str:
        return f"chat:{booking_id}:messages"

    @staticmethod
    def _channel(booking_id: str) -> str:
        return f"chat:booking:{booking_id}"

    async def get_history(self, booking_id: str) -> list[ChatMessage]:
        """Последние history_limit сообщений, от старых к новым."""
        try:
            raw = await self._redis.lrange(self._history_key(booking_id), -self.history_limit, -1)
        except RedisError as e:
            raise ReadFailed(str(e)) from e

        messages = []
        for item in raw:
            try:
                messages.append(ChatMessage.model_validate_json(item))
            except ValidationError as e:
                await log_warning(f"Пропущено повреждённое сообщение чата {booking_id}: {e}", logger_name="chat")
        return messages

    async def send_message(
        self,
        booking_id: str,
        sender_id: str,
        content: str,
        sender_name: str | None = None,
    ) -> ChatMessage:
        """
        Сохранить сообщение и разослать его участникам чата.

        Raises:
            ValueError: Пустое (после обрезки пробелов) или слишком длинное сообщение
            WriteFailed: Ошибка Redis
        """
        content = content.strip()
        if not content:
            raise ValueError("Сообщение пустое")
        if len(content) > self.max_length:
            raise ValueError(f"Сообщение длиннее {self.max_length} символов")

        message = ChatMessage(
            booking_id=booking_id,
            sender_id=sender_id,
            sender_name=sender_name,
            content=content,
        )
        payload = message.model_dump_json()
        key = self._redis.key(self._history_key(booking_id))

        try:
            pipe = self._redis.pipeline()
            pipe.rpush(key, payload)
            pipe.ltrim(key, -self.history_limit, -1)
            pipe.publish(self._redis.channel(self._channel(booking_id)), payload)
            await pipe.execute()
        except RedisError as e:
            raise WriteFailed(str(e)) from e

        await log_info(
            f"Сообщение {message.id} отправлено в чат {booking_id}",
            type_msg=TypeMsg.DEBUG,
            logger_name="chat",
        )
        return message

    async def subscribe(
        self,
        booking_id: str,
        on_message: MessageHandler,
        *,
        on_drop: Callable[[Exception], Awaitable[None]] | None = None,
        on_resume: Callable[[], Awaitable[None]] | None = None,
    ) -> FeedSubscription:
        """Подписаться на новые сообщения бронирования."""

        async def handle(payload: dict[str, Any]) -> None:
            try:
                message = ChatMessage.model_validate(payload)
            except ValidationError as e:
                await log_warning(f"Некорректное сообщение чата {booking_id}: {e}", logger_name="chat")
                return
            if message.booking_id == booking_id:
                await on_message(message)

        try:
            return await self._hub.subscribe(
                self._channel(booking_id),
                handle,
                on_drop=on_drop,
                on_resume=on_resume,
            )
        except RedisError as e:
            raise SubscriptionDropped(str(e)) from e


class ChatRoom:
    """
    Чат одного открытого экрана: история, затем подписка.

    Чат доступен только пассажиру бронирования и водителю поездки.
    Отправитель получает своё сообщение и из send(), и из канала,
    поэтому сообщения различаются по id.
    """

    def __init__(
        self,
        booking_id: str,
        user_id: str,
        service: ChatService,
        *,
        directory: TripDirectory,
        user_name: str | None = None,
        notifier: Notifier | None = None,
        on_message: MessageHandler | None = None,
    ) -> None:
        self.booking_id = booking_id
        self.user_id = user_id
        self.user_name = user_name
        self._service = service
        self._directory = directory
        self._notifier = notifier or NullNotifier()
        self._on_message = on_message

        self.messages: list[ChatMessage] = []
        self._seen: set[str] = set()
        self._subscription: FeedSubscription | None = None
        self._allowed = False
        self._opened = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def allowed(self) -> bool:
        """Участие пользователя в бронировании подтверждено."""
        return self._allowed

    async def open(self) -> None:
        """Проверить участие, загрузить историю и подписаться на новые сообщения."""
        if self._opened or self._closed:
            return
        self._opened = True

        if not await self._check_access():
            return

        try:
            history = await self._service.get_history(self.booking_id)
        except ReadFailed as e:
            await log_warning(f"История чата {self.booking_id} не загружена: {e}", logger_name="chat")
            self._notifier.notify("CHAT_LOAD_FAILED", NotifyType.WARNING)
            history = []

        for message in history:
            await self._add(message)

        if self._closed:
            return

        try:
            subscription = await self._service.subscribe(
                self.booking_id,
                self._add,
                on_drop=self._handle_drop,
                on_resume=self._handle_resume,
            )
        except SubscriptionDropped as e:
            await log_warning(f"Подписка на чат {self.booking_id} не открыта: {e}", logger_name="chat")
            self._notifier.notify(e.message_key, NotifyType.WARNING)
            return

        if self._closed:
            await subscription.close()
            return
        self._subscription = subscription

    async def send(self, content: str) -> ChatMessage | None:
        """Отправить сообщение. Ошибки показываются уведомлением, возвращается None."""
        if not self._allowed:
            self._notifier.notify("CHAT_ACCESS_DENIED", NotifyType.NEGATIVE)
            return None

        try:
            message = await self._service.send_message(
                self.booking_id,
                self.user_id,
                content,
                sender_name=self.user_name,
            )
        except ValueError:
            self._notifier.notify("CHAT_MESSAGE_INVALID", NotifyType.WARNING)
            return None
        except WriteFailed as e:
            await log_warning(f"Сообщение в чат {self.booking_id} не отправлено: {e}", logger_name="chat")
            self._notifier.notify("CHAT_SEND_FAILED", NotifyType.NEGATIVE)
            return None

        await self._add(message)
        return message

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()

    async def _check_access(self) -> bool:
        try:
            self._allowed = await can_access_chat(self._directory, self.booking_id, self.user_id)
        except ReadFailed as e:
            await log_warning(f"Участники чата {self.booking_id} не проверены: {e}", logger_name="chat")
            self._notifier.notify("CHAT_LOAD_FAILED", NotifyType.WARNING)
            return False

        if not self._allowed:
            await log_warning(
                f"Пользователь {self.user_id} не участник бронирования {self.booking_id}",
                logger_name="chat",
            )
            self._notifier.notify("CHAT_ACCESS_DENIED", NotifyType.NEGATIVE)
        return self._allowed

    async def _add(self, message: ChatMessage) -> None:
        if self._closed or message.id in self._seen:
            return
        self._seen.add(message.id)
        self.messages.append(message)
        if self._on_message:
            await self._on_message(message)

    async def _handle_drop(self, error: Exception) -> None:
        if not self._closed:
            self._notifier.notify(SubscriptionDropped.message_key, NotifyType.WARNING)

    async def _handle_resume(self) -> None:
        if self._closed:
            return
        self._notifier.notify("FEED_RESTORED", NotifyType.POSITIVE)
        try:
            history = await self._service.get_history(self.booking_id)
        except ReadFailed as e:
            await log_warning(f"История чата {self.booking_id} не перечитана: {e}", logger_name="chat")
            return
        for message in history:
            await self._add(message)
