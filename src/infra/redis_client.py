# src/infra/redis_client.py
"""
Клиент Redis: хранилище последних локаций, история чата и Pub/Sub каналы.
"""

from __future__ import annotations

import redis.asyncio as redis
from redis.asyncio.client import PubSub, Pipeline

from src.common.logger import log_error, log_info
from src.common.constants import TypeMsg


class RedisClient:
    """
    Асинхронный клиент Redis.
    Все ключи и каналы автоматически получают префикс namespace.
    """

    _instance: RedisClient | None = None
    _client: redis.Redis | None = None

    def __new__(cls) -> RedisClient:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Инициализация (выполняется один раз благодаря Singleton)."""
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._client = None
        self._namespace = "rideshare"

    @property
    def client(self) -> redis.Redis:
        """Возвращает клиент Redis."""
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _make_key(self, key: str) -> str:
        """Добавляет namespace к ключу или каналу."""
        return f"{self._namespace}:{key}"

    async def connect(
        self,
        url: str | None = None,
        max_connections: int = 50,
        namespace: str | None = None,
    ) -> None:
        """
        Подключается к Redis.

        Args:
            url: URL Redis (если None, берётся из конфига)
            max_connections: Максимальное количество соединений
            namespace: Префикс ключей
        """
        if self._client is not None:
            return

        if url is None:
            from src.config import settings
            url = settings.redis.url
            max_connections = settings.redis.REDIS_MAX_CONNECTIONS
            namespace = settings.redis.REDIS_NAMESPACE

        if namespace:
            self._namespace = namespace

        await log_info("Подключение к Redis...", type_msg=TypeMsg.INFO, logger_name="redis")

        self._client = redis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True,
        )
        await self._client.ping()

        await log_info("Подключение к Redis установлено", type_msg=TypeMsg.INFO, logger_name="redis")

    async def disconnect(self) -> None:
        """Закрывает соединение с Redis."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            await log_info("Соединение с Redis закрыто", type_msg=TypeMsg.INFO, logger_name="redis")

    # =========================================================================
    # HASH ОПЕРАЦИИ
    # =========================================================================

    async def hgetall(self, name: str) -> dict[str, str]:
        """Получает все поля хеша."""
        return await self.client.hgetall(self._make_key(name))

    # =========================================================================
    # МНОЖЕСТВА
    # =========================================================================

    async def sismember(self, key: str, member: str) -> bool:
        """Проверяет, входит ли элемент в множество."""
        return bool(await self.client.sismember(self._make_key(key), member))

    # =========================================================================
    # СПИСКИ
    # =========================================================================

    async def lrange(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        """Возвращает срез списка."""
        return await self.client.lrange(self._make_key(key), start, end)

    # =========================================================================
    # ПАЙПЛАЙН И PUB/SUB
    # =========================================================================

    def pipeline(self, transaction: bool = True) -> Pipeline:
        """Пайплайн (MULTI/EXEC) поверх клиента. Ключи префиксуются вызывающим через key()."""
        return self.client.pipeline(transaction=transaction)

    def key(self, key: str) -> str:
        """Полное имя ключа с namespace (для пайплайнов)."""
        return self._make_key(key)

    def channel(self, channel: str) -> str:
        """Полное имя канала Pub/Sub с namespace."""
        return self._make_key(channel)

    def pubsub(self) -> PubSub:
        """Новый объект Pub/Sub (одно соединение на хаб подписок процесса)."""
        return self.client.pubsub()

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    async def health_check(self) -> bool:
        """Проверяет здоровье подключения к Redis."""
        try:
            return bool(await self.client.ping())
        except Exception as e:
            await log_error(f"Health check Redis failed: {e}", logger_name="redis")
            return False


def get_redis() -> RedisClient:
    """Возвращает глобальный экземпляр RedisClient."""
    return RedisClient()


async def init_redis() -> None:
    """Инициализирует подключение к Redis по настройкам конфигурации."""
    from src.config import settings

    redis_client = get_redis()
    await redis_client.connect(
        url=settings.redis.url,
        max_connections=settings.redis.REDIS_MAX_CONNECTIONS,
        namespace=settings.redis.REDIS_NAMESPACE,
    )
    await log_info(
        f"Redis подключён: {settings.redis.REDIS_HOST}:{settings.redis.REDIS_PORT}/{settings.redis.REDIS_DB}",
        type_msg=TypeMsg.INFO,
    )


async def close_redis() -> None:
    """Закрывает подключение к Redis."""
    await get_redis().disconnect()
