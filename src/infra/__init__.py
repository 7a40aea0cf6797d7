# src/infra/__init__.py
"""
Инфраструктурный слой.
Работа с Redis: хранилище, списки, Pub/Sub подписки.
"""

from src.infra.redis_client import RedisClient, get_redis, init_redis, close_redis
from src.infra.realtime_feed import (
    Backoff,
    FeedSubscription,
    HubSubscription,
    RedisFeedHub,
    get_feed_hub,
    close_feed_hub,
)

__all__ = [
    "RedisClient",
    "get_redis",
    "init_redis",
    "close_redis",
    "Backoff",
    "FeedSubscription",
    "HubSubscription",
    "RedisFeedHub",
    "get_feed_hub",
    "close_feed_hub",
]
