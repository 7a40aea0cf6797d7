# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("STORAGE_SECRET", "test-storage-secret")

from src.infra.realtime_feed import Backoff, RedisFeedHub
from tests.fakes import InMemoryLocationStore, InMemoryTripDirectory, RecordingNotifier


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture(scope="session")
def lang_dict_path(project_root: Path) -> Path:
    """Путь к файлу локализации."""
    return project_root / "config" / "lang_dict.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "Системные настройки",
        "PROJECT_NAME": "ride_share_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "LOG_LEVEL": "DEBUG",
        "LOG_FORMAT": "colored",
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "REDIS_HOST": "localhost",
        "REDIS_PORT": 6379,
        "REDIS_DB": 1,
        "REDIS_PASSWORD": "",
        "REDIS_NAMESPACE": "rideshare_test",
        "REDIS_MAX_CONNECTIONS": 10,
        "PUBLISH_INTERVAL_SECONDS": 15,
        "GEOLOCATION_TIMEOUT_SECONDS": 10,
        "GEOLOCATION_MAX_AGE_SECONDS": 60,
        "DRIVER_LOCATION_TTL": 600,
        "MAP_DEFAULT_LAT": 33.9716,
        "MAP_DEFAULT_LNG": -6.8498,
        "MAP_DEFAULT_ZOOM": 13,
        "CHAT_HISTORY_LIMIT": 50,
        "WEB_PORT": 8082,
        "DEFAULT_LANGUAGE": "fr",
    }


@pytest.fixture
def mock_lang_dict() -> dict[str, dict[str, str]]:
    """Мок словаря локализации для тестов."""
    return {
        "WELCOME": {
            "ar": "مرحبا!",
            "fr": "Bienvenue !",
            "en": "Welcome!",
        },
        "ERROR": {
            "fr": "Une erreur est survenue",
            "en": "An error occurred",
        },
        "ONLY_FRENCH": {
            "fr": "Seulement en français",
        },
        "GREETING": {
            "ar": "مرحبا، {name}!",
            "fr": "Bonjour, {name} !",
            "en": "Hello, {name}!",
        },
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


@pytest.fixture
def temp_lang_dict_file(tmp_path: Path, mock_lang_dict: dict[str, dict[str, str]]) -> Path:
    """Создаёт временный файл локализации."""
    lang_file = tmp_path / "lang_dict.json"
    lang_file.write_text(json.dumps(mock_lang_dict, ensure_ascii=False, indent=2))
    return lang_file


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_pipeline() -> MagicMock:
    """Мок Redis-пайплайна: команды накапливаются, execute() асинхронный."""
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[1, True, 1])
    return pipe


@pytest.fixture
def mock_pubsub() -> MagicMock:
    """Мок Redis Pub/Sub."""
    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()

    async def no_message(**kwargs):
        # Как get_message(timeout=...): ждём и ничего не получаем
        await asyncio.sleep(0.005)
        return None

    pubsub.get_message = AsyncMock(side_effect=no_message)
    return pubsub


@pytest.fixture
def mock_redis(mock_pipeline: MagicMock, mock_pubsub: MagicMock) -> MagicMock:
    """Мок RedisClient (ключи и каналы с префиксом test:)."""
    redis = MagicMock()
    redis.hgetall = AsyncMock(return_value={})
    redis.lrange = AsyncMock(return_value=[])
    redis.health_check = AsyncMock(return_value=True)
    redis.is_connected = True
    redis.pipeline = MagicMock(return_value=mock_pipeline)
    redis.pubsub = MagicMock(return_value=mock_pubsub)
    redis.key = MagicMock(side_effect=lambda key: f"test:{key}")
    redis.channel = MagicMock(side_effect=lambda channel: f"test:{channel}")
    return redis


@pytest_asyncio.fixture
async def feed_hub(mock_redis: MagicMock) -> RedisFeedHub:
    """Хаб подписок поверх мока Redis с короткими таймаутами."""
    hub = RedisFeedHub(mock_redis, poll_timeout=0.01, backoff=Backoff(initial=0.01, maximum=0.02))
    yield hub
    await hub.close()


# =============================================================================
# ФЕЙКИ ОТСЛЕЖИВАНИЯ
# =============================================================================

@pytest.fixture
def store() -> InMemoryLocationStore:
    """Хранилище локаций в памяти."""
    return InMemoryLocationStore()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def directory() -> InMemoryTripDirectory:
    """Идущая поездка trip-1 (водитель driver-1) с бронированием b-1 пассажира u-1."""
    directory = InMemoryTripDirectory()
    directory.add_trip("trip-1", "driver-1", driver_name="Karim")
    directory.add_booking("b-1", "trip-1", "u-1")
    return directory
