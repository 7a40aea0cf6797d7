# src/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины: config/config.json.
Секретные данные переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации."""
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """Загружает config.json и возвращает словарь без ключей-комментариев."""
    config_path = get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "ride_share_tracking"
    VERSION: str = "0.3.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_FORMAT: str = "colored"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_MAX_BYTES: int = 10485760

    @field_validator("LOG_FORMAT")
    @classmethod
    def check_format(cls, v: str) -> str:
        """Допустимы только json и colored."""
        if v not in ("json", "colored"):
            raise ValueError(f"Неизвестный формат логов: {v}")
        return v


class RedisSettings(BaseModel):
    """Настройки Redis."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_NAMESPACE: str = "rideshare"
    REDIS_MAX_CONNECTIONS: int = 50

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class TrackingSettings(BaseModel):
    """Настройки отслеживания водителя и realtime-канала."""
    PUBLISH_INTERVAL_SECONDS: float = Field(default=30, gt=0)
    GEOLOCATION_TIMEOUT_SECONDS: float = Field(default=10, gt=0)
    GEOLOCATION_MAX_AGE_SECONDS: float = Field(default=60, ge=0)
    GEOLOCATION_HIGH_ACCURACY: bool = True
    # Запас поверх JS-таймаута на доставку ответа из браузера
    GEOLOCATION_JS_MARGIN_SECONDS: float = Field(default=5, ge=0)
    DRIVER_LOCATION_TTL: int = 86400
    FEED_POLL_TIMEOUT_SECONDS: float = Field(default=1.0, gt=0)
    FEED_RECONNECT_INITIAL_DELAY: float = Field(default=1.0, gt=0)
    FEED_RECONNECT_MAX_DELAY: float = Field(default=30.0, gt=0)
    FEED_RECONNECT_FACTOR: float = Field(default=2.0, ge=1)

    @model_validator(mode="after")
    def check_backoff(self) -> "TrackingSettings":
        """Максимальная задержка не может быть меньше начальной."""
        if self.FEED_RECONNECT_MAX_DELAY < self.FEED_RECONNECT_INITIAL_DELAY:
            raise ValueError("FEED_RECONNECT_MAX_DELAY < FEED_RECONNECT_INITIAL_DELAY")
        return self


class MapSettings(BaseModel):
    """Настройки карты (Leaflet + OpenStreetMap)."""
    MAP_DEFAULT_LAT: float = 33.9716
    MAP_DEFAULT_LNG: float = -6.8498
    MAP_DEFAULT_ZOOM: int = 13
    MAP_TILE_URL: str = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
    MAP_TILE_ATTRIBUTION: str = "&copy; OpenStreetMap contributors"
    MAP_DRIVER_ICON_URL: str = ""
    MAP_VIEWER_ICON_URL: str = ""
    MAP_SHADOW_URL: str = ""

    @property
    def default_center(self) -> tuple[float, float]:
        """Центр карты до получения первой позиции."""
        return (self.MAP_DEFAULT_LAT, self.MAP_DEFAULT_LNG)


class ChatSettings(BaseModel):
    """Настройки чата поездки."""
    CHAT_HISTORY_LIMIT: int = Field(default=200, gt=0)
    CHAT_MESSAGE_MAX_LENGTH: int = Field(default=2000, gt=0)


class WebSettings(BaseModel):
    """Настройки веб-клиента NiceGUI."""
    WEB_HOST: str = "0.0.0.0"
    WEB_PORT: int = 8082
    WEB_TITLE: str = "Covoiturage"
    STORAGE_SECRET: str = ""
    DEFAULT_LANGUAGE: str = "ar"

    @field_validator("STORAGE_SECRET", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Секрет хранилища сессий берётся из окружения."""
        if not v:
            return os.getenv("STORAGE_SECRET", "dev-storage-secret")
        return v


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    system: SystemSettings = Field(default_factory=SystemSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    map: MapSettings = Field(default_factory=MapSettings)
    chat: ChatSettings = Field(default_factory=ChatSettings)
    web: WebSettings = Field(default_factory=WebSettings)

    @classmethod
    def from_config_json(cls) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Плоские ключи файла раскладываются по секциям по именам полей,
        секреты и адреса переопределяются из переменных окружения.
        """
        data = load_config_json()

        def section(model: type[BaseModel], **overrides: Any) -> dict[str, Any]:
            values = {name: data[name] for name in model.model_fields if name in data}
            values.update({k: v for k, v in overrides.items() if v})
            return values

        return cls(
            system=SystemSettings(**section(SystemSettings)),
            logging=LoggingSettings(**section(LoggingSettings)),
            redis=RedisSettings(**section(
                RedisSettings,
                REDIS_HOST=os.getenv("REDIS_HOST"),
                REDIS_PORT=os.getenv("REDIS_PORT"),
                REDIS_PASSWORD=os.getenv("REDIS_PASSWORD"),
            )),
            tracking=TrackingSettings(**section(TrackingSettings)),
            map=MapSettings(**section(MapSettings)),
            chat=ChatSettings(**section(ChatSettings)),
            web=WebSettings(**section(
                WebSettings,
                WEB_PORT=os.getenv("WEB_PORT"),
                STORAGE_SECRET=os.getenv("STORAGE_SECRET"),
            )),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Использует кэширование для производительности.
    """
    from dotenv import load_dotenv

    # Загружаем .env файл
    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
