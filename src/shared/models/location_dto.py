# src/shared/models/location_dto.py
"""
Модели геолокации: позиция устройства и последняя известная позиция водителя по поездке.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Position(BaseModel):
    """
    Позиция устройства.

    Эфемерна: хранится только "последняя известная", без истории.
    """
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    captured_at: datetime = Field(default_factory=utcnow)
    accuracy: float | None = Field(default=None, ge=0)  # метры

    @property
    def latlng(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


class DriverLocationRecord(BaseModel):
    """
    Текущая позиция водителя в поездке.

    Записи хранятся по trip_id: на поездку хранится одна запись, каждая новая запись
    заменяет предыдущую (last-writer-wins).
    """
    trip_id: str = Field(..., min_length=1)
    driver_id: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    captured_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_position(cls, trip_id: str, driver_id: str, position: Position) -> "DriverLocationRecord":
        return cls(
            trip_id=trip_id,
            driver_id=driver_id,
            latitude=position.latitude,
            longitude=position.longitude,
            captured_at=position.captured_at,
        )

    def to_position(self) -> Position:
        return Position(
            latitude=self.latitude,
            longitude=self.longitude,
            captured_at=self.captured_at,
        )

    def to_redis_hash(self) -> dict[str, str]:
        """Плоское представление для HSET."""
        return {
            "trip_id": self.trip_id,
            "driver_id": self.driver_id,
            "latitude": repr(self.latitude),
            "longitude": repr(self.longitude),
            "captured_at": self.captured_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_redis_hash(cls, data: dict[str, str]) -> "DriverLocationRecord":
        """Обратное преобразование результата HGETALL (строки валидирует pydantic)."""
        return cls.model_validate(data)


class DriverLocationUpdate(BaseModel):
    """Тело запроса на обновление позиции водителя через HTTP API."""
    driver_id: str = Field(..., min_length=1)
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    accuracy: float | None = Field(default=None, ge=0)
    captured_at: datetime | None = None

    def to_position(self) -> Position:
        return Position(
            latitude=self.lat,
            longitude=self.lon,
            accuracy=self.accuracy,
            captured_at=self.captured_at or utcnow(),
        )
