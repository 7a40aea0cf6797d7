# src/shared/models/trip_dto.py
"""
Контекст поездки и бронирования, нужный отслеживанию и чату.

Поездки и бронирования ведёт основное приложение; веб-клиент читает
только водителя, статус и пассажиров, чтобы решать, кто публикует
позицию и кто допущен к карте и чату.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from src.common.constants import TrackingRole


class TripStatus(str, Enum):
    """Статус поездки."""
    SCHEDULED = "scheduled"  # Поездка запланирована
    IN_PROGRESS = "in_progress"  # Поездка идёт, карта доступна
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TripContext(BaseModel):
    """Поездка: кто её водитель и идёт ли она сейчас."""
    trip_id: str = Field(..., min_length=1)
    driver_id: str = Field(..., min_length=1)
    driver_name: str | None = None
    status: TripStatus = TripStatus.SCHEDULED

    @property
    def is_ongoing(self) -> bool:
        return self.status == TripStatus.IN_PROGRESS

    def is_driver(self, user_id: str) -> bool:
        return self.driver_id == user_id

    def role_of(self, user_id: str) -> TrackingRole:
        """Публикует только водитель этой поездки, все остальные наблюдают."""
        return TrackingRole.DRIVER if self.is_driver(user_id) else TrackingRole.VIEWER

    def to_redis_hash(self) -> dict[str, str]:
        data = {
            "trip_id": self.trip_id,
            "driver_id": self.driver_id,
            "status": self.status.value,
        }
        if self.driver_name:
            data["driver_name"] = self.driver_name
        return data


class BookingContext(BaseModel):
    """Бронирование места пассажиром в поездке."""
    booking_id: str = Field(..., min_length=1)
    trip_id: str = Field(..., min_length=1)
    passenger_id: str = Field(..., min_length=1)

    def to_redis_hash(self) -> dict[str, str]:
        return self.model_dump()


class TripContextUpdate(BaseModel):
    """Тело запроса на регистрацию/обновление поездки через HTTP API."""
    driver_id: str = Field(..., min_length=1)
    driver_name: str | None = None
    status: TripStatus = TripStatus.SCHEDULED


class BookingContextUpdate(BaseModel):
    """Тело запроса на регистрацию бронирования через HTTP API."""
    trip_id: str = Field(..., min_length=1)
    passenger_id: str = Field(..., min_length=1)
