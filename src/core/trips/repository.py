# src/core/trips/repository.py
"""
Справочник поездок и бронирований в Redis.

Ключи:
- trip:{trip_id}: хеш поездки (driver_id, driver_name, status)
- trip:{trip_id}:passengers: множество id пассажиров с бронированием
- booking:{booking_id}: хеш бронирования (trip_id, passenger_id)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from pydantic import ValidationError
from redis.exceptions import RedisError

from src.common.logger import log_info
from src.common.constants import TypeMsg
from src.core.tracking.errors import ReadFailed, WriteFailed
from src.shared.models.trip_dto import BookingContext, TripContext

if TYPE_CHECKING:
    from src.infra.redis_client import RedisClient


class TripDirectory(ABC):
    """Контракт справочника поездок."""

    @abstractmethod
    async def get_trip(self, trip_id: str) -> TripContext | None:
        """Поездка или None. ReadFailed при ошибке."""

    @abstractmethod
    async def get_booking(self, booking_id: str) -> BookingContext | None:
        """Бронирование или None. ReadFailed при ошибке."""

    @abstractmethod
    async def is_passenger(self, trip_id: str, user_id: str) -> bool:
        """Есть ли у пользователя бронирование в поездке. ReadFailed при ошибке."""

    @abstractmethod
    async def save_trip(self, trip: TripContext) -> None:
        """Записать поездку. WriteFailed при ошибке."""

    @abstractmethod
    async def save_booking(self, booking: BookingContext) -> None:
        """Записать бронирование и добавить пассажира в поездку. WriteFailed при ошибке."""


class RedisTripDirectory(TripDirectory):
    """Реализация на Redis."""

    def __init__(self, redis: "RedisClient") -> None:
        self._redis = redis

    @staticmethod
    def _trip_key(trip_id: str) -> str:
        return f"trip:{trip_id}"

    @staticmethod
    def _passengers_key(trip_id: str) -> str:
        return f"trip:{trip_id}:passengers"

    @staticmethod
    def _booking_key(booking_id: str) -> str:
        return f"booking:{booking_id}"

    async def get_trip(self, trip_id: str) -> TripContext | None:
        try:
            data = await self._redis.hgetall(self._trip_key(trip_id))
        except RedisError as e:
            raise ReadFailed(str(e), trip_id=trip_id) from e

        if not data:
            return None
        try:
            return TripContext.model_validate(data)
        except ValidationError as e:
            raise ReadFailed(f"Повреждённая запись поездки: {e}", trip_id=trip_id) from e

    async def get_booking(self, booking_id: str) -> BookingContext | None:
        try:
            data = await self._redis.hgetall(self._booking_key(booking_id))
        except RedisError as e:
            raise ReadFailed(str(e)) from e

        if not data:
            return None
        try:
            return BookingContext.model_validate(data)
        except ValidationError as e:
            raise ReadFailed(f"Повреждённая запись бронирования {booking_id}: {e}") from e

    async def is_passenger(self, trip_id: str, user_id: str) -> bool:
        try:
            return bool(await self._redis.sismember(self._passengers_key(trip_id), user_id))
        except RedisError as e:
            raise ReadFailed(str(e), trip_id=trip_id) from e

    async def save_trip(self, trip: TripContext) -> None:
        key = self._redis.key(self._trip_key(trip.trip_id))
        try:
            pipe = self._redis.pipeline()
            # driver_name может быть снят: хеш пишется целиком
            pipe.delete(key)
            pipe.hset(key, mapping=trip.to_redis_hash())
            await pipe.execute()
        except RedisError as e:
            raise WriteFailed(str(e), trip_id=trip.trip_id) from e

        await log_info(
            f"Поездка {trip.trip_id} записана (водитель {trip.driver_id}, {trip.status.value})",
            type_msg=TypeMsg.DEBUG,
            logger_name="tracking",
            extra={"trip_id": trip.trip_id},
        )

    async def save_booking(self, booking: BookingContext) -> None:
        try:
            pipe = self._redis.pipeline()
            pipe.hset(self._redis.key(self._booking_key(booking.booking_id)), mapping=booking.to_redis_hash())
            pipe.sadd(self._redis.key(self._passengers_key(booking.trip_id)), booking.passenger_id)
            await pipe.execute()
        except RedisError as e:
            raise WriteFailed(str(e), trip_id=booking.trip_id) from e

        await log_info(
            f"Бронирование {booking.booking_id} записано (пассажир {booking.passenger_id})",
            type_msg=TypeMsg.DEBUG,
            logger_name="tracking",
            extra={"trip_id": booking.trip_id},
        )
