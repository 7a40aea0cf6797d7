# src/web_client/api.py
"""
HTTP API веб-клиента (монтируется в приложение NiceGUI).

Endpoints:
- GET /api/v1/health - здоровье веб-клиента и Redis
- GET /api/v1/trips/{trip_id}/driver-location - последняя позиция водителя
- PUT /api/v1/trips/{trip_id}/driver-location - обновить позицию водителя (только водитель поездки)
- PUT /api/v1/trips/{trip_id} - зарегистрировать или обновить поездку
- PUT /api/v1/bookings/{booking_id} - зарегистрировать бронирование
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from src.config import settings
from src.common.logger import log_warning
from src.core.tracking import LocationStore, ReadFailed, RedisLocationStore, WriteFailed
from src.core.trips import RedisTripDirectory, TripDirectory
from src.infra.redis_client import RedisClient, get_redis
from src.shared.models.common import ErrorResponse, HealthStatus
from src.shared.models.location_dto import DriverLocationRecord, DriverLocationUpdate
from src.shared.models.trip_dto import BookingContext, BookingContextUpdate, TripContext, TripContextUpdate


router = APIRouter(prefix="/api/v1")


# === DEPENDENCIES ===

_store: LocationStore | None = None
_directory: TripDirectory | None = None


def get_location_store() -> LocationStore:
    """Хранилище локаций процесса веб-клиента."""
    global _store
    if _store is None:
        _store = RedisLocationStore.from_settings(get_redis())
    return _store


def get_trip_directory() -> TripDirectory:
    """Справочник поездок процесса веб-клиента."""
    global _directory
    if _directory is None:
        _directory = RedisTripDirectory(get_redis())
    return _directory


# === HEALTH CHECK ===

@router.get("/health", response_model=HealthStatus, tags=["Health"])
async def health_check(redis: RedisClient = Depends(get_redis)) -> HealthStatus:
    """Проверка здоровья сервиса."""
    redis_ok = redis.is_connected and await redis.health_check()
    return HealthStatus(
        service=settings.system.PROJECT_NAME,
        status="healthy" if redis_ok else "degraded",
        version=settings.system.VERSION,
        dependencies={"redis": "healthy" if redis_ok else "unavailable"},
    )


# === DRIVER LOCATION ===

@router.get(
    "/trips/{trip_id}/driver-location",
    response_model=DriverLocationRecord,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Tracking"],
    summary="Последняя позиция водителя",
)
async def get_driver_location(
    trip_id: str,
    store: LocationStore = Depends(get_location_store),
) -> DriverLocationRecord:
    """Получить последнюю известную позицию водителя по поездке."""
    try:
        record = await store.fetch_latest(trip_id)
    except ReadFailed as e:
        await log_warning(f"Чтение позиции через API не удалось: {e}", extra={"trip_id": trip_id})
        raise HTTPException(status_code=503, detail="Location store unavailable") from e

    if record is None:
        raise HTTPException(status_code=404, detail="Driver location not found")
    return record


@router.put(
    "/trips/{trip_id}/driver-location",
    response_model=DriverLocationRecord,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Tracking"],
    summary="Обновить позицию водителя",
)
async def put_driver_location(
    trip_id: str,
    update: DriverLocationUpdate,
    store: LocationStore = Depends(get_location_store),
    directory: TripDirectory = Depends(get_trip_directory),
) -> DriverLocationRecord:
    """
    Обновить позицию водителя (клиенты без браузерной геолокации).

    Публиковать может только водитель поездки. Запись заменяет
    предыдущую и рассылается подписчикам поездки.
    """
    try:
        trip = await directory.get_trip(trip_id)
    except ReadFailed as e:
        await log_warning(f"Чтение поездки через API не удалось: {e}", extra={"trip_id": trip_id})
        raise HTTPException(status_code=503, detail="Trip directory unavailable") from e

    if trip is None:
        raise HTTPException(status_code=404, detail="Trip not found")
    if not trip.is_driver(update.driver_id):
        await log_warning(f"Позицию поездки пытается опубликовать не её водитель: {update.driver_id}", extra={"trip_id": trip_id})
        raise HTTPException(status_code=403, detail="Only the trip driver can publish its location")

    record = DriverLocationRecord.from_position(trip_id, update.driver_id, update.to_position())
    try:
        return await store.upsert(record)
    except WriteFailed as e:
        await log_warning(f"Запись позиции через API не удалась: {e}", extra={"trip_id": trip_id})
        raise HTTPException(status_code=503, detail="Location store unavailable") from e


# === TRIPS & BOOKINGS ===

@router.put(
    "/trips/{trip_id}",
    response_model=TripContext,
    responses={503: {"model": ErrorResponse}},
    tags=["Trips"],
    summary="Зарегистрировать или обновить поездку",
)
async def put_trip(
    trip_id: str,
    update: TripContextUpdate,
    directory: TripDirectory = Depends(get_trip_directory),
) -> TripContext:
    """Водитель, его имя для карты и статус поездки."""
    trip = TripContext(trip_id=trip_id, **update.model_dump())
    try:
        await directory.save_trip(trip)
    except WriteFailed as e:
        await log_warning(f"Запись поездки через API не удалась: {e}", extra={"trip_id": trip_id})
        raise HTTPException(status_code=503, detail="Trip directory unavailable") from e
    return trip


@router.put(
    "/bookings/{booking_id}",
    response_model=BookingContext,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Trips"],
    summary="Зарегистрировать бронирование",
)
async def put_booking(
    booking_id: str,
    update: BookingContextUpdate,
    directory: TripDirectory = Depends(get_trip_directory),
) -> BookingContext:
    booking = BookingContext(booking_id=booking_id, **update.model_dump())
    try:
        if await directory.get_trip(booking.trip_id) is None:
            raise HTTPException(status_code=404, detail="Trip not found")
        await directory.save_booking(booking)
    except (ReadFailed, WriteFailed) as e:
        await log_warning(f"Запись бронирования через API не удалась: {e}", extra={"trip_id": booking.trip_id})
        raise HTTPException(status_code=503, detail="Trip directory unavailable") from e
    return booking
