# src/core/trips/access.py
"""
Допуск пользователя к карте поездки и к чату бронирования.

Роль на карте определяется поездкой, а не ролью аккаунта: публикует
только водитель этой поездки, пассажиры с бронированием наблюдают,
остальные не допускаются.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.common.constants import TrackingRole
from src.core.trips.repository import TripDirectory
from src.shared.models.trip_dto import TripContext


@dataclass(frozen=True)
class TrackingAccess:
    """Результат проверки допуска к карте поездки."""
    trip: TripContext | None
    role: TrackingRole | None = None
    denied_key: str | None = None  # ключ локализации причины отказа

    @property
    def allowed(self) -> bool:
        return self.denied_key is None


async def resolve_tracking_access(directory: TripDirectory, trip_id: str, user_id: str) -> TrackingAccess:
    """
    Определить роль пользователя в поездке.

    Карта доступна водителю поездки и её пассажирам, и только пока
    поездка идёт.

    Raises:
        ReadFailed: Справочник поездок недоступен
    """
    trip = await directory.get_trip(trip_id)
    if trip is None:
        return TrackingAccess(trip=None, denied_key="TRIP_NOT_FOUND")

    if trip.is_driver(user_id):
        role = TrackingRole.DRIVER
    elif await directory.is_passenger(trip_id, user_id):
        role = TrackingRole.VIEWER
    else:
        return TrackingAccess(trip=trip, denied_key="TRIP_ACCESS_DENIED")

    if not trip.is_ongoing:
        return TrackingAccess(trip=trip, role=role, denied_key="TRIP_NOT_ONGOING")
    return TrackingAccess(trip=trip, role=role)


async def can_access_chat(directory: TripDirectory, booking_id: str, user_id: str) -> bool:
    """
    Чат бронирования доступен пассажиру бронирования и водителю поездки.

    Raises:
        ReadFailed: Справочник поездок недоступен
    """
    booking = await directory.get_booking(booking_id)
    if booking is None:
        return False
    if booking.passenger_id == user_id:
        return True
    trip = await directory.get_trip(booking.trip_id)
    return trip is not None and trip.is_driver(user_id)
