# src/core/trips/__init__.py
"""
Поездки и бронирования: кто водитель, кто пассажир, идёт ли поездка.
"""

from src.core.trips.repository import TripDirectory, RedisTripDirectory
from src.core.trips.access import TrackingAccess, resolve_tracking_access, can_access_chat

__all__ = [
    "TripDirectory",
    "RedisTripDirectory",
    "TrackingAccess",
    "resolve_tracking_access",
    "can_access_chat",
]
