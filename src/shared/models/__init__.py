# src/shared/models/__init__.py
"""
Общие DTO и Pydantic-модели.
"""

from src.shared.models.location_dto import (
    Position,
    DriverLocationRecord,
    DriverLocationUpdate,
)
from src.shared.models.chat_dto import ChatMessage
from src.shared.models.trip_dto import (
    TripStatus,
    TripContext,
    TripContextUpdate,
    BookingContext,
    BookingContextUpdate,
)
from src.shared.models.common import (
    ErrorResponse,
    HealthStatus,
)

__all__ = [
    # Location
    "Position",
    "DriverLocationRecord",
    "DriverLocationUpdate",
    # Chat
    "ChatMessage",
    # Trips
    "TripStatus",
    "TripContext",
    "TripContextUpdate",
    "BookingContext",
    "BookingContextUpdate",
    # Common
    "ErrorResponse",
    "HealthStatus",
]
