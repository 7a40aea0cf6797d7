# src/shared/models/chat_dto.py
"""
Сообщение чата бронирования.
"""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from src.shared.models.location_dto import utcnow


class ChatMessage(BaseModel):
    """Сообщение между водителем и пассажиром в рамках бронирования."""
    id: str = Field(default_factory=lambda: uuid4().hex)
    booking_id: str = Field(..., min_length=1)
    sender_id: str = Field(..., min_length=1)
    sender_name: str | None = None
    content: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utcnow)
