# src/core/chat/__init__.py
"""
Чат водителя и пассажира по бронированию.
"""

from src.core.chat.service import ChatService, ChatRoom

__all__ = ["ChatService", "ChatRoom"]
