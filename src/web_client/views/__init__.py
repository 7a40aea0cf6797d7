# src/web_client/views/__init__.py
"""
Views для клиентского веб-интерфейса.
"""

from . import chat, tracking

__all__ = ["chat", "tracking"]
