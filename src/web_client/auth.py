# src/web_client/auth.py
"""
Текущий пользователь веб-клиента.

Пользователь хранится в app.storage.user (id, name, role, language).
В режиме DEBUG без сессии подставляется пользователь разработчика.
"""

from __future__ import annotations

from nicegui import app
from pydantic import BaseModel

from src.config import settings
from src.common.constants import UserRole


class CurrentUser(BaseModel):
    """Пользователь текущей браузерной сессии."""
    id: str
    name: str
    role: UserRole = UserRole.PASSENGER
    language: str = "en"


def authenticate(role_hint: str | None = None) -> CurrentUser | None:
    """
    Вернуть пользователя сессии или None, если вход не выполнен.

    Args:
        role_hint: Роль пользователя разработчика (только DEBUG), например ?as=driver
    """
    storage = app.storage.user

    if settings.system.DEBUG and (not storage.get("id") or role_hint):
        # Пользователь для разработки вне основного приложения
        role = role_hint if role_hint in {r.value for r in UserRole} else storage.get("role", UserRole.PASSENGER.value)
        storage.update({
            "id": f"dev-{role}",
            "name": "Dev Driver" if role == UserRole.DRIVER.value else "Dev Passenger",
            "role": role,
            "language": storage.get("language", settings.web.DEFAULT_LANGUAGE),
        })

    if not storage.get("id"):
        return None

    return CurrentUser(
        id=str(storage["id"]),
        name=storage.get("name") or str(storage["id"]),
        role=storage.get("role", UserRole.PASSENGER.value),
        language=storage.get("language", settings.web.DEFAULT_LANGUAGE),
    )
