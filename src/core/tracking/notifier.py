# src/core/tracking/notifier.py
"""
Уведомления пользователю (всплывающие сообщения).

Ядро передаёт только ключ локализации и уровень, текст и способ показа
определяет веб-клиент.
"""

from __future__ import annotations

from typing import Protocol

from src.common.constants import NotifyType


class Notifier(Protocol):
    """Получатель пользовательских уведомлений."""

    def notify(self, text_key: str, level: NotifyType = NotifyType.INFO) -> None:
        ...


class NullNotifier:
    """Уведомления никуда не выводятся (фоновые задачи, API)."""

    def notify(self, text_key: str, level: NotifyType = NotifyType.INFO) -> None:
        return None
