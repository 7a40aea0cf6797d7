# src/web_client/components/notifier.py
"""
Всплывающие уведомления NiceGUI для фоновых задач отслеживания и чата.
"""

from __future__ import annotations

from nicegui import Client, ui

from src.common.localization import get_text
from src.common.logger import get_logger
from src.common.constants import NotifyType

logger = get_logger("web_client")


class ClientNotifier:
    """
    Показывает уведомления в браузере конкретного клиента.

    Фоновые задачи работают вне контекста страницы, поэтому ui.notify
    вызывается внутри `with client`.
    """

    def __init__(self, client: Client, lang: str = "en") -> None:
        self._client = client
        self.lang = lang

    def notify(self, text_key: str, level: NotifyType = NotifyType.INFO) -> None:
        if self._client.id not in Client.instances:
            logger.debug(f"Уведомление {text_key} для закрытого клиента пропущено")
            return
        with self._client:
            ui.notify(get_text(text_key, self.lang), type=level.value)
