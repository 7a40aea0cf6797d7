# src/web_client/components/header.py
"""
Компонент шапки для клиентского интерфейса.
"""

from __future__ import annotations

from nicegui import ui

from src.config import settings


def create_client_header(title: str | None = None) -> None:
    """Создаёт шапку страницы для клиента."""
    with ui.header().classes("items-center justify-between bg-blue-600 text-white"):
        with ui.row().classes("items-center gap-4"):
            ui.label(f"🚗 {settings.web.WEB_TITLE}").classes("text-xl font-bold")

        if title:
            ui.label(title).classes("text-lg")
