# src/web_client/views/chat.py
"""
Страница чата бронирования.
"""

from __future__ import annotations

from typing import Optional

from nicegui import Client, ui

from src.common.localization import get_text
from src.core.chat import ChatRoom, ChatService
from src.core.trips import TripDirectory
from src.shared.models.chat_dto import ChatMessage
from src.web_client.auth import CurrentUser
from src.web_client.components.header import create_client_header
from src.web_client.components.notifier import ClientNotifier


class ChatView:
    def __init__(
        self,
        booking_id: str,
        user: CurrentUser,
        client: Client,
        *,
        service: ChatService,
        directory: TripDirectory,
    ) -> None:
        self.booking_id = booking_id
        self.user = user
        self.lang = user.language
        self.client = client
        self.room = ChatRoom(
            booking_id,
            user.id,
            service,
            directory=directory,
            user_name=user.name,
            notifier=ClientNotifier(client, self.lang),
            on_message=self._render_message,
        )
        self.messages_column: Optional[ui.column] = None
        self.empty_label: Optional[ui.label] = None
        self.input: Optional[ui.input] = None

    def _t(self, key: str, **kwargs) -> str:
        return get_text(key, self.lang, **kwargs)

    async def mount(self) -> None:
        create_client_header(self._t("CHAT_TITLE"))

        with ui.column().classes("w-full max-w-2xl mx-auto p-4 gap-2"):
            self.messages_column = ui.column().classes("w-full gap-1")
            with ui.row().classes("w-full items-center"):
                self.input = ui.input(placeholder=self._t("CHAT_PLACEHOLDER")).classes("flex-grow")
                self.input.on("keydown.enter", self._send)
                ui.button(self._t("CHAT_SEND"), icon="send", on_click=self._send)

        self.client.on_disconnect(self.room.close)
        await self.client.connected()
        await self.room.open()

        if not self.room.allowed:
            self.input.disable()
            with self.messages_column:
                ui.label(self._t("CHAT_ACCESS_DENIED")).classes("text-gray-500")
            return

        if not self.room.messages:
            with self.messages_column:
                self.empty_label = ui.label(self._t("CHAT_EMPTY")).classes("text-gray-500")

    async def _send(self) -> None:
        if await self.room.send(self.input.value or ""):
            self.input.value = ""

    async def _render_message(self, message: ChatMessage) -> None:
        if self.messages_column is None:
            return
        if self.empty_label is not None:
            self.empty_label.delete()
            self.empty_label = None
        with self.messages_column:
            ui.chat_message(
                message.content,
                name=message.sender_name,
                stamp=message.created_at.astimezone().strftime("%H:%M"),
                sent=message.sender_id == self.user.id,
            )
