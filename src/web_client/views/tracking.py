# src/web_client/views/tracking.py
"""
Страница отслеживания поездки.

Водитель поездки включает/выключает публикацию своей позиции, пассажир
видит водителя (красный маркер) и себя (синий маркер). Роль берётся из
поездки; посторонним и вне идущей поездки карта не показывается.
Сессия отслеживания и карта освобождаются при отключении клиента.
"""

from __future__ import annotations

from typing import Optional

from nicegui import Client, ui

from src.config import settings
from src.common.localization import get_text
from src.common.logger import log_error, log_info, log_warning
from src.common.constants import NotifyType, TypeMsg
from src.core.tracking import BrowserGeolocationSource, LocationStore, ReadFailed, TrackingSession
from src.core.trips import TripDirectory, resolve_tracking_access
from src.shared.models.location_dto import DriverLocationRecord, Position
from src.shared.models.trip_dto import TripContext
from src.web_client.auth import CurrentUser
from src.web_client.components.header import create_client_header
from src.web_client.components.map_component import MapArena, MapRenderer
from src.web_client.components.notifier import ClientNotifier


class TrackingView:
    def __init__(
        self,
        trip_id: str,
        user: CurrentUser,
        client: Client,
        *,
        store: LocationStore,
        directory: TripDirectory,
        arena: MapArena,
    ) -> None:
        self.trip_id = trip_id
        self.user = user
        self.lang = user.language
        self.client = client
        self.store = store
        self.directory = directory
        self.notifier = ClientNotifier(client, self.lang)
        self.renderer = MapRenderer(arena, lang=self.lang)
        self.trip: Optional[TripContext] = None
        self.session: Optional[TrackingSession] = None
        self.status_label: Optional[ui.label] = None
        self.start_button: Optional[ui.button] = None
        self.stop_button: Optional[ui.button] = None
        self.hint_label: Optional[ui.label] = None

    def _t(self, key: str, **kwargs) -> str:
        return get_text(key, self.lang, **kwargs)

    async def mount(self) -> None:
        create_client_header(self._t("TRACKING_TITLE"))

        try:
            access = await resolve_tracking_access(self.directory, self.trip_id, self.user.id)
        except ReadFailed as e:
            await log_warning(f"Поездка не загружена: {e}", extra={"trip_id": self.trip_id})
            self._show_unavailable("TRACKING_ERROR")
            return

        if not access.allowed:
            await log_info(
                f"Карта поездки недоступна пользователю {self.user.id}: {access.denied_key}",
                type_msg=TypeMsg.DEBUG,
                extra={"trip_id": self.trip_id},
            )
            self._show_unavailable(access.denied_key)
            return

        self.trip = access.trip
        self.session = TrackingSession(
            self.trip_id,
            self.user.id,
            access.role,
            store=self.store,
            source=BrowserGeolocationSource.from_settings(self.client),
            notifier=self.notifier,
            interval=settings.tracking.PUBLISH_INTERVAL_SECONDS,
            on_driver_position=self._show_driver,
            on_own_position=self._show_own,
            on_tracking_changed=self._refresh_controls,
        )

        with ui.column().classes("w-full max-w-3xl mx-auto p-4 gap-4"):
            if self.session.is_driver:
                with ui.row().classes("items-center gap-2"):
                    self.start_button = ui.button(
                        self._t("START_TRACKING"),
                        icon="my_location",
                        on_click=self._start_tracking,
                    ).props("color=positive")
                    self.stop_button = ui.button(
                        self._t("STOP_TRACKING"),
                        icon="location_disabled",
                        on_click=self.session.stop_tracking,
                    ).props("color=negative")
                self.hint_label = ui.label(self._t("TRACKING_ACTIVE_HINT")).classes("text-sm text-gray-500")
                self._refresh_controls(False)

            map_container = ui.card().classes("w-full h-96 p-0 overflow-hidden")
            self.renderer.ensure_map_mounted(map_container)

            with ui.row().classes("items-center gap-4 text-sm"):
                ui.label(self._t("MAP_LEGEND")).classes("font-semibold")
                ui.label(f"🔴 {self._t('LEGEND_DRIVER')}")
                ui.label(f"🔵 {self._t('LEGEND_VIEWER')}")

            self.status_label = ui.label(self._t("DRIVER_NOT_TRACKED_YET")).classes("text-gray-600")

        self.client.on_disconnect(self.dispose)

        # Геолокации и карте нужен установленный websocket
        await self.client.connected()
        try:
            await self.session.open()
        except Exception as e:
            await log_error(f"Ошибка открытия сессии отслеживания: {e}", extra={"trip_id": self.trip_id}, exc_info=True)
            self.notifier.notify("TRACKING_ERROR", NotifyType.NEGATIVE)

    async def dispose(self) -> None:
        if self.session is not None:
            await self.session.dispose()
        self.renderer.teardown()
        await log_info(f"Экран отслеживания {self.renderer.view_id} закрыт", type_msg=TypeMsg.DEBUG, extra={"trip_id": self.trip_id})

    def _show_unavailable(self, text_key: str) -> None:
        with ui.column().classes("w-full h-full items-center justify-center p-8"):
            ui.icon("location_off", size="4rem", color="gray-400")
            ui.label(self._t(text_key)).classes("text-xl text-gray-500")

    def _start_tracking(self) -> None:
        if self.session.start_tracking():
            self.notifier.notify("LIVE_TRACKING_ACTIVE", NotifyType.POSITIVE)

    def _refresh_controls(self, enabled: bool) -> None:
        if self.session is None or self.session.disposed or self.start_button is None:
            return
        self.start_button.set_visibility(not enabled)
        self.stop_button.set_visibility(enabled)
        self.hint_label.set_visibility(enabled)

    def driver_label(self) -> str:
        """Подпись маркера водителя: имя водителя поездки, если известно."""
        if self.trip is not None and self.trip.driver_name:
            return self.trip.driver_name
        return self._t("LEGEND_DRIVER")

    async def _show_driver(self, record: DriverLocationRecord) -> None:
        await self.renderer.upsert_driver_marker(record.to_position(), self.driver_label(), updated_at=record.updated_at)
        if self.status_label is not None:
            self.status_label.text = self._t("LAST_UPDATED", time=record.updated_at.astimezone().strftime("%H:%M:%S"))

    async def _show_own(self, position: Position) -> None:
        await self.renderer.upsert_viewer_marker(position, self._t("YOUR_LOCATION"))
