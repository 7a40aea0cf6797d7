# src/web_client/components/map_component.py
"""
Карта поездки на Leaflet (ui.leaflet) с маркерами водителя и наблюдателя.

На каждом смонтированном экране одна карта и не более одного маркера
на слот (MarkerSlot). Замена маркера = удаление старого + добавление нового.
Карты учитываются в MapArena по идентификатору экрана.
"""

from __future__ import annotations

import html
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable

from nicegui import ui

from src.config import settings
from src.common.localization import get_text
from src.common.logger import get_logger, log_info
from src.common.constants import MarkerSlot, TypeMsg
from src.shared.models.location_dto import Position

logger = get_logger("map")


# =============================================================================
# ПОВЕРХНОСТЬ КАРТЫ
# =============================================================================

class MapSurface(ABC):
    """Экземпляр движка карты, привязанный к одному экрану."""

    @abstractmethod
    def add_marker(self, latlng: tuple[float, float], *, icon_url: str, popup: str) -> Any:
        """Добавить маркер, вернуть его дескриптор."""

    @abstractmethod
    def remove_marker(self, marker: Any) -> None:
        ...

    @abstractmethod
    def set_center(self, latlng: tuple[float, float]) -> None:
        ...

    @abstractmethod
    def destroy(self) -> None:
        ...

    async def wait_ready(self) -> None:
        """Дождаться инициализации карты в браузере."""
        return None


class LeafletMapSurface(MapSurface):
    """Карта NiceGUI ui.leaflet с тайлами OpenStreetMap."""

    ICON_OPTIONS = "iconSize: [25, 41], iconAnchor: [12, 41], popupAnchor: [1, -34], shadowSize: [41, 41]"

    def __init__(
        self,
        container: ui.element,
        *,
        center: tuple[float, float] | None = None,
        zoom: int | None = None,
    ) -> None:
        map_settings = settings.map
        self.center = center or map_settings.default_center
        self.zoom = zoom or map_settings.MAP_DEFAULT_ZOOM
        self.shadow_url = map_settings.MAP_SHADOW_URL
        self._ready = False

        with container:
            self.leaflet = ui.leaflet(center=self.center, zoom=self.zoom).classes("w-full h-full")
        self.leaflet.clear_layers()
        self.leaflet.tile_layer(
            url_template=map_settings.MAP_TILE_URL,
            options={"attribution": map_settings.MAP_TILE_ATTRIBUTION, "maxZoom": 19},
        )

    async def wait_ready(self) -> None:
        if self._ready:
            return
        await self.leaflet.initialized()
        self._ready = True

    def add_marker(self, latlng: tuple[float, float], *, icon_url: str, popup: str) -> Any:
        marker = self.leaflet.marker(latlng=latlng)
        marker.run_method(
            ":setIcon",
            f'L.icon({{iconUrl: "{icon_url}", shadowUrl: "{self.shadow_url}", {self.ICON_OPTIONS}}})',
        )
        marker.run_method("bindPopup", popup)
        return marker

    def remove_marker(self, marker: Any) -> None:
        self.leaflet.remove_layer(marker)

    def set_center(self, latlng: tuple[float, float]) -> None:
        self.leaflet.set_center(latlng)

    def destroy(self) -> None:
        self.leaflet.delete()


SurfaceFactory = Callable[[ui.element], MapSurface]


# =============================================================================
# РЕЕСТР КАРТ
# =============================================================================

class MapArena:
    """Карты смонтированных экранов по идентификатору экрана."""

    def __init__(self) -> None:
        self._surfaces: dict[str, MapSurface] = {}

    def __len__(self) -> int:
        return len(self._surfaces)

    def __contains__(self, view_id: str) -> bool:
        return view_id in self._surfaces

    def get(self, view_id: str) -> MapSurface | None:
        return self._surfaces.get(view_id)

    def register(self, view_id: str, surface: MapSurface) -> None:
        if view_id in self._surfaces:
            raise ValueError(f"Для экрана {view_id} карта уже создана")
        self._surfaces[view_id] = surface

    def release(self, view_id: str) -> MapSurface | None:
        return self._surfaces.pop(view_id, None)


# =============================================================================
# РЕНДЕРЕР
# =============================================================================

class MapRenderer:
    """
    Карта одного экрана отслеживания.

    Маркер водителя центрирует карту, маркер наблюдателя не двигает её.
    После teardown() рендерер можно смонтировать заново.
    """

    def __init__(
        self,
        arena: MapArena,
        *,
        view_id: str | None = None,
        lang: str = "en",
        surface_factory: SurfaceFactory | None = None,
    ) -> None:
        self.view_id = view_id or uuid.uuid4().hex
        self.lang = lang
        self._arena = arena
        self._surface_factory = surface_factory or LeafletMapSurface
        self._markers: dict[MarkerSlot, Any] = {}
        self.driver_icon_url = settings.map.MAP_DRIVER_ICON_URL
        self.viewer_icon_url = settings.map.MAP_VIEWER_ICON_URL

    @property
    def surface(self) -> MapSurface | None:
        return self._arena.get(self.view_id)

    @property
    def is_mounted(self) -> bool:
        return self.view_id in self._arena

    def marker_count(self, slot: MarkerSlot) -> int:
        return 1 if slot in self._markers else 0

    def ensure_map_mounted(self, container: ui.element) -> MapSurface:
        """Создать карту в контейнере; если карта уже есть, вернуть её."""
        surface = self._arena.get(self.view_id)
        if surface is not None:
            return surface

        surface = self._surface_factory(container)
        self._arena.register(self.view_id, surface)
        logger.debug(f"Карта {self.view_id} создана")
        return surface

    async def upsert_driver_marker(
        self,
        position: Position,
        label: str,
        *,
        updated_at: datetime | None = None,
    ) -> None:
        """Заменить маркер водителя и отцентрировать на нём карту."""
        surface = await self._replace_marker(
            MarkerSlot.DRIVER,
            position,
            icon_url=self.driver_icon_url,
            popup=self._popup(label, updated_at or position.captured_at),
        )
        if surface is not None:
            surface.set_center(position.latlng)

    async def upsert_viewer_marker(self, position: Position, label: str) -> None:
        """Заменить маркер наблюдателя. Центр карты не меняется."""
        await self._replace_marker(
            MarkerSlot.VIEWER,
            position,
            icon_url=self.viewer_icon_url,
            popup=self._popup(label, position.captured_at),
        )

    def teardown(self) -> None:
        """Уничтожить карту и убрать её из реестра. Повторный вызов ничего не делает."""
        surface = self._arena.release(self.view_id)
        self._markers.clear()
        if surface is None:
            return
        surface.destroy()
        logger.debug(f"Карта {self.view_id} уничтожена")

    async def _replace_marker(
        self,
        slot: MarkerSlot,
        position: Position,
        *,
        icon_url: str,
        popup: str,
    ) -> MapSurface | None:
        surface = self._arena.get(self.view_id)
        if surface is None:
            return None

        await surface.wait_ready()
        # teardown() мог произойти, пока карта инициализировалась
        if self._arena.get(self.view_id) is not surface:
            return None

        previous = self._markers.pop(slot, None)
        if previous is not None:
            surface.remove_marker(previous)
        self._markers[slot] = surface.add_marker(position.latlng, icon_url=icon_url, popup=popup)

        await log_info(
            f"Карта {self.view_id}: маркер {slot.value} -> {position.latlng}",
            type_msg=TypeMsg.DEBUG,
            logger_name="map",
        )
        return surface

    def _popup(self, label: str, updated_at: datetime) -> str:
        last_updated = get_text("LAST_UPDATED", self.lang, time=updated_at.astimezone().strftime("%H:%M:%S"))
        return f"<b>{html.escape(label)}</b><br>{html.escape(last_updated)}"
