# tests/web_client/test_map_component.py
"""
Тесты карты отслеживания (src/web_client/components/map_component.py).
"""

from datetime import datetime, timezone

import pytest

from src.common.constants import MarkerSlot
from src.web_client.components.map_component import MapArena, MapRenderer
from tests.fakes import FakeMapSurface, make_position


@pytest.fixture
def arena() -> MapArena:
    return MapArena()


@pytest.fixture
def renderer(arena) -> MapRenderer:
    renderer = MapRenderer(arena, view_id="view-1", surface_factory=FakeMapSurface)
    renderer.ensure_map_mounted(container="container")
    return renderer


class TestMounting:
    """Тесты создания и уничтожения карты."""

    def test_ensure_map_mounted_once(self, arena) -> None:
        """Повторный вызов возвращает ту же карту."""
        renderer = MapRenderer(arena, surface_factory=FakeMapSurface)

        first = renderer.ensure_map_mounted("container")
        second = renderer.ensure_map_mounted("other")

        assert first is second
        assert first.container == "container"
        assert len(arena) == 1

    def test_views_have_separate_maps(self, arena) -> None:
        """У каждого экрана своя карта."""
        first = MapRenderer(arena, surface_factory=FakeMapSurface)
        second = MapRenderer(arena, surface_factory=FakeMapSurface)

        assert first.ensure_map_mounted(None) is not second.ensure_map_mounted(None)
        assert len(arena) == 2

    def test_teardown_is_idempotent(self, renderer, arena) -> None:
        """teardown уничтожает карту и убирает её из реестра; повтор безопасен."""
        surface = renderer.surface

        renderer.teardown()
        renderer.teardown()

        assert surface.destroyed is True
        assert "view-1" not in arena
        assert renderer.is_mounted is False

    def test_remount_after_teardown(self, renderer) -> None:
        """После teardown карту можно создать заново."""
        old = renderer.surface
        renderer.teardown()

        new = renderer.ensure_map_mounted(None)

        assert new is not old
        assert renderer.is_mounted is True

    def test_arena_rejects_duplicate(self, arena) -> None:
        """Один экран: одна карта."""
        arena.register("v", FakeMapSurface())
        with pytest.raises(ValueError):
            arena.register("v", FakeMapSurface())


class TestMarkers:
    """Тесты маркеров."""

    @pytest.mark.asyncio
    async def test_driver_marker_replaced(self, renderer) -> None:
        """Два обновления водителя: один маркер во второй позиции."""
        await renderer.upsert_driver_marker(make_position(33.97, -6.85), "Driver")
        await renderer.upsert_driver_marker(make_position(34.02, -6.83), "Driver")

        surface = renderer.surface
        markers = surface.markers_with_icon(renderer.driver_icon_url)
        assert len(markers) == 1
        assert markers[0]["latlng"] == (34.02, -6.83)
        assert surface.removed == 1
        assert surface.center == (34.02, -6.83)
        assert renderer.marker_count(MarkerSlot.DRIVER) == 1

    @pytest.mark.asyncio
    async def test_viewer_marker_does_not_recenter(self, renderer) -> None:
        """Маркер наблюдателя не двигает карту."""
        await renderer.upsert_viewer_marker(make_position(30.0, -9.6), "You")
        await renderer.upsert_viewer_marker(make_position(30.1, -9.5), "You")

        surface = renderer.surface
        markers = surface.markers_with_icon(renderer.viewer_icon_url)
        assert len(markers) == 1
        assert markers[0]["latlng"] == (30.1, -9.5)
        assert surface.center is None

    @pytest.mark.asyncio
    async def test_slots_are_independent(self, renderer) -> None:
        """Маркеры водителя и наблюдателя не заменяют друг друга."""
        await renderer.upsert_driver_marker(make_position(33.97, -6.85), "Driver")
        await renderer.upsert_viewer_marker(make_position(33.95, -6.87), "You")
        await renderer.upsert_driver_marker(make_position(33.98, -6.84), "Driver")

        assert len(renderer.surface.markers) == 2
        assert renderer.marker_count(MarkerSlot.DRIVER) == 1
        assert renderer.marker_count(MarkerSlot.VIEWER) == 1

    @pytest.mark.asyncio
    async def test_popup_contains_label_and_time(self, renderer) -> None:
        """Подсказка маркера: подпись и время обновления; HTML экранируется."""
        updated_at = datetime(2025, 1, 1, 12, 30, 15, tzinfo=timezone.utc)

        await renderer.upsert_driver_marker(make_position(), "<Ali>", updated_at=updated_at)

        popup = next(iter(renderer.surface.markers.values()))["popup"]
        assert "&lt;Ali&gt;" in popup
        assert updated_at.astimezone().strftime("%H:%M:%S") in popup

    @pytest.mark.asyncio
    async def test_upsert_without_map_is_noop(self, arena) -> None:
        """Без смонтированной карты обновление ничего не делает."""
        renderer = MapRenderer(arena, surface_factory=FakeMapSurface)

        await renderer.upsert_driver_marker(make_position(), "Driver")

        assert renderer.marker_count(MarkerSlot.DRIVER) == 0

    @pytest.mark.asyncio
    async def test_teardown_clears_markers(self, renderer) -> None:
        await renderer.upsert_driver_marker(make_position(), "Driver")

        renderer.teardown()

        assert renderer.marker_count(MarkerSlot.DRIVER) == 0
