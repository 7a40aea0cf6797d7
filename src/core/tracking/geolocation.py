# src/core/tracking/geolocation.py
"""
Источник позиции устройства.

BrowserGeolocationSource запрашивает navigator.geolocation в браузере
клиента NiceGUI. Ошибки браузера переводятся в иерархию GeolocationError:
PermissionDenied и Unsupported терминальны, Unavailable и Timeout нет.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Protocol

from pydantic import ValidationError

from src.common.logger import log_info, log_warning
from src.common.constants import TypeMsg
from src.core.tracking.errors import (
    GeolocationError,
    GeolocationPermissionDenied,
    GeolocationTimeout,
    GeolocationUnavailable,
    GeolocationUnsupported,
)
from src.shared.models.location_dto import Position


class JavaScriptRunner(Protocol):
    """Всё, что умеет выполнить JS в браузере и вернуть результат (nicegui.Client)."""

    def run_javascript(self, code: str, *, timeout: float = ...) -> Any:
        ...


class GeolocationSource(ABC):
    """Однократное получение позиции устройства."""

    @abstractmethod
    async def get_current_position(self) -> Position:
        """Текущая позиция или GeolocationError."""

    async def watch(self, interval: float) -> AsyncIterator[Position]:
        """
        Позиции устройства раз в interval секунд, первая сразу.

        Временные ошибки пропускаются (с записью в лог), терминальные
        пробрасываются и завершают генератор.
        """
        while True:
            try:
                yield await self.get_current_position()
            except GeolocationError as e:
                if e.terminal:
                    raise
                await log_warning(f"Позиция устройства недоступна: {e}", logger_name="tracking")
            await asyncio.sleep(interval)


# Коды GeolocationPositionError из браузера; 0 означает, что navigator.geolocation отсутствует
_ERRORS_BY_CODE: dict[int, type[GeolocationError]] = {
    0: GeolocationUnsupported,
    1: GeolocationPermissionDenied,
    2: GeolocationUnavailable,
    3: GeolocationTimeout,
}


class BrowserGeolocationSource(GeolocationSource):
    """Позиция из navigator.geolocation.getCurrentPosition браузера клиента."""

    def __init__(
        self,
        client: JavaScriptRunner,
        *,
        high_accuracy: bool = True,
        timeout: float = 10.0,
        max_age: float = 60.0,
        js_margin: float = 5.0,
    ) -> None:
        self._client = client
        self.high_accuracy = high_accuracy
        self.timeout = timeout
        self.max_age = max_age
        self.js_margin = js_margin

    @classmethod
    def from_settings(cls, client: JavaScriptRunner) -> "BrowserGeolocationSource":
        from src.config import settings

        tracking = settings.tracking
        return cls(
            client,
            high_accuracy=tracking.GEOLOCATION_HIGH_ACCURACY,
            timeout=tracking.GEOLOCATION_TIMEOUT_SECONDS,
            max_age=tracking.GEOLOCATION_MAX_AGE_SECONDS,
            js_margin=tracking.GEOLOCATION_JS_MARGIN_SECONDS,
        )

    def _build_js(self) -> str:
        return f"""
        return new Promise((resolve) => {{
            if (!navigator.geolocation) {{
                resolve({{ ok: false, code: 0, message: "geolocation not supported" }});
                return;
            }}
            navigator.geolocation.getCurrentPosition(
                (pos) => resolve({{
                    ok: true,
                    lat: pos.coords.latitude,
                    lng: pos.coords.longitude,
                    accuracy: pos.coords.accuracy,
                    timestamp: pos.timestamp
                }}),
                (err) => resolve({{ ok: false, code: err.code, message: err.message }}),
                {{
                    enableHighAccuracy: {'true' if self.high_accuracy else 'false'},
                    timeout: {int(self.timeout * 1000)},
                    maximumAge: {int(self.max_age * 1000)}
                }}
            );
        }});
        """

    async def get_current_position(self) -> Position:
        try:
            result = await self._client.run_javascript(
                self._build_js(),
                timeout=self.timeout + self.js_margin,
            )
        except TimeoutError as e:
            raise GeolocationTimeout("Браузер не ответил вовремя") from e

        if not isinstance(result, dict):
            raise GeolocationUnsupported(f"Неожиданный ответ браузера: {result!r}")

        if not result.get("ok"):
            code = result.get("code") or 0
            error_cls = _ERRORS_BY_CODE.get(code, GeolocationUnavailable)
            raise error_cls(result.get("message") or "")

        captured_at = datetime.now(timezone.utc)
        if result.get("timestamp"):
            captured_at = datetime.fromtimestamp(result["timestamp"] / 1000, tz=timezone.utc)

        try:
            position = Position(
                latitude=result["lat"],
                longitude=result["lng"],
                accuracy=result.get("accuracy"),
                captured_at=captured_at,
            )
        except (KeyError, ValidationError) as e:
            raise GeolocationUnavailable(f"Некорректные координаты от браузера: {e}") from e
        await log_info(
            f"Позиция устройства получена: {position.latlng}",
            type_msg=TypeMsg.DEBUG,
            logger_name="tracking",
        )
        return position
