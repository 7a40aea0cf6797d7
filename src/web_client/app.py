# src/web_client/app.py
"""
Веб-клиент NiceGUI: страницы отслеживания и чата + HTTP API.
"""

import os

# Локальные данные NiceGUI храним вне корня проекта
os.environ.setdefault('NICEGUI_STORAGE_PATH', '/tmp/ride_share_nicegui_client')

from nicegui import Client, app, ui

from src.config import settings
from src.common.localization import get_text
from src.common.logger import log_info, setup_logging
from src.common.constants import TypeMsg
from src.core.chat import ChatService
from src.infra.realtime_feed import close_feed_hub
from src.infra.redis_client import close_redis, get_redis, init_redis
from src.web_client.api import get_location_store, get_trip_directory, router
from src.web_client.auth import authenticate
from src.web_client.components.map_component import MapArena
from src.web_client.views.chat import ChatView
from src.web_client.views.tracking import TrackingView


def _login_required() -> None:
    with ui.column().classes('w-full h-full items-center justify-center'):
        ui.icon('lock', size='4rem', color='gray-400')
        ui.label(get_text("LOGIN_REQUIRED", settings.web.DEFAULT_LANGUAGE)).classes('text-xl text-gray-500')


def create_app() -> MapArena:
    """Регистрирует страницы, API и обработчики жизненного цикла. Возвращает реестр карт."""
    arena = MapArena()
    app.include_router(router)

    @ui.page('/trips/{trip_id}/tracking')
    async def tracking(trip_id: str, client: Client, role: str | None = None):
        user = authenticate(role_hint=role)
        if user is None:
            _login_required()
            return
        view = TrackingView(
            trip_id,
            user,
            client,
            store=get_location_store(),
            directory=get_trip_directory(),
            arena=arena,
        )
        await view.mount()

    @ui.page('/bookings/{booking_id}/chat')
    async def chat(booking_id: str, client: Client):
        user = authenticate()
        if user is None:
            _login_required()
            return
        view = ChatView(
            booking_id,
            user,
            client,
            service=ChatService.from_settings(get_redis()),
            directory=get_trip_directory(),
        )
        await view.mount()

    @app.on_startup
    async def startup() -> None:
        await init_redis()
        await log_info("Web Client started", type_msg=TypeMsg.INFO)

    @app.on_shutdown
    async def shutdown() -> None:
        await close_feed_hub()
        await close_redis()
        await log_info("Web Client stopped", type_msg=TypeMsg.INFO)

    return arena


def run_web_client(host: str | None = None, port: int | None = None, reload: bool = False) -> None:
    setup_logging()
    create_app()
    ui.run(
        host=host or settings.web.WEB_HOST,
        port=port or settings.web.WEB_PORT,
        reload=reload,
        title=settings.web.WEB_TITLE,
        storage_secret=settings.web.STORAGE_SECRET,
    )
