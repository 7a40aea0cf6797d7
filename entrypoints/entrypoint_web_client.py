#!/usr/bin/env python3
# entrypoint_web_client.py
"""
Точка входа для запуска Web Client компонента в Docker контейнере.
Экраны отслеживания водителя и чата для пассажиров и водителей.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

from src.config import settings
from src.web_client.app import run_web_client

if __name__ in {"__main__", "__mp_main__"}:
    """Запуск Web Client компонента."""

    instance_id = os.getenv("WEB_CLIENT_INSTANCE_ID", "0")
    print(f"🌐 Запуск Web Client instance #{instance_id}")

    try:
        # NiceGUI сам управляет циклом событий
        run_web_client(host=settings.web.WEB_HOST, port=settings.web.WEB_PORT)
    except KeyboardInterrupt:
        pass
