#!/usr/bin/env python3
# main.py
"""
Главная точка входа приложения отслеживания поездок.
Запускает веб-клиент NiceGUI или проверяет подключение к инфраструктуре.
"""

from __future__ import annotations

import asyncio
import sys

from src.config import settings
from src.common.logger import setup_logging, log_info, log_error
from src.common.constants import TypeMsg
from src.infra.redis_client import init_redis, close_redis, get_redis


VALID_MODES = ("web_client", "check")


async def init_infrastructure() -> None:
    """Инициализирует все подключения к инфраструктуре."""
    await log_info("Инициализация инфраструктуры...", type_msg=TypeMsg.INFO)

    await init_redis()
    await log_info("Redis подключён", type_msg=TypeMsg.DEBUG)

    await log_info("Инфраструктура инициализирована", type_msg=TypeMsg.INFO)


async def close_infrastructure() -> None:
    """Закрывает все подключения."""
    await log_info("Закрытие подключений...", type_msg=TypeMsg.INFO)
    await close_redis()
    await log_info("Подключения закрыты", type_msg=TypeMsg.INFO)


async def check_infrastructure() -> bool:
    """Подключается к Redis, проверяет его и отключается."""
    try:
        await init_infrastructure()
        healthy = await get_redis().health_check()
    except Exception as e:
        await log_error(f"Инфраструктура недоступна: {e}")
        return False

    try:
        await close_infrastructure()
    except Exception as e:
        await log_error(f"Ошибка при закрытии подключений: {e}")
    return healthy


def run_web_client() -> None:
    """Запускает Web Client UI (NiceGUI сам управляет циклом событий)."""
    from src.web_client.app import run_web_client as start_web_client

    start_web_client(host=settings.web.WEB_HOST, port=settings.web.WEB_PORT)


def print_usage() -> None:
    """Выводит справку по использованию."""
    print(f"""
{settings.system.PROJECT_NAME} v{settings.system.VERSION} — отслеживание водителя в реальном времени

Использование:
    python main.py [mode]

Режимы:
    web_client             — Web Client UI (по умолчанию)
    check                  — проверить подключение к Redis и выйти
    """)


def main(mode: str = "web_client") -> int:
    setup_logging()

    if mode == "check":
        return 0 if asyncio.run(check_infrastructure()) else 1

    run_web_client()
    return 0


if __name__ in {"__main__", "__mp_main__"}:
    mode = "web_client"

    if len(sys.argv) > 1:
        arg = sys.argv[1].lower()
        if arg in ("--help", "-h"):
            print_usage()
            sys.exit(0)
        elif arg in VALID_MODES:
            mode = arg
        else:
            print(f"Неизвестный режим: {arg}")
            print_usage()
            sys.exit(1)

    sys.exit(main(mode))
