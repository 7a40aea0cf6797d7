# src/core/tracking/publisher.py
"""
Публикация позиции водителя.

Цикл: получить позицию устройства -> записать DriverLocationRecord в хранилище.
Первый цикл сразу после start_tracking(), далее раз в interval секунд.
Каждый цикл идёт отдельной задачей, поэтому медленный браузер или Redis не сдвигают
следующий цикл.
"""

from __future__ import annotations

import asyncio
from typing import Callable

from src.common.logger import get_logger, log_error, log_info, log_warning
from src.common.constants import NotifyType, TypeMsg
from src.core.tracking.errors import GeolocationError, WriteFailed
from src.core.tracking.geolocation import GeolocationSource
from src.core.tracking.notifier import Notifier, NullNotifier
from src.core.tracking.store import LocationStore
from src.shared.models.location_dto import DriverLocationRecord, Position

# start/stop синхронны, поэтому пишут в логгер напрямую
logger = get_logger("tracking")


class LocationPublisher:
    """
    Периодическая публикация позиции водителя по одной поездке.

    start_tracking() и stop_tracking() синхронны и идемпотентны.
    Результаты циклов, завершившихся после stop_tracking(), отбрасываются
    (по номеру поколения).
    """

    def __init__(
        self,
        trip_id: str,
        driver_id: str,
        source: GeolocationSource,
        store: LocationStore,
        *,
        notifier: Notifier | None = None,
        interval: float = 30.0,
        on_captured: Callable[[Position], None] | None = None,
        on_tracking_changed: Callable[[bool], None] | None = None,
    ) -> None:
        self.trip_id = trip_id
        self.driver_id = driver_id
        self.interval = interval
        self._source = source
        self._store = store
        self._notifier = notifier or NullNotifier()
        self._on_captured = on_captured
        self._on_tracking_changed = on_tracking_changed

        self._timer: asyncio.Task | None = None
        self._cycles: set[asyncio.Task] = set()
        self._cancelled: set[asyncio.Task] = set()
        self._generation = 0

    @property
    def is_tracking(self) -> bool:
        return self._timer is not None

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def in_flight(self) -> int:
        """Число незавершённых циклов текущего поколения."""
        return len(self._cycles)

    def start_tracking(self) -> bool:
        """
        Запустить публикацию.

        Returns:
            True, если публикация запущена этим вызовом; False, если уже шла
        """
        if self._timer is not None:
            return False

        self._generation += 1
        self._timer = asyncio.create_task(
            self._schedule(self._generation),
            name=f"publish:{self.trip_id}",
        )
        logger.info(
            f"Публикация позиции водителя {self.driver_id} запущена (каждые {self.interval}с)",
            extra={"extra_data": {"trip_id": self.trip_id}},
        )
        if self._on_tracking_changed:
            self._on_tracking_changed(True)
        return True

    def stop_tracking(self) -> None:
        """Остановить публикацию. Без предшествующего start_tracking() ничего не делает."""
        if self._timer is None:
            return

        self._generation += 1
        timer, self._timer = self._timer, None
        current = asyncio.current_task()
        for task in (timer, *self._cycles):
            # stop_tracking() вызывается и из самого цикла (терминальная ошибка геолокации)
            if task is current:
                continue
            task.cancel()
            self._cancelled.add(task)
        self._cycles.clear()

        logger.info(
            f"Публикация позиции водителя {self.driver_id} остановлена",
            extra={"extra_data": {"trip_id": self.trip_id}},
        )
        if self._on_tracking_changed:
            self._on_tracking_changed(False)

    async def aclose(self) -> None:
        """Остановить публикацию и дождаться завершения отменённых задач."""
        self.stop_tracking()
        cancelled, self._cancelled = self._cancelled, set()
        if cancelled:
            await asyncio.gather(*cancelled, return_exceptions=True)

    async def _schedule(self, generation: int) -> None:
        while generation == self._generation:
            task = asyncio.create_task(
                self._run_cycle(generation),
                name=f"publish-cycle:{self.trip_id}",
            )
            self._cycles.add(task)
            task.add_done_callback(self._cycles.discard)
            await asyncio.sleep(self.interval)

    async def _run_cycle(self, generation: int) -> None:
        """Один цикл: позиция -> запись. Ошибки не выходят за пределы цикла."""
        extra = {"trip_id": self.trip_id}
        try:
            await self._publish_once(generation, extra)
        except Exception as e:
            await log_error(f"Ошибка цикла публикации: {e}", logger_name="tracking", extra=extra, exc_info=True)
            if generation == self._generation:
                self._notifier.notify("TRACKING_ERROR", NotifyType.WARNING)

    async def _publish_once(self, generation: int, extra: dict) -> None:
        try:
            position = await self._source.get_current_position()
        except GeolocationError as e:
            if generation != self._generation:
                return
            if e.terminal:
                await log_warning(f"Отслеживание остановлено: {e}", logger_name="tracking", extra=extra)
                self._notifier.notify(e.message_key, NotifyType.NEGATIVE)
                self.stop_tracking()
                return
            await log_warning(f"Цикл публикации пропущен: {e}", logger_name="tracking", extra=extra)
            return

        if generation != self._generation:
            await log_info("Позиция получена после остановки, отброшена", type_msg=TypeMsg.DEBUG, logger_name="tracking", extra=extra)
            return

        if self._on_captured:
            self._on_captured(position)

        record = DriverLocationRecord.from_position(self.trip_id, self.driver_id, position)
        try:
            await self._store.upsert(record)
        except WriteFailed as e:
            await log_error(f"Не удалось опубликовать позицию: {e}", logger_name="tracking", extra=extra)
            if generation == self._generation:
                self._notifier.notify(e.message_key, NotifyType.WARNING)
