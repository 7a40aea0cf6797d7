# tests/infra/test_realtime_feed.py
"""
Тесты общего подписчика Redis Pub/Sub (src/infra/realtime_feed.py).
"""

from __future__ import annotations

import asyncio
import json
from itertools import islice
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from src.infra import realtime_feed
from src.infra.realtime_feed import Backoff, RedisFeedHub, close_feed_hub, get_feed_hub
from tests.fakes import wait_until


TRIP_1 = "driver_location:trip:trip-1"
TRIP_2 = "driver_location:trip:trip-2"


def scripted_messages(*items):
    """get_message: сначала элементы сценария (исключения пробрасываются), потом тишина."""
    queue = list(items)

    async def get_message(**kwargs):
        if queue:
            item = queue.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        await asyncio.sleep(0.005)
        return None

    return get_message


def message(payload, channel: str = TRIP_1) -> dict:
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return {"type": "message", "channel": f"test:{channel}", "data": data}


def make_pubsub(**overrides) -> MagicMock:
    pubsub = MagicMock()
    pubsub.subscribe = AsyncMock()
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()
    pubsub.get_message = AsyncMock(side_effect=scripted_messages())
    for name, value in overrides.items():
        setattr(pubsub, name, value)
    return pubsub


class TestBackoff:
    """Тесты политики задержек."""

    def test_delays_capped(self) -> None:
        """Задержки растут геометрически и ограничены сверху."""
        delays = list(islice(Backoff().delays(), 7))
        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]

    def test_custom_factor(self) -> None:
        delays = list(islice(Backoff(initial=0.5, maximum=2.0, factor=3.0).delays(), 3))
        assert delays == [0.5, 1.5, 2.0]


class TestSubscribe:
    """Тесты регистрации обработчиков."""

    @pytest.mark.asyncio
    async def test_subscribes_namespaced_channel(self, feed_hub, mock_pubsub) -> None:
        """Канал подписывается с namespace."""
        subscription = await feed_hub.subscribe(TRIP_1, AsyncMock())

        mock_pubsub.subscribe.assert_awaited_once_with("test:driver_location:trip:trip-1")
        assert subscription.channel == "test:driver_location:trip:trip-1"
        assert feed_hub.channels == {"test:driver_location:trip:trip-1"}

    @pytest.mark.asyncio
    async def test_one_connection_for_all_views(self, feed_hub, mock_redis, mock_pubsub) -> None:
        """Все экраны процесса делят одно соединение Pub/Sub; канал подписывается один раз."""
        for _ in range(3):
            await feed_hub.subscribe(TRIP_1, AsyncMock())
        await feed_hub.subscribe(TRIP_2, AsyncMock())

        mock_redis.pubsub.assert_called_once()
        assert mock_pubsub.subscribe.await_count == 2
        assert feed_hub.subscription_count == 4

    @pytest.mark.asyncio
    async def test_close_removes_handler_then_channel(self, feed_hub, mock_pubsub) -> None:
        """Канал отписывается только после закрытия последней регистрации; close идемпотентен."""
        on_close = MagicMock()
        first = await feed_hub.subscribe(TRIP_1, AsyncMock(), on_close=on_close)
        second = await feed_hub.subscribe(TRIP_1, AsyncMock())

        await first.close()
        await first.close()

        mock_pubsub.unsubscribe.assert_not_awaited()
        on_close.assert_called_once_with(first)
        assert first.closed is True

        await second.close()

        mock_pubsub.unsubscribe.assert_awaited_once_with("test:driver_location:trip:trip-1")
        mock_pubsub.aclose.assert_not_awaited()
        assert feed_hub.channels == set()

    @pytest.mark.asyncio
    async def test_subscribe_failure_releases_connection(self, feed_hub, mock_redis, mock_pubsub) -> None:
        """Неудачная первая подписка закрывает соединение; следующая попытка берёт новое."""
        mock_pubsub.subscribe.side_effect = RedisConnectionError("down")

        with pytest.raises(RedisError):
            await feed_hub.subscribe(TRIP_1, AsyncMock())

        mock_pubsub.aclose.assert_awaited_once()
        assert feed_hub.channels == set()

        mock_pubsub.subscribe.side_effect = None
        await feed_hub.subscribe(TRIP_1, AsyncMock())

        assert mock_redis.pubsub.call_count == 2

    @pytest.mark.asyncio
    async def test_subscribe_after_close_fails(self, feed_hub) -> None:
        await feed_hub.close()

        with pytest.raises(RuntimeError):
            await feed_hub.subscribe(TRIP_1, AsyncMock())

    @pytest.mark.asyncio
    async def test_hub_close_closes_registrations(self, feed_hub, mock_pubsub) -> None:
        """Закрытие хаба закрывает соединение и все регистрации."""
        on_close = MagicMock()
        subscription = await feed_hub.subscribe(TRIP_1, AsyncMock(), on_close=on_close)

        await feed_hub.close()

        assert subscription.closed is True
        on_close.assert_called_once_with(subscription)
        mock_pubsub.aclose.assert_awaited_once()


class TestDispatch:
    """Тесты раздачи сообщений по каналам."""

    @pytest.mark.asyncio
    async def test_messages_dispatched_by_channel(self, feed_hub, mock_pubsub) -> None:
        """JSON-сообщения получают только обработчики своего канала."""
        first, second, other = AsyncMock(), AsyncMock(), AsyncMock()
        await feed_hub.subscribe(TRIP_1, first)
        await feed_hub.subscribe(TRIP_1, second)
        await feed_hub.subscribe(TRIP_2, other)
        mock_pubsub.get_message = AsyncMock(side_effect=scripted_messages(
            message({"n": 1}),
            message("not json"),
            message("[1, 2]"),
            {"type": "subscribe", "channel": "test:ch", "data": 1},
            message({"n": 9}, channel="driver_location:trip:unknown"),
            message({"n": 2}, channel=TRIP_2),
        ))

        await wait_until(lambda: other.await_count >= 1)

        first.assert_awaited_once_with({"n": 1})
        second.assert_awaited_once_with({"n": 1})
        other.assert_awaited_once_with({"n": 2})

    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_listening(self, feed_hub, mock_pubsub) -> None:
        """Ошибка одного обработчика не мешает ни другим, ни следующим сообщениям."""
        failing = AsyncMock(side_effect=[ValueError("boom"), None])
        healthy = AsyncMock()
        await feed_hub.subscribe(TRIP_1, failing)
        await feed_hub.subscribe(TRIP_1, healthy)
        mock_pubsub.get_message = AsyncMock(side_effect=scripted_messages(message({"n": 1}), message({"n": 2})))

        await wait_until(lambda: failing.await_count >= 2)

        assert healthy.await_count == 2

    @pytest.mark.asyncio
    async def test_close_from_handler(self, feed_hub, mock_pubsub) -> None:
        """Обработчик может закрыть собственную регистрацию."""
        subscription = None

        async def handler(payload) -> None:
            await subscription.close()

        subscription = await feed_hub.subscribe(TRIP_1, handler)
        mock_pubsub.get_message = AsyncMock(side_effect=scripted_messages(message({"n": 1})))

        await wait_until(lambda: subscription.closed)
        await wait_until(lambda: mock_pubsub.unsubscribe.await_count == 1)
        assert feed_hub.channels == set()


class TestReconnect:
    """Тесты восстановления соединения."""

    @pytest.mark.asyncio
    async def test_reconnect_after_drop(self, feed_hub, mock_redis, mock_pubsub) -> None:
        """Обрыв: один on_drop на регистрацию, переподписка всех каналов с задержкой, on_resume."""
        on_drop, on_resume = AsyncMock(), AsyncMock()
        other_drop, other_resume = AsyncMock(), AsyncMock()
        handler = AsyncMock()

        failed_pubsub = make_pubsub(subscribe=AsyncMock(side_effect=RedisConnectionError("still down")))
        restored_pubsub = make_pubsub(get_message=AsyncMock(side_effect=scripted_messages(message({"n": 3}))))
        mock_redis.pubsub = MagicMock(side_effect=[mock_pubsub, failed_pubsub, restored_pubsub])

        await feed_hub.subscribe(TRIP_1, handler, on_drop=on_drop, on_resume=on_resume)
        await feed_hub.subscribe(TRIP_2, AsyncMock(), on_drop=other_drop, on_resume=other_resume)
        mock_pubsub.get_message = AsyncMock(side_effect=scripted_messages(RedisConnectionError("lost")))

        await wait_until(lambda: handler.await_count >= 1)

        for callback in (on_drop, on_resume, other_drop, other_resume):
            callback.assert_awaited_once()
        mock_pubsub.aclose.assert_awaited_once()
        failed_pubsub.aclose.assert_awaited_once()
        restored_pubsub.subscribe.assert_awaited_once_with(
            "test:driver_location:trip:trip-1",
            "test:driver_location:trip:trip-2",
        )
        handler.assert_awaited_once_with({"n": 3})

    @pytest.mark.asyncio
    async def test_failing_drop_and_resume_callbacks_keep_listener(self, feed_hub, mock_redis, mock_pubsub) -> None:
        """Ошибки on_drop/on_resume логируются; слушатель продолжает доставлять сообщения."""
        handler = AsyncMock()
        on_drop = AsyncMock(side_effect=RuntimeError("ui gone"))
        on_resume = AsyncMock(side_effect=RuntimeError("ui gone"))
        restored_pubsub = make_pubsub(get_message=AsyncMock(side_effect=scripted_messages(message({"n": 4}))))
        mock_redis.pubsub = MagicMock(side_effect=[mock_pubsub, restored_pubsub])

        subscription = await feed_hub.subscribe(TRIP_1, handler, on_drop=on_drop, on_resume=on_resume)
        mock_pubsub.get_message = AsyncMock(side_effect=scripted_messages(RedisConnectionError("lost")))

        await wait_until(lambda: handler.await_count >= 1)

        on_resume.assert_awaited_once()
        handler.assert_awaited_once_with({"n": 4})
        assert subscription.closed is False
        assert not feed_hub._task.done()

    @pytest.mark.asyncio
    async def test_subscribe_while_reconnecting_fails(self, mock_redis, mock_pubsub) -> None:
        """Пока соединение восстанавливается, новая подписка сразу получает ошибку."""
        hub = RedisFeedHub(mock_redis, poll_timeout=0.01, backoff=Backoff(initial=10.0, maximum=10.0))
        on_drop = AsyncMock()
        await hub.subscribe(TRIP_1, AsyncMock(), on_drop=on_drop)
        mock_pubsub.get_message = AsyncMock(side_effect=scripted_messages(RedisConnectionError("lost")))
        await wait_until(lambda: on_drop.await_count == 1)

        with pytest.raises(RedisError):
            await hub.subscribe(TRIP_2, AsyncMock())

        await asyncio.wait_for(hub.close(), 1.0)
        assert hub.closed is True


class TestProcessHub:
    """Тесты общего хаба процесса."""

    @pytest.mark.asyncio
    async def test_get_feed_hub_is_shared(self, monkeypatch) -> None:
        """Все хранилища процесса получают один хаб; close_feed_hub его сбрасывает."""
        monkeypatch.setattr(realtime_feed, "_hub", None)

        with patch("src.infra.redis_client.get_redis", return_value=MagicMock()):
            hub = get_feed_hub()
            assert get_feed_hub() is hub

        await close_feed_hub()

        assert hub.closed is True
        assert realtime_feed._hub is None
