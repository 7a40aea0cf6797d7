# tests/web_client/test_auth_and_notifier.py
"""
Тесты текущего пользователя (src/web_client/auth.py) и уведомлений
клиента (src/web_client/components/notifier.py).
"""

from unittest.mock import MagicMock, patch

import pytest

from src.common.constants import NotifyType, UserRole
from src.web_client.auth import authenticate
from src.web_client.components.notifier import ClientNotifier


@pytest.fixture
def storage() -> dict:
    return {}


@pytest.fixture
def patched_app(storage):
    app = MagicMock()
    app.storage.user = storage
    with patch("src.web_client.auth.app", app):
        yield app


class TestAuthenticate:
    """Тесты получения пользователя из app.storage.user."""

    def test_existing_user(self, storage, patched_app) -> None:
        storage.update({"id": 42, "name": "Youssef", "role": "driver", "language": "fr"})

        with patch("src.web_client.auth.settings") as settings:
            settings.system.DEBUG = False
            user = authenticate()

        assert user.id == "42"
        assert user.role == UserRole.DRIVER
        assert user.language == "fr"

    def test_no_user_without_debug(self, patched_app) -> None:
        """Без входа и без DEBUG пользователя нет."""
        with patch("src.web_client.auth.settings") as settings:
            settings.system.DEBUG = False
            assert authenticate() is None

    def test_dev_user_in_debug(self, storage, patched_app) -> None:
        """В DEBUG подставляется пользователь разработчика."""
        with patch("src.web_client.auth.settings") as settings:
            settings.system.DEBUG = True
            settings.web.DEFAULT_LANGUAGE = "ar"
            user = authenticate()

        assert user.id == "dev-passenger"
        assert user.role == UserRole.PASSENGER
        assert user.language == "ar"
        assert storage["id"] == "dev-passenger"

    def test_dev_role_hint(self, patched_app) -> None:
        """Подсказка роли в DEBUG переключает пользователя разработчика."""
        with patch("src.web_client.auth.settings") as settings:
            settings.system.DEBUG = True
            settings.web.DEFAULT_LANGUAGE = "en"
            user = authenticate(role_hint="driver")

        assert user.id == "dev-driver"
        assert user.role == UserRole.DRIVER

    def test_role_hint_ignored_without_debug(self, storage, patched_app) -> None:
        storage.update({"id": "u-1", "name": "Sara", "role": "passenger"})

        with patch("src.web_client.auth.settings") as settings:
            settings.system.DEBUG = False
            settings.web.DEFAULT_LANGUAGE = "en"
            user = authenticate(role_hint="driver")

        assert user.id == "u-1"
        assert user.role == UserRole.PASSENGER


class TestClientNotifier:
    """Тесты уведомлений в браузере клиента."""

    def test_notify_translates_key(self) -> None:
        client = MagicMock()
        client.id = "client-1"

        with patch("src.web_client.components.notifier.Client") as client_cls, \
                patch("src.web_client.components.notifier.ui") as ui:
            client_cls.instances = {"client-1": client}
            ClientNotifier(client, "en").notify("GEO_TIMEOUT", NotifyType.WARNING)

        ui.notify.assert_called_once()
        text = ui.notify.call_args.args[0]
        assert text and text != "GEO_TIMEOUT"
        assert ui.notify.call_args.kwargs["type"] == "warning"
        client.__enter__.assert_called_once()

    def test_notify_skipped_for_closed_client(self) -> None:
        client = MagicMock()
        client.id = "gone"

        with patch("src.web_client.components.notifier.Client") as client_cls, \
                patch("src.web_client.components.notifier.ui") as ui:
            client_cls.instances = {}
            ClientNotifier(client).notify("FEED_DROPPED")

        ui.notify.assert_not_called()
