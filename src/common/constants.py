# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class UserRole(str, Enum):
    """Роли пользователей приложения."""
    PASSENGER = "passenger"
    DRIVER = "driver"


class TrackingRole(str, Enum):
    """Роль участника в сессии отслеживания."""
    DRIVER = "driver"  # публикует свою позицию
    VIEWER = "viewer"  # только наблюдает за водителем


class MarkerSlot(str, Enum):
    """Слоты маркеров на карте (по одному маркеру на слот)."""
    DRIVER = "driver"
    VIEWER = "viewer"


class NotifyType(str, Enum):
    """Типы всплывающих уведомлений (совпадают с типами ui.notify)."""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    WARNING = "warning"
    INFO = "info"
