from src.models.asset import Asset, AssetCategory, AssetStatus
from src.models.notification import Notification, NotificationType
from src.models.system_log import LogLevel, SystemLog
from src.models.user import User, UserRole

__all__ = [
    "Asset",
    "AssetCategory",
    "AssetStatus",
    "LogLevel",
    "Notification",
    "NotificationType",
    "SystemLog",
    "User",
    "UserRole",
]
