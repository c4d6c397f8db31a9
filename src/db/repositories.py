"""Async data-access layer used by the notification scheduler.

Each call opens its own short-lived session, so a failed write for one
recipient never leaves a poisoned session behind for the next one.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from src.models.asset import Asset
from src.models.notification import Notification, NotificationType
from src.models.user import User, UserRole

TRACKED_DATE_FIELDS = {
    "next_maintenance": Asset.next_maintenance,
    "warranty_expiry": Asset.warranty_expiry,
    "license_expiry": Asset.license_expiry,
}


class AssetRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find_by_date_range(
        self, field: str, start: datetime, end: datetime
    ) -> List[Asset]:
        """Assets whose ``field`` lies in ``[start, end]``, with assignee loaded.

        Assets with no value for ``field`` never match.
        """
        if field not in TRACKED_DATE_FIELDS:
            raise ValueError(
                f"Unknown date field: {field}. Available: {list(TRACKED_DATE_FIELDS)}"
            )
        column = TRACKED_DATE_FIELDS[field]

        async with self.session_factory() as session:
            result = await session.execute(
                select(Asset)
                .options(selectinload(Asset.assigned_to))
                .where(column.is_not(None), column >= start, column <= end)
                .order_by(column, Asset.id)
            )
            return list(result.scalars().all())


class UserRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find_by_role(self, role: UserRole) -> List[User]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(User).where(User.role == role).order_by(User.id)
            )
            return list(result.scalars().all())

    async def get(self, user_id: int) -> Optional[User]:
        async with self.session_factory() as session:
            return await session.get(User, user_id)


class NotificationRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(
        self, user_id: int, notification_type: NotificationType, message: str
    ) -> Notification:
        async with self.session_factory() as session:
            notification = Notification(
                user_id=user_id, type=notification_type, message=message
            )
            session.add(notification)
            await session.commit()
            await session.refresh(notification)
            return notification

    async def list_for_user(self, user_id: int) -> List[Notification]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Notification)
                .where(Notification.user_id == user_id)
                .order_by(Notification.created_at.desc(), Notification.id.desc())
            )
            return list(result.scalars().all())

    async def mark_read(self, notification_id: int) -> bool:
        """Flag a notification as read. Returns False when it does not exist."""
        async with self.session_factory() as session:
            result = await session.execute(
                update(Notification)
                .where(Notification.id == notification_id)
                .values(read=True)
            )
            await session.commit()
            return result.rowcount > 0
