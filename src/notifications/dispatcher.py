from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger

from src.audit import AuditSink
from src.db.repositories import NotificationRepository, UserRepository
from src.models.asset import Asset
from src.models.notification import Notification, NotificationType
from src.models.system_log import LogLevel
from src.models.user import User, UserRole
from src.notifications.formatter import format_notification_email
from src.notifications.mailer import Mailer


@dataclass
class RecipientOutcome:
    user_id: int
    notification_created: bool = False
    email_sent: Optional[bool] = None  # None when no email was attempted
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.notification_created and self.email_sent is not False and self.error is None


@dataclass
class DispatchResult:
    asset_id: Optional[int]
    notification_type: NotificationType
    recipients: List[RecipientOutcome] = field(default_factory=list)
    error: Optional[str] = None  # audience could not be resolved

    @property
    def created(self) -> int:
        return sum(1 for r in self.recipients if r.notification_created)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.recipients if not r.ok)

    @property
    def ok(self) -> bool:
        return self.error is None and self.failed == 0


class NotificationDispatcher:
    """Fans one asset event out to its assignee and every admin."""

    def __init__(
        self,
        users: UserRepository,
        notifications: NotificationRepository,
        mailer: Mailer,
        audit: AuditSink,
    ):
        self.users = users
        self.notifications = notifications
        self.mailer = mailer
        self.audit = audit

    async def resolve_audience(self, asset: Asset) -> List[User]:
        """Assigned user (if any) plus all admins, one entry per user id.

        Admins are queried on every call; nothing is cached between scans.
        """
        audience: List[User] = []
        if asset.assigned_to is not None:
            audience.append(asset.assigned_to)

        seen = {user.id for user in audience}
        for admin in await self.users.find_by_role(UserRole.admin):
            if admin.id not in seen:
                audience.append(admin)
                seen.add(admin.id)
        return audience

    async def dispatch(
        self,
        asset: Asset,
        notification_type: NotificationType,
        message: str,
        send_email: bool = False,
    ) -> DispatchResult:
        """Create one notification per audience member, optionally emailing them.

        Args:
            asset: Asset the event is about, with ``assigned_to`` loaded.
            notification_type: Type tag stored on every created notification.
            message: Message text shared by all recipients.
            send_email: Also send the maintenance reminder email.

        Returns:
            DispatchResult with one RecipientOutcome per audience member.
            Never raises; every failure is logged, audited and reported in the
            result.
        """
        result = DispatchResult(asset_id=asset.id, notification_type=notification_type)

        try:
            audience = await self.resolve_audience(asset)
        except Exception as e:
            logger.error(f"Could not resolve audience for asset {asset.id}: {e}")
            result.error = str(e)
            await self.audit.record(
                LogLevel.error,
                "Notification audience lookup failed",
                {"asset_id": asset.id, "type": notification_type.value, "error": str(e)},
            )
            return result

        if not audience:
            logger.warning(f"No recipients for {notification_type.value} on asset {asset.id}")

        for user in audience:
            result.recipients.append(
                await self._notify_recipient(user, asset, notification_type, message, send_email)
            )

        logger.info(
            f"Dispatched {notification_type.value} for asset {asset.asset_tag}: "
            f"{result.created}/{len(result.recipients)} notifications created"
        )
        return result

    async def _notify_recipient(
        self,
        user: User,
        asset: Asset,
        notification_type: NotificationType,
        message: str,
        send_email: bool,
    ) -> RecipientOutcome:
        outcome = RecipientOutcome(user_id=user.id)

        try:
            await self.notifications.create(user.id, notification_type, message)
            outcome.notification_created = True
        except Exception as e:
            logger.error(f"Failed to create notification for user {user.id}: {e}")
            outcome.error = f"create: {e}"
            await self.audit.record(
                LogLevel.error,
                "Notification creation failed",
                {
                    "user_id": user.id,
                    "asset_id": asset.id,
                    "type": notification_type.value,
                    "error": str(e),
                },
            )

        # Email is attempted even when the in-app notification failed
        if send_email and self.mailer.active:
            try:
                sent = await self.mailer.send_maintenance_reminder(user.email, asset)
                email_error = None if sent else "send failed"
            except Exception as e:
                logger.error(f"Failed to email {user.email} about asset {asset.id}: {e}")
                email_error = str(e)

            outcome.email_sent = email_error is None
            if email_error is not None:
                outcome.error = "; ".join(filter(None, [outcome.error, f"email: {email_error}"]))
                await self.audit.record(
                    LogLevel.error,
                    "Notification email failed",
                    {"user_id": user.id, "asset_id": asset.id, "error": email_error},
                )
        elif send_email:
            logger.debug(f"Mailer inactive, not emailing {user.email}")

        return outcome

    async def deliver(self, notification: Notification) -> bool:
        """Email an ad-hoc notification to its recipient.

        Returns:
            True if the recipient was found and the email went out.
        """
        try:
            user = await self.users.get(notification.user_id)
            if user is None:
                logger.error(
                    f"Notification {notification.id}: recipient {notification.user_id} not found"
                )
                return False

            subject, body = format_notification_email(notification)
            return await self.mailer.send(user.email, subject, body)
        except Exception as e:
            logger.error(f"Failed to deliver notification {notification.id}: {e}")
            return False
