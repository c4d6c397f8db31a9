from __future__ import annotations

import asyncio
import smtplib
from email.message import EmailMessage

from loguru import logger

from src.config import get_settings
from src.models.asset import Asset
from src.notifications.formatter import format_maintenance_email

SEND_MAIL_TIMEOUT = 10  # seconds


class Mailer:
    """Send plain-text email over SMTP."""

    def __init__(self):
        settings = get_settings()
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.username = settings.smtp_username
        self.password = settings.smtp_password
        self.use_tls = settings.smtp_use_tls
        self.sender = settings.email_from or settings.smtp_username
        self.enabled = settings.notification_enabled

    @classmethod
    def is_configured(cls) -> bool:
        """Check if an SMTP host and sender address are set."""
        settings = get_settings()
        return bool(settings.smtp_host and (settings.email_from or settings.smtp_username))

    @property
    def active(self) -> bool:
        """False when email is switched off or SMTP is not configured."""
        return bool(self.enabled and self.is_configured())

    def _build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        return message

    def _send_blocking(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=SEND_MAIL_TIMEOUT) as server:
            if self.use_tls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.send_message(message)

    async def send(self, to: str, subject: str, body: str) -> bool:
        """Send one email.

        The SMTP conversation runs in a worker thread so the event loop keeps
        serving other jobs while it is in flight.

        Returns:
            True if sent successfully, False otherwise.
        """
        if not self.enabled:
            logger.info(f"Notifications are disabled, skipping email to {to}")
            return False
        if not self.is_configured():
            logger.warning(f"SMTP is not configured, skipping email to {to}")
            return False

        try:
            await asyncio.to_thread(
                self._send_blocking, self._build_message(to, subject, body)
            )
            logger.info(f"Email '{subject}' sent to {to}")
            return True
        except smtplib.SMTPException as e:
            logger.error(f"SMTP error sending to {to}: {e}")
            return False
        except OSError as e:
            logger.error(f"SMTP connection to {self.host}:{self.port} failed: {e}")
            return False

    async def send_maintenance_reminder(self, email: str, asset: Asset) -> bool:
        subject, body = format_maintenance_email(asset)
        return await self.send(email, subject, body)
