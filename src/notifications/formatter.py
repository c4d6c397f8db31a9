from __future__ import annotations

from typing import Tuple

from src.models.asset import Asset
from src.models.notification import Notification, NotificationType

# Severity tokens lead every scan message; the dashboard colours on them
SEVERITY_NOTICE = "NOTICE"
SEVERITY_WARNING = "WARNING"

EMAIL_SUBJECTS = {
    NotificationType.maintenance: "Maintenance Due Alert",
    NotificationType.warranty: "Warranty Expiry Alert",
    NotificationType.license: "License Expiry Alert",
    NotificationType.reminder: "Reminder",
}
DEFAULT_EMAIL_SUBJECT = "Asset Inventory Notification"


def format_expiry_message(
    severity: str, label: str, verb: str, days_until: int, asset: Asset
) -> str:
    """Build the in-app message for an asset entering a lookahead window.

    e.g. "NOTICE: Maintenance due in 5 days for asset: Dell Laptop (INV-1001)"
    """
    return (
        f"{severity}: {label} {verb} in {days_until} days "
        f"for asset: {asset.name} ({asset.asset_tag})"
    )


def format_maintenance_email(asset: Asset) -> Tuple[str, str]:
    """Subject and body for the maintenance reminder email."""
    due = asset.next_maintenance.strftime("%Y-%m-%d") if asset.next_maintenance else "soon"
    lines = [
        "Hello,",
        "",
        f"Maintenance is due on {due} for asset {asset.name} ({asset.asset_tag}).",
    ]
    if asset.location:
        lines.append(f"Location: {asset.location}")
    if asset.serial_number:
        lines.append(f"Serial number: {asset.serial_number}")
    lines += [
        "",
        "Please schedule maintenance for this asset.",
        "",
        "---",
        "This is an automated notification. Please do not reply to this email.",
    ]
    return f"{EMAIL_SUBJECTS[NotificationType.maintenance]}: {asset.name}", "\n".join(lines)


def format_notification_email(notification: Notification) -> Tuple[str, str]:
    """Subject and body for delivering an ad-hoc notification by email."""
    subject = EMAIL_SUBJECTS.get(notification.type, DEFAULT_EMAIL_SUBJECT)
    body = (
        f"{notification.message}\n\n"
        "---\n"
        "This is an automated notification. Please do not reply to this email."
    )
    return subject, body
