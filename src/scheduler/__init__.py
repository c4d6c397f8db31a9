"""Asset lifecycle notification scheduler.

Schedule overview (defaults, UTC):
  - 01:00 daily  - Maintenance due within 30 days (in-app + email)
  - 01:10 daily  - Warranty expiring within 90 days
  - 01:20 daily  - License expiring within 90 days
  - on demand    - Ad-hoc notifications via schedule_notification()
"""
from src.scheduler.runner import (
    NotificationScheduler,
    create_notification_scheduler,
    start_scheduler,
)

__all__ = ["NotificationScheduler", "create_notification_scheduler", "start_scheduler"]
