"""Turn an absolute timestamp into a five-field crontab trigger."""
from __future__ import annotations

from datetime import datetime, timezone as dt_timezone

from apscheduler.triggers.cron import CronTrigger
from apscheduler.util import astimezone


def build_cron_expression(timestamp: datetime) -> str:
    """Crontab expression matching ``timestamp``'s minute, hour, day and month.

    There is no year field and day-of-week is a wildcard, so the expression
    fires again every year on the same minute/hour/day/month.
    """
    return f"{timestamp.minute} {timestamp.hour} {timestamp.day} {timestamp.month} *"


def cron_trigger(timestamp: datetime, timezone: str = "UTC") -> CronTrigger:
    """Annual trigger firing at ``timestamp`` as seen from ``timezone``.

    Naive timestamps are read as UTC and converted to the trigger's zone
    before the expression is built.
    """
    tz = astimezone(timezone)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=dt_timezone.utc)
    local = timestamp.astimezone(tz)
    return CronTrigger.from_crontab(build_cron_expression(local), timezone=tz)
