from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.date import DateTrigger
from loguru import logger

from src.audit import AuditSink
from src.models.notification import Notification
from src.models.system_log import LogLevel
from src.notifications.dispatcher import NotificationDispatcher
from src.scheduler.clock import as_naive_utc, utcnow
from src.scheduler.cron import cron_trigger


class TriggerBackend(ABC):
    """Minimal timer capability the job registry needs."""

    @abstractmethod
    def register(
        self,
        trigger: BaseTrigger,
        callback: Callable[..., Awaitable[None]],
        args: Sequence[Any],
        job_id: str,
    ) -> Any:
        """Arm ``trigger`` to call ``callback(*args)``; return a cancel handle."""
        ...

    @abstractmethod
    def cancel(self, handle: Any) -> None:
        """Disarm a handle. Must tolerate handles whose timer already expired."""
        ...


class APSchedulerBackend(TriggerBackend):
    def __init__(self, scheduler: BaseScheduler):
        self.scheduler = scheduler

    def register(self, trigger, callback, args, job_id):
        return self.scheduler.add_job(
            callback,
            trigger,
            args=list(args),
            id=job_id,
            name=job_id,
            replace_existing=True,
        )

    def cancel(self, handle) -> None:
        try:
            handle.remove()
        except JobLookupError:
            # Date-triggered jobs are dropped by APScheduler once they fire
            pass


class JobState(enum.Enum):
    scheduled = "scheduled"
    fired = "fired"
    retired = "retired"
    cancelled = "cancelled"


@dataclass
class ScheduledJob:
    notification: Notification
    trigger: BaseTrigger
    is_recurring: bool
    handle: Any
    state: JobState = JobState.scheduled
    fire_count: int = 0

    @property
    def notification_id(self) -> int:
        return self.notification.id


class JobRegistry:
    """In-memory table of per-notification timers, keyed by notification id.

    Non-recurring notifications get a single-fire date trigger and are retired
    after their first firing. Recurring ones get the annual cron trigger built
    from their scheduled time and stay registered until cancelled.

    Only the event loop touches the job table, so it is not locked.
    """

    def __init__(
        self,
        backend: TriggerBackend,
        dispatcher: NotificationDispatcher,
        audit: AuditSink,
        clock: Callable[[], datetime] = utcnow,
        timezone: str = "UTC",
    ):
        self.backend = backend
        self.dispatcher = dispatcher
        self.audit = audit
        self.clock = clock
        self.timezone = timezone
        self._jobs: Dict[int, ScheduledJob] = {}

    def __len__(self) -> int:
        return len(self._jobs)

    def has_job(self, notification_id: int) -> bool:
        return notification_id in self._jobs

    def get_job(self, notification_id: int) -> Optional[ScheduledJob]:
        return self._jobs.get(notification_id)

    def jobs(self) -> List[ScheduledJob]:
        return list(self._jobs.values())

    def _build_trigger(self, notification: Notification) -> BaseTrigger:
        if notification.scheduled_time is None:
            raise ValueError(f"Notification {notification.id} has no scheduled_time")

        scheduled_time = as_naive_utc(notification.scheduled_time)
        if notification.is_recurring:
            return cron_trigger(scheduled_time, timezone=self.timezone)

        # A time already in the past fires as soon as possible
        run_date = max(scheduled_time, as_naive_utc(self.clock()))
        return DateTrigger(run_date=run_date.replace(tzinfo=dt_timezone.utc), timezone=self.timezone)

    async def schedule_notification(self, notification: Notification) -> bool:
        """Arm a timer for ``notification``, replacing any live job for its id.

        Returns:
            True if scheduled. Failures are logged and audited, never raised,
            and are not retried.
        """
        try:
            if notification.id in self._jobs:
                logger.info(f"Replacing existing job for notification {notification.id}")
                self.cancel_notification(notification.id)

            trigger = self._build_trigger(notification)
            handle = self.backend.register(
                trigger,
                self.process_notification,
                [notification.id],
                job_id=f"notification_{notification.id}",
            )
            self._jobs[notification.id] = ScheduledJob(
                notification=notification,
                trigger=trigger,
                is_recurring=notification.is_recurring,
                handle=handle,
            )
        except Exception as e:
            logger.exception(f"Failed to schedule notification {notification.id}: {e}")
            await self.audit.record(
                LogLevel.error,
                "Failed to schedule notification",
                {"notification_id": notification.id, "error": str(e)},
            )
            return False

        logger.info(
            f"Scheduled notification {notification.id} "
            f"({'recurring' if notification.is_recurring else 'one-shot'}) with {trigger}"
        )
        await self.audit.record(
            LogLevel.info,
            "Notification scheduled",
            {
                "notification_id": notification.id,
                "trigger": str(trigger),
                "is_recurring": notification.is_recurring,
            },
        )
        return True

    async def process_notification(self, notification_id: int) -> None:
        """Timer callback: deliver, then retire the job unless it recurs."""
        job = self._jobs.get(notification_id)
        if job is None:
            logger.warning(f"Fired for unknown notification {notification_id}, ignoring")
            return

        job.state = JobState.fired
        job.fire_count += 1

        try:
            delivered = await self.dispatcher.deliver(job.notification)
        except Exception as e:
            logger.error(f"Delivery of notification {notification_id} raised: {e}")
            delivered = False

        await self.audit.record(
            LogLevel.info if delivered else LogLevel.error,
            "Scheduled notification processed" if delivered else "Scheduled notification delivery failed",
            {"notification_id": notification_id, "fire_count": job.fire_count},
        )

        # Cancelled or replaced while delivery was in flight
        if self._jobs.get(notification_id) is not job:
            return

        if job.is_recurring:
            job.state = JobState.scheduled
        else:
            self._retire(job)

    def _cancel_handle(self, job: ScheduledJob) -> None:
        try:
            self.backend.cancel(job.handle)
        except Exception as e:
            logger.error(f"Failed to cancel timer for notification {job.notification_id}: {e}")

    def _retire(self, job: ScheduledJob) -> None:
        del self._jobs[job.notification_id]
        self._cancel_handle(job)
        job.state = JobState.retired
        logger.info(f"Retired one-shot job for notification {job.notification_id}")

    def cancel_notification(self, notification_id: int) -> bool:
        """Stop and forget the job for ``notification_id``.

        Returns:
            False if there was no such job. A delivery already in flight is
            not aborted; only future firings are prevented.
        """
        job = self._jobs.pop(notification_id, None)
        if job is None:
            logger.debug(f"No job to cancel for notification {notification_id}")
            return False

        self._cancel_handle(job)
        job.state = JobState.cancelled
        logger.info(f"Cancelled job for notification {notification_id}")
        return True
