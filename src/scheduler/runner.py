from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from src.audit import AuditSink
from src.config import Settings, get_settings
from src.db.repositories import AssetRepository, NotificationRepository, UserRepository
from src.models.notification import Notification
from src.notifications.dispatcher import NotificationDispatcher
from src.notifications.mailer import Mailer
from src.scheduler.clock import utcnow
from src.scheduler.jobs import ExpiryScanner, ScanResult, scan_definitions
from src.scheduler.registry import APSchedulerBackend, JobRegistry


def create_apscheduler(settings: Settings) -> AsyncIOScheduler:
    return AsyncIOScheduler(
        timezone=settings.scheduler_timezone,
        job_defaults={
            "coalesce": True,  # Combine missed runs into one
            "max_instances": 1,
            "misfire_grace_time": 300,
        },
    )


class NotificationScheduler:
    """Owns the daily expiry scans and the ad-hoc notification job registry."""

    def __init__(
        self,
        assets: AssetRepository,
        users: UserRepository,
        notifications: NotificationRepository,
        mailer: Mailer,
        audit: AuditSink,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
        scheduler: Optional[BaseScheduler] = None,
    ):
        self.settings = settings or get_settings()
        self.scheduler = scheduler or create_apscheduler(self.settings)
        self.dispatcher = NotificationDispatcher(users, notifications, mailer, audit)
        self.scanners: Dict[str, ExpiryScanner] = {
            definition.name: ExpiryScanner(definition, assets, self.dispatcher, audit, clock)
            for definition in scan_definitions(self.settings)
        }
        self.registry = JobRegistry(
            APSchedulerBackend(self.scheduler),
            self.dispatcher,
            audit,
            clock=clock,
            timezone=self.settings.scheduler_timezone,
        )
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    def _scan_times(self) -> Dict[str, tuple]:
        s = self.settings
        return {
            "maintenance": (s.maintenance_scan_hour, s.maintenance_scan_minute),
            "warranty": (s.warranty_scan_hour, s.warranty_scan_minute),
            "license": (s.license_scan_hour, s.license_scan_minute),
        }

    def start(self) -> None:
        """Register the daily scans and start the timer loop. Safe to call twice."""
        if self._started:
            logger.warning("Notification scheduler is already running")
            return

        for name, (hour, minute) in self._scan_times().items():
            scanner = self.scanners[name]
            self.scheduler.add_job(
                scanner.run,
                CronTrigger(hour=hour, minute=minute, timezone=self.settings.scheduler_timezone),
                id=f"{name}_scan",
                name=f"{scanner.definition.label} Expiry Scan",
                replace_existing=True,
            )

        self.scheduler.start()
        self._started = True
        logger.info("Notification scheduler started")

    def shutdown(self) -> None:
        if not self._started:
            return
        self.scheduler.shutdown(wait=False)
        self._started = False
        logger.info("Notification scheduler stopped")

    async def run_scan(self, name: str) -> ScanResult:
        """Run one scan immediately, outside its daily schedule."""
        if name not in self.scanners:
            raise ValueError(f"Unknown scan: {name}. Available: {list(self.scanners)}")
        return await self.scanners[name].run()

    async def schedule_notification(self, notification: Notification) -> bool:
        return await self.registry.schedule_notification(notification)

    def cancel_notification(self, notification_id: int) -> bool:
        return self.registry.cancel_notification(notification_id)

    def get_jobs_status(self) -> List[Dict[str, Any]]:
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append(
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run": str(next_run) if next_run else None,
                }
            )
        return jobs


def create_notification_scheduler(settings: Optional[Settings] = None) -> NotificationScheduler:
    """Build a scheduler wired to the application database and SMTP mailer."""
    from src.db.database import async_session

    return NotificationScheduler(
        assets=AssetRepository(async_session),
        users=UserRepository(async_session),
        notifications=NotificationRepository(async_session),
        mailer=Mailer(),
        audit=AuditSink(async_session),
        settings=settings,
    )


def start_scheduler() -> NotificationScheduler:
    scheduler = create_notification_scheduler()
    scheduler.start()
    return scheduler
