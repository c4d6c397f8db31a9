from __future__ import annotations

import math
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from loguru import logger

from src.audit import AuditSink
from src.config import Settings
from src.db.repositories import AssetRepository
from src.models.asset import Asset
from src.models.notification import NotificationType
from src.models.system_log import LogLevel
from src.notifications.dispatcher import NotificationDispatcher
from src.notifications.formatter import (
    SEVERITY_NOTICE,
    SEVERITY_WARNING,
    format_expiry_message,
)
from src.scheduler.clock import as_naive_utc, utcnow

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class ScanDefinition:
    """One tracked date field and how to announce it."""

    name: str
    field: str
    lookahead_days: int
    severity: str
    label: str
    verb: str
    notification_type: NotificationType
    send_email: bool = False


MAINTENANCE_SCAN = ScanDefinition(
    name="maintenance",
    field="next_maintenance",
    lookahead_days=30,
    severity=SEVERITY_NOTICE,
    label="Maintenance",
    verb="due",
    notification_type=NotificationType.maintenance,
    send_email=True,
)
WARRANTY_SCAN = ScanDefinition(
    name="warranty",
    field="warranty_expiry",
    lookahead_days=90,
    severity=SEVERITY_WARNING,
    label="Warranty",
    verb="expiring",
    notification_type=NotificationType.warranty,
)
LICENSE_SCAN = ScanDefinition(
    name="license",
    field="license_expiry",
    lookahead_days=90,
    severity=SEVERITY_WARNING,
    label="License",
    verb="expiring",
    notification_type=NotificationType.license,
)


def scan_definitions(settings: Settings) -> List[ScanDefinition]:
    """The three scans with lookahead windows taken from settings."""
    return [
        replace(MAINTENANCE_SCAN, lookahead_days=settings.maintenance_lookahead_days),
        replace(WARRANTY_SCAN, lookahead_days=settings.warranty_lookahead_days),
        replace(LICENSE_SCAN, lookahead_days=settings.license_lookahead_days),
    ]


def days_until(target: datetime, now: datetime) -> int:
    """Whole days from ``now`` to ``target``, rounded up."""
    return math.ceil((as_naive_utc(target) - now) / ONE_DAY)


@dataclass
class AssetFailure:
    asset_id: Optional[int]
    error: str


@dataclass
class ScanResult:
    scan: str
    started_at: datetime
    matched: int = 0
    succeeded: int = 0
    failed: int = 0
    notifications_created: int = 0
    failures: List[AssetFailure] = field(default_factory=list)
    duration_seconds: float = 0.0
    aborted: bool = False
    error: Optional[str] = None


class ExpiryScanner:
    """Daily scan for assets whose tracked date enters the lookahead window.

    Assets are handled one at a time in store order. A failure on one asset is
    logged and recorded in the result; the scan moves on to the next asset.
    Running a scan twice re-notifies every asset still in the window.
    """

    def __init__(
        self,
        definition: ScanDefinition,
        assets: AssetRepository,
        dispatcher: NotificationDispatcher,
        audit: AuditSink,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.definition = definition
        self.assets = assets
        self.dispatcher = dispatcher
        self.audit = audit
        self.clock = clock

    @property
    def name(self) -> str:
        return self.definition.name

    def build_message(self, asset: Asset, now: datetime) -> str:
        target = getattr(asset, self.definition.field)
        return format_expiry_message(
            self.definition.severity,
            self.definition.label,
            self.definition.verb,
            days_until(target, now),
            asset,
        )

    async def run(self) -> ScanResult:
        definition = self.definition
        started = time.monotonic()
        now = self.clock()
        window_end = now + timedelta(days=definition.lookahead_days)
        result = ScanResult(scan=definition.name, started_at=now)

        logger.info(f"Starting {definition.name} scan for window {now} .. {window_end}")

        try:
            assets = await self.assets.find_by_date_range(definition.field, now, window_end)
        except Exception as e:
            logger.exception(f"{definition.name} scan aborted: {e}")
            result.aborted = True
            result.error = str(e)
            result.duration_seconds = time.monotonic() - started
            await self.audit.record(
                LogLevel.error,
                f"{definition.label} scan failed",
                {"scan": definition.name, "error": str(e)},
            )
            return result

        result.matched = len(assets)
        logger.info(f"Found {len(assets)} assets for {definition.name} scan")

        for asset in assets:
            try:
                message = self.build_message(asset, now)
                dispatch = await self.dispatcher.dispatch(
                    asset,
                    definition.notification_type,
                    message,
                    send_email=definition.send_email,
                )
            except Exception as e:
                logger.error(f"Error processing asset {asset.id} in {definition.name} scan: {e}")
                result.failed += 1
                result.failures.append(AssetFailure(asset_id=asset.id, error=str(e)))
                await self.audit.record(
                    LogLevel.error,
                    f"{definition.label} notification failed for asset",
                    {"scan": definition.name, "asset_id": asset.id, "error": str(e)},
                )
                continue

            result.notifications_created += dispatch.created
            if dispatch.ok:
                result.succeeded += 1
            else:
                # The dispatcher already audited the individual failures
                result.failed += 1
                errors = [r.error for r in dispatch.recipients if r.error]
                if dispatch.error:
                    errors.insert(0, dispatch.error)
                result.failures.append(AssetFailure(asset_id=asset.id, error="; ".join(errors)))

        result.duration_seconds = time.monotonic() - started
        logger.info(
            f"{definition.name} scan completed: {result.succeeded}/{result.matched} assets, "
            f"{result.notifications_created} notifications in {result.duration_seconds:.2f}s"
        )
        await self.audit.record(
            LogLevel.info,
            f"{definition.label} scan completed",
            {
                "scan": definition.name,
                "processed": result.matched,
                "succeeded": result.succeeded,
                "failed": result.failed,
                "notifications": result.notifications_created,
                "duration_ms": round(result.duration_seconds * 1000),
            },
        )
        return result
