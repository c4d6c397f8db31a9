from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from src.models.notification import NotificationType
from src.models.system_log import LogLevel
from src.scheduler.registry import APSchedulerBackend, JobRegistry, JobState, TriggerBackend
from tests.factories import NOW


class FakeBackend(TriggerBackend):
    """Collects registrations; tests fire them by hand."""

    def __init__(self):
        self.registrations = []
        self.cancelled = []

    def register(self, trigger, callback, args, job_id):
        handle = SimpleNamespace(trigger=trigger, callback=callback, args=list(args), job_id=job_id)
        self.registrations.append(handle)
        return handle

    def cancel(self, handle):
        self.cancelled.append(handle)

    async def fire(self, handle):
        if handle in self.cancelled:
            return
        await handle.callback(*handle.args)

    def live(self):
        return [h for h in self.registrations if h not in self.cancelled]


class BrokenBackend(FakeBackend):
    def register(self, trigger, callback, args, job_id):
        raise RuntimeError("no loop")


class StuckCancelBackend(FakeBackend):
    def cancel(self, handle):
        raise RuntimeError("jobstore unavailable")


def make_notification(notification_id=1, scheduled_time=NOW + timedelta(days=1), is_recurring=False):
    return SimpleNamespace(
        id=notification_id,
        user_id=7,
        type=NotificationType.reminder,
        message="Return the projector",
        scheduled_time=scheduled_time,
        is_recurring=is_recurring,
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def dispatcher():
    dispatcher = AsyncMock()
    dispatcher.deliver.return_value = True
    return dispatcher


@pytest.fixture
def registry(backend, dispatcher, audit):
    return JobRegistry(backend, dispatcher, audit, clock=lambda: NOW, timezone="UTC")


class TestScheduleNotification:
    @pytest.mark.asyncio
    async def test_one_shot_uses_date_trigger(self, registry, backend, audit):
        assert await registry.schedule_notification(make_notification()) is True

        trigger = backend.registrations[0].trigger
        assert isinstance(trigger, DateTrigger)
        assert trigger.run_date == datetime(2026, 1, 11, 12, 0, tzinfo=timezone.utc)
        assert registry.get_job(1).state == JobState.scheduled
        assert audit.record.await_args.args[:2] == (LogLevel.info, "Notification scheduled")

    @pytest.mark.asyncio
    async def test_recurring_uses_cron_trigger(self, registry, backend):
        notification = make_notification(scheduled_time=datetime(2026, 6, 1, 8, 15), is_recurring=True)

        await registry.schedule_notification(notification)

        trigger = backend.registrations[0].trigger
        assert isinstance(trigger, CronTrigger)
        fire = trigger.get_next_fire_time(None, datetime(2026, 1, 1, tzinfo=timezone.utc))
        assert fire == datetime(2026, 6, 1, 8, 15, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_past_one_shot_fires_now(self, registry, backend):
        await registry.schedule_notification(make_notification(scheduled_time=NOW - timedelta(hours=3)))

        trigger = backend.registrations[0].trigger
        assert trigger.run_date == datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_missing_time_is_audited_not_raised(self, registry, backend, audit):
        assert await registry.schedule_notification(make_notification(scheduled_time=None)) is False

        assert len(registry) == 0
        assert backend.registrations == []
        assert audit.record.await_args.args[0] == LogLevel.error

    @pytest.mark.asyncio
    async def test_backend_failure_is_audited_not_raised(self, dispatcher, audit):
        registry = JobRegistry(BrokenBackend(), dispatcher, audit, clock=lambda: NOW)

        assert await registry.schedule_notification(make_notification()) is False
        assert not registry.has_job(1)
        assert audit.record.await_args.args[2]["error"] == "no loop"

    @pytest.mark.asyncio
    async def test_reschedule_replaces_live_job(self, registry, backend):
        await registry.schedule_notification(make_notification())
        await registry.schedule_notification(make_notification(scheduled_time=NOW + timedelta(days=2)))

        assert len(registry) == 1
        assert len(backend.live()) == 1
        assert backend.cancelled == [backend.registrations[0]]


class TestSchedulerTimezone:
    @pytest.fixture
    def registry(self, backend, dispatcher, audit):
        return JobRegistry(backend, dispatcher, audit, clock=lambda: NOW, timezone="Asia/Taipei")

    @pytest.mark.asyncio
    async def test_one_shot_fires_at_utc_instant(self, registry, backend):
        await registry.schedule_notification(make_notification())

        trigger = backend.registrations[0].trigger
        assert trigger.run_date == datetime(2026, 1, 11, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_recurring_fires_at_utc_instant(self, registry, backend):
        notification = make_notification(scheduled_time=datetime(2026, 6, 1, 20, 15), is_recurring=True)

        await registry.schedule_notification(notification)

        trigger = backend.registrations[0].trigger
        fire = trigger.get_next_fire_time(None, datetime(2026, 1, 1, tzinfo=timezone.utc))
        # 20:15 UTC is 04:15 the next day in Taipei
        assert fire == datetime(2026, 6, 1, 20, 15, tzinfo=timezone.utc)


class TestFiring:
    @pytest.mark.asyncio
    async def test_schedule_then_cancel_never_fires(self, registry, backend, dispatcher):
        await registry.schedule_notification(make_notification())

        assert registry.cancel_notification(1) is True
        await backend.fire(backend.registrations[0])

        dispatcher.deliver.assert_not_awaited()
        assert not registry.has_job(1)

    @pytest.mark.asyncio
    async def test_one_shot_fires_once_then_retired(self, registry, backend, dispatcher):
        await registry.schedule_notification(make_notification())
        job = registry.get_job(1)
        handle = backend.registrations[0]

        await backend.fire(handle)
        await backend.fire(handle)

        dispatcher.deliver.assert_awaited_once()
        assert job.state == JobState.retired
        assert job.fire_count == 1
        assert not registry.has_job(1)
        assert registry.cancel_notification(1) is False

    @pytest.mark.asyncio
    async def test_recurring_stays_and_fires_again(self, registry, backend, dispatcher):
        await registry.schedule_notification(make_notification(is_recurring=True))
        handle = backend.registrations[0]

        await backend.fire(handle)
        await backend.fire(handle)

        assert dispatcher.deliver.await_count == 2
        job = registry.get_job(1)
        assert job.state == JobState.scheduled
        assert job.fire_count == 2

    @pytest.mark.asyncio
    async def test_failed_delivery_still_retires_one_shot(self, registry, backend, dispatcher, audit):
        dispatcher.deliver.return_value = False
        await registry.schedule_notification(make_notification())

        await backend.fire(backend.registrations[0])

        assert not registry.has_job(1)
        assert audit.record.await_args.args[:2] == (
            LogLevel.error,
            "Scheduled notification delivery failed",
        )

    @pytest.mark.asyncio
    async def test_cancel_during_delivery_keeps_job_cancelled(self, registry, backend, dispatcher):
        await registry.schedule_notification(make_notification(is_recurring=True))
        job = registry.get_job(1)

        async def deliver(notification):
            registry.cancel_notification(notification.id)
            return True

        dispatcher.deliver.side_effect = deliver
        await backend.fire(backend.registrations[0])

        assert job.state == JobState.cancelled
        assert not registry.has_job(1)

    @pytest.mark.asyncio
    async def test_unknown_id_ignored(self, registry, dispatcher):
        await registry.process_notification(999)
        dispatcher.deliver.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_error_does_not_escape(self, dispatcher, audit):
        backend = StuckCancelBackend()
        registry = JobRegistry(backend, dispatcher, audit, clock=lambda: NOW)
        await registry.schedule_notification(make_notification(1))
        await registry.schedule_notification(make_notification(2))

        await backend.fire(backend.registrations[0])
        assert registry.cancel_notification(2) is True

        dispatcher.deliver.assert_awaited_once()
        assert len(registry) == 0


class TestAPSchedulerBackend:
    def test_register_and_cancel(self):
        scheduler = AsyncIOScheduler(timezone="UTC")
        backend = APSchedulerBackend(scheduler)

        async def callback(notification_id):
            pass

        handle = backend.register(
            DateTrigger(run_date=datetime(2030, 1, 1), timezone="UTC"),
            callback,
            [1],
            job_id="notification_1",
        )

        assert [job.id for job in scheduler.get_jobs()] == ["notification_1"]
        backend.cancel(handle)
        assert scheduler.get_jobs() == []
        # Already gone: no error
        backend.cancel(handle)
