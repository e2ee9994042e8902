"""
Tests for the day-before reminder sweep and its scheduler.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from conftest import attendee
from register_path.models import Registration
from register_path.services.reminder_scheduler import ReminderRunStats, ReminderScheduler, ReminderSweep


def reminders(sender):
    return [message for message in sender.messages if "Reminder" in message["subject"]]


@pytest.fixture
def sweep(session_factory, notification_service):
    return ReminderSweep(session_factory, notification_service)


@pytest.fixture
def event_tomorrow(make_event, registration_service):
    async def factory():
        now = datetime.now(timezone.utc)
        event = await make_event(start_time=now + timedelta(hours=23, minutes=30), title="Launch Party")
        outcome = await registration_service.register(event.id, attendee(), 1)
        return now, outcome.registration
    return factory


@pytest.mark.asyncio
async def test_reminder_sent_once(sweep, event_tomorrow, sender):
    now, _ = await event_tomorrow()

    first = await sweep.run_once(now)
    second = await sweep.run_once(now)

    assert first.sent == 1
    assert second.candidates == 0
    assert len(reminders(sender)) == 1
    assert "Launch Party" in reminders(sender)[0]["subject"]


@pytest.mark.asyncio
async def test_events_outside_window_are_skipped(sweep, make_event, registration_service, sender):
    now = datetime.now(timezone.utc)
    later = await make_event(start_time=now + timedelta(days=3))
    await registration_service.register(later.id, attendee(), 1)

    stats = await sweep.run_once(now)

    assert stats.candidates == 0
    assert reminders(sender) == []


@pytest.mark.asyncio
async def test_failed_reminder_is_retried(sweep, event_tomorrow, sender, session_factory):
    now, registration = await event_tomorrow()
    sender.failing = True

    failed = await sweep.run_once(now)

    assert failed.failed == 1
    async with session_factory() as session:
        claimed_at = await session.scalar(
            select(Registration.reminder_sent_at).where(Registration.id == registration.id)
        )
    assert claimed_at is None

    sender.failing = False
    retried = await sweep.run_once(now)
    assert retried.sent == 1


@pytest.mark.asyncio
async def test_cancelled_registrations_get_no_reminder(sweep, event_tomorrow, registration_service, sender):
    now, registration = await event_tomorrow()
    await registration_service.cancel_registration(registration.id)

    stats = await sweep.run_once(now)

    assert stats.candidates == 0
    assert reminders(sender) == []


@pytest.mark.asyncio
async def test_overlapping_sweeps_send_once(sweep, event_tomorrow, sender):
    now, _ = await event_tomorrow()

    results = await asyncio.gather(sweep.run_once(now), sweep.run_once(now))

    assert sum(stats.sent for stats in results) == 1
    assert len(reminders(sender)) == 1


class BlockingSweep:
    def __init__(self):
        self.release = asyncio.Event()
        self.calls = 0

    async def run_once(self, now=None):
        self.calls += 1
        await self.release.wait()
        return ReminderRunStats(candidates=1, sent=1)


@pytest.mark.asyncio
async def test_scheduler_skips_while_previous_sweep_runs():
    blocking = BlockingSweep()
    scheduler = ReminderScheduler(blocking, interval_seconds=3600)

    first = asyncio.create_task(scheduler.trigger())
    await asyncio.sleep(0)

    assert await scheduler.trigger() is None

    blocking.release.set()
    stats = await first
    assert stats.sent == 1
    assert blocking.calls == 1


@pytest.mark.asyncio
async def test_scheduler_start_and_stop():
    blocking = BlockingSweep()
    scheduler = ReminderScheduler(blocking, interval_seconds=3600)

    scheduler.start()
    await asyncio.sleep(0)
    assert scheduler.is_started

    await scheduler.stop()
    assert not scheduler.is_started
