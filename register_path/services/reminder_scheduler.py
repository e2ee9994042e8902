"""
Day-before event reminders.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings, get_settings
from ..models.event import Event
from ..models.registration import Registration, RegistrationStatus, PaymentStatus
from .notification_service import NotificationService

logger = logging.getLogger(__name__)


@dataclass
class ReminderRunStats:
    candidates: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0

    def as_dict(self) -> dict:
        return {
            "candidates": self.candidates,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
        }


class ReminderSweep:
    """
    Sends one reminder to every settled registration whose event starts in the lead window.

    A registration is claimed by stamping ``reminder_sent_at`` with a conditional
    update before the email goes out, so overlapping sweeps never send twice.
    If delivery fails the stamp is removed again and the next sweep retries.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notification_service: NotificationService,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.notifications = notification_service
        self.settings = settings or get_settings()

    async def run_once(self, now: Optional[datetime] = None) -> ReminderRunStats:
        now = now or datetime.now(timezone.utc)
        window_start = now + timedelta(hours=self.settings.reminder_window_start_hours)
        window_end = now + timedelta(hours=self.settings.reminder_window_end_hours)
        stats = ReminderRunStats()

        async with self.session_factory() as session:
            result = await session.execute(
                select(Registration, Event)
                .join(Event, Registration.event_id == Event.id)
                .where(
                    Registration.status == RegistrationStatus.CONFIRMED,
                    Registration.payment_status == PaymentStatus.COMPLETED,
                    Registration.reminder_sent_at.is_(None),
                    Event.start_time >= window_start,
                    Event.start_time <= window_end,
                )
                .order_by(Event.start_time)
            )
            candidates = result.all()

        stats.candidates = len(candidates)
        logger.info(f"Reminder sweep found {stats.candidates} registrations between {window_start} and {window_end}")

        for registration, event in candidates:
            try:
                if not await self._claim(registration.id, now):
                    stats.skipped += 1
                    continue

                if await self.notifications.send_event_reminder(registration, event):
                    stats.sent += 1
                else:
                    stats.failed += 1
                    await self._release_claim(registration.id, now)
            except Exception:
                stats.failed += 1
                logger.exception(f"Reminder for registration {registration.id} failed")

        logger.info(f"Reminder sweep finished: {stats.as_dict()}")
        return stats

    async def _claim(self, registration_id, now: datetime) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                update(Registration)
                .where(Registration.id == registration_id, Registration.reminder_sent_at.is_(None))
                .values(reminder_sent_at=now)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount == 1

    async def _release_claim(self, registration_id, claimed_at: datetime) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(Registration)
                .where(Registration.id == registration_id, Registration.reminder_sent_at == claimed_at)
                .values(reminder_sent_at=None)
                .execution_options(synchronize_session=False)
            )
            await session.commit()


class ReminderScheduler:
    """Runs a reminder sweep on a fixed interval as a background asyncio task."""

    def __init__(self, sweep: ReminderSweep, interval_seconds: float = 600):
        self.sweep = sweep
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self._running = asyncio.Lock()

    @property
    def is_started(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_started:
            return
        self._task = asyncio.create_task(self._loop(), name="reminder-scheduler")
        logger.info(f"Reminder scheduler started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reminder scheduler stopped")

    async def trigger(self, now: Optional[datetime] = None) -> Optional[ReminderRunStats]:
        """Run one sweep unless one is already in progress."""
        if self._running.locked():
            logger.info("Previous reminder sweep still running, skipping")
            return None
        async with self._running:
            return await self.sweep.run_once(now)

    async def _loop(self) -> None:
        while True:
            try:
                await self.trigger()
            except Exception:
                logger.exception("Reminder sweep crashed")
            await asyncio.sleep(self.interval_seconds)
