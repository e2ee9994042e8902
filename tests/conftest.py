"""
Pytest fixtures for the test database, fake external services and the HTTP client.

Each test gets its own SQLite file database so concurrent sessions really
contend for the same rows.
"""

import itertools
import json
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Dict, List, Optional

os.environ.setdefault("ADMIN_PASSWORD", "test-admin-password")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("BASE_URL", "http://test")
os.environ.setdefault("ENABLE_REMINDER_SCHEDULER", "false")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from register_path.database import create_database_engine, create_session_factory, create_tables, get_db
from register_path.main import app
from register_path.models import Event, EventStatus
from register_path.services.notification_service import NotificationSender, NotificationService
from register_path.services.payment_provider import (
    IntentStatus,
    NotificationKind,
    PaymentIntent,
    PaymentNotification,
    PaymentProvider,
    RefundResult,
)
from register_path.services.registration_service import AttendeeInfo, RegistrationService
from register_path.services.ticket_codes import TicketCodeGenerator
from register_path.utils.auth import create_access_token
from register_path.utils.dependencies import (
    get_notification_service,
    get_payment_provider,
    get_ticket_generator,
)
from register_path.utils.exceptions import (
    NotificationDeliveryError,
    PaymentProviderUnavailableError,
    WebhookSignatureError,
)

ADMIN_PASSWORD = "test-admin-password"
WEBHOOK_SIGNATURE = "test-signature"

_WEBHOOK_KINDS = {
    "payment_intent.succeeded": NotificationKind.SUCCEEDED,
    "payment_intent.payment_failed": NotificationKind.FAILED,
    "charge.refunded": NotificationKind.REFUNDED,
}


class FakePaymentProvider(PaymentProvider):
    """In-memory provider; webhook payloads are plain JSON signed with WEBHOOK_SIGNATURE."""

    def __init__(self):
        self.intents: Dict[str, Dict] = {}
        self.refunds: List[tuple] = []
        self.available = True
        self._ids = itertools.count(1)

    async def create_intent(self, amount: Decimal, metadata: Dict[str, str]) -> PaymentIntent:
        if not self.available:
            raise PaymentProviderUnavailableError("provider is down")
        intent_id = f"pi_test_{next(self._ids)}"
        self.intents[intent_id] = {
            "amount": amount,
            "metadata": metadata,
            "status": IntentStatus.REQUIRES_PAYMENT,
        }
        return PaymentIntent(id=intent_id, client_secret=f"{intent_id}_secret", status=IntentStatus.REQUIRES_PAYMENT)

    def set_status(self, intent_id: str, status: IntentStatus) -> None:
        self.intents[intent_id]["status"] = status

    async def retrieve_intent(self, intent_id: str) -> IntentStatus:
        return self.intents[intent_id]["status"]

    async def refund(self, intent_id: str, amount: Optional[Decimal] = None) -> RefundResult:
        self.refunds.append((intent_id, amount))
        return RefundResult(id=f"re_test_{len(self.refunds)}", status="succeeded", amount=amount)

    def parse_notification(self, payload: bytes, signature: Optional[str]) -> PaymentNotification:
        if signature != WEBHOOK_SIGNATURE:
            raise WebhookSignatureError()
        data = json.loads(payload)
        return PaymentNotification(
            kind=_WEBHOOK_KINDS.get(data["type"], NotificationKind.IGNORED),
            intent_id=data.get("intent_id"),
            event_id=data["id"],
            event_type=data["type"],
        )


class RecordingNotificationSender(NotificationSender):
    """Keeps every message; raises while ``failing`` is set."""

    def __init__(self):
        self.messages: List[Dict] = []
        self.failing = False

    async def send(self, to_address: str, subject: str, text_body: str, html_body: Optional[str] = None) -> None:
        if self.failing:
            raise NotificationDeliveryError("mailbox unavailable")
        self.messages.append({"to": to_address, "subject": subject, "text": text_body})


def webhook_body(event_type: str, intent_id: str, event_id: str = "evt_test_1") -> bytes:
    return json.dumps({"id": event_id, "type": event_type, "intent_id": intent_id}).encode()


def attendee(email: str = "ada@example.com") -> AttendeeInfo:
    return AttendeeInfo(first_name="Ada", last_name="Lovelace", email=email)


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    test_engine = create_database_engine(f"sqlite+aiosqlite:///{tmp_path / 'register_path.db'}")
    await create_tables(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def payment_provider() -> FakePaymentProvider:
    return FakePaymentProvider()


@pytest.fixture
def sender() -> RecordingNotificationSender:
    return RecordingNotificationSender()


@pytest.fixture
def notification_service(sender) -> NotificationService:
    return NotificationService(sender)


@pytest.fixture
def ticket_generator() -> TicketCodeGenerator:
    return TicketCodeGenerator(base_url="http://test", secret_key="test-secret-key")


@pytest.fixture
def make_registration_service(payment_provider, notification_service, ticket_generator):
    """Builds a RegistrationService around the given session."""

    def factory(session: AsyncSession) -> RegistrationService:
        return RegistrationService(session, payment_provider, notification_service, ticket_generator)

    return factory


@pytest.fixture
def registration_service(db_session, make_registration_service) -> RegistrationService:
    return make_registration_service(db_session)


@pytest.fixture
def make_event(session_factory):
    """Insert an event directly; published and free with 10 seats unless told otherwise."""

    async def factory(
        capacity: int = 10,
        price: Decimal = Decimal("0.00"),
        allow_waitlist: bool = True,
        status: EventStatus = EventStatus.PUBLISHED,
        start_time: Optional[datetime] = None,
        title: str = "Community Meetup",
    ) -> Event:
        start_time = start_time or datetime.now(timezone.utc) + timedelta(days=7)
        async with session_factory() as session:
            event = Event(
                title=title,
                description="Talks and snacks",
                location="Main Hall",
                start_time=start_time,
                end_time=start_time + timedelta(hours=3),
                capacity=capacity,
                remaining=capacity,
                price=price,
                allow_waitlist=allow_waitlist,
                status=status,
            )
            session.add(event)
            await session.commit()
            return event

    return factory


@pytest.fixture
def remaining_seats(session_factory):
    """Read an event's remaining seats through a fresh session."""

    async def read(event_id) -> int:
        async with session_factory() as session:
            return await session.scalar(select(Event.remaining).where(Event.id == event_id))

    return read


@pytest_asyncio.fixture
async def client(session_factory, payment_provider, notification_service, ticket_generator) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test database and the fake external services."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_provider] = lambda: payment_provider
    app.dependency_overrides[get_notification_service] = lambda: notification_service
    app.dependency_overrides[get_ticket_generator] = lambda: ticket_generator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    return {"Authorization": f"Bearer {create_access_token()}"}
