"""
Tests for the registration state machine, including concurrency scenarios.
"""

import asyncio
import uuid
from decimal import Decimal

import pytest

from conftest import attendee
from register_path.models import EventStatus, PaymentStatus, RegistrationStatus
from register_path.services.registration_service import AttendeeInfo, OutcomeKind
from register_path.utils.exceptions import (
    CapacityExceededError,
    ConflictingStateError,
    EventNotFoundError,
    PaymentProviderUnavailableError,
    ValidationError,
)


@pytest.mark.asyncio
async def test_free_registration_confirms_with_tickets(registration_service, make_event, remaining_seats, sender):
    event = await make_event(capacity=10)

    outcome = await registration_service.register(event.id, attendee(), 3)

    assert outcome.kind == OutcomeKind.CONFIRMED
    assert outcome.registration.status == RegistrationStatus.CONFIRMED
    assert outcome.registration.payment_status == PaymentStatus.COMPLETED
    assert len(outcome.tickets) == 3
    assert len({ticket.ticket_code for ticket in outcome.tickets}) == 3
    assert all(not ticket.checked_in for ticket in outcome.tickets)
    assert await remaining_seats(event.id) == 7

    assert len(sender.messages) == 1
    assert sender.messages[0]["to"] == "ada@example.com"
    assert "Community Meetup" in sender.messages[0]["subject"]


@pytest.mark.asyncio
async def test_email_failure_does_not_undo_registration(registration_service, make_event, remaining_seats, sender):
    event = await make_event(capacity=10)
    sender.failing = True

    outcome = await registration_service.register(event.id, attendee(), 1)

    assert outcome.kind == OutcomeKind.CONFIRMED
    assert len(outcome.tickets) == 1
    assert await remaining_seats(event.id) == 9


@pytest.mark.asyncio
async def test_paid_registration_requires_payment(registration_service, make_event, remaining_seats, payment_provider):
    event = await make_event(capacity=10, price=Decimal("25.00"))

    outcome = await registration_service.register(event.id, attendee(), 2)

    assert outcome.kind == OutcomeKind.PAYMENT_REQUIRED
    assert outcome.client_secret
    assert outcome.tickets == []
    assert outcome.registration.payment_status == PaymentStatus.PENDING
    assert outcome.registration.total_amount == Decimal("50.00")
    assert outcome.registration.payment_intent_id in payment_provider.intents
    assert payment_provider.intents[outcome.registration.payment_intent_id]["amount"] == Decimal("50.00")
    # Seats are only taken once the payment settles
    assert await remaining_seats(event.id) == 10


@pytest.mark.asyncio
async def test_provider_outage_surfaces(registration_service, make_event, remaining_seats, payment_provider):
    event = await make_event(capacity=10, price=Decimal("25.00"))
    payment_provider.available = False

    with pytest.raises(PaymentProviderUnavailableError):
        await registration_service.register(event.id, attendee(), 1)
    assert await remaining_seats(event.id) == 10


@pytest.mark.asyncio
async def test_full_event_waitlists(registration_service, make_event, remaining_seats):
    event = await make_event(capacity=2)
    await registration_service.register(event.id, attendee("first@example.com"), 2)

    outcome = await registration_service.register(event.id, attendee("second@example.com"), 1)

    assert outcome.kind == OutcomeKind.WAITLIST
    assert outcome.registration.status == RegistrationStatus.WAITLIST
    assert outcome.tickets == []
    assert await remaining_seats(event.id) == 0


@pytest.mark.asyncio
async def test_full_event_without_waitlist_rejects(registration_service, make_event):
    event = await make_event(capacity=2, allow_waitlist=False)

    with pytest.raises(CapacityExceededError) as exc_info:
        await registration_service.register(event.id, attendee(), 3)
    assert exc_info.value.details["available"] == 2


@pytest.mark.asyncio
async def test_draft_and_unknown_events_not_found(registration_service, make_event):
    draft = await make_event(status=EventStatus.DRAFT)

    with pytest.raises(EventNotFoundError):
        await registration_service.register(draft.id, attendee(), 1)
    with pytest.raises(EventNotFoundError):
        await registration_service.register(uuid.uuid4(), attendee(), 1)


@pytest.mark.asyncio
@pytest.mark.parametrize("seats", [0, 5])
async def test_seat_count_out_of_range(registration_service, make_event, seats):
    event = await make_event()

    with pytest.raises(ValidationError) as exc_info:
        await registration_service.register(event.id, attendee(), seats)
    assert "seats" in exc_info.value.field_errors


@pytest.mark.asyncio
async def test_contact_details_validated(registration_service, make_event):
    event = await make_event()
    bad = AttendeeInfo(first_name=" ", last_name="Lovelace", email="not-an-email")

    with pytest.raises(ValidationError) as exc_info:
        await registration_service.register(event.id, bad, 1)
    assert set(exc_info.value.field_errors) == {"first_name", "email"}


@pytest.mark.asyncio
async def test_concurrent_registrations_never_oversell(session_factory, make_registration_service, make_event, remaining_seats):
    """Eight attendees race for five seats on an event without a waitlist."""
    event = await make_event(capacity=5, allow_waitlist=False)

    async def register(n: int):
        async with session_factory() as session:
            service = make_registration_service(session)
            return await service.register(event.id, attendee(f"guest{n}@example.com"), 1)

    results = await asyncio.gather(*(register(n) for n in range(8)), return_exceptions=True)

    confirmed = [r for r in results if not isinstance(r, BaseException)]
    rejected = [r for r in results if isinstance(r, CapacityExceededError)]
    assert len(confirmed) == 5
    assert len(rejected) == 3
    assert all(outcome.kind == OutcomeKind.CONFIRMED for outcome in confirmed)
    assert await remaining_seats(event.id) == 0


@pytest.mark.asyncio
async def test_concurrent_losers_are_waitlisted(session_factory, make_registration_service, make_event, remaining_seats):
    event = await make_event(capacity=3)

    async def register(n: int):
        async with session_factory() as session:
            service = make_registration_service(session)
            return await service.register(event.id, attendee(f"guest{n}@example.com"), 1)

    outcomes = await asyncio.gather(*(register(n) for n in range(6)))

    kinds = [outcome.kind for outcome in outcomes]
    assert kinds.count(OutcomeKind.CONFIRMED) == 3
    assert kinds.count(OutcomeKind.WAITLIST) == 3
    assert await remaining_seats(event.id) == 0


@pytest.mark.asyncio
async def test_cancel_free_registration_releases_seats(registration_service, make_event, remaining_seats):
    event = await make_event(capacity=5)
    outcome = await registration_service.register(event.id, attendee(), 2)

    cancelled = await registration_service.cancel_registration(outcome.registration.id)

    assert cancelled.status == RegistrationStatus.CANCELLED
    assert await remaining_seats(event.id) == 5

    with pytest.raises(ConflictingStateError):
        await registration_service.cancel_registration(outcome.registration.id)
    assert await remaining_seats(event.id) == 5


@pytest.mark.asyncio
async def test_cancel_waitlisted_registration_keeps_seats(registration_service, make_event, remaining_seats):
    event = await make_event(capacity=1)
    await registration_service.register(event.id, attendee("first@example.com"), 1)
    waitlisted = await registration_service.register(event.id, attendee("second@example.com"), 1)

    await registration_service.cancel_registration(waitlisted.registration.id)

    assert await remaining_seats(event.id) == 0
