"""
Tests for ticket verification and door check-in.
"""

import asyncio

import pytest

from conftest import attendee
from register_path.services.checkin_service import CheckInService
from register_path.utils.exceptions import AlreadyCheckedInError, ConflictingStateError, TicketNotFoundError


@pytest.fixture
def confirmed_tickets(registration_service, make_event):
    async def factory(seats: int = 2):
        event = await make_event(capacity=10)
        outcome = await registration_service.register(event.id, attendee(), seats)
        return outcome.registration, outcome.tickets
    return factory


@pytest.mark.asyncio
async def test_verify_valid_ticket(db_session, confirmed_tickets):
    registration, tickets = await confirmed_tickets()

    status = await CheckInService(db_session).verify(tickets[0].ticket_code)

    assert status.valid
    assert not status.already_checked_in
    assert status.registration.id == registration.id
    assert status.event.title == "Community Meetup"


@pytest.mark.asyncio
async def test_check_in_once(db_session, confirmed_tickets):
    _, tickets = await confirmed_tickets()
    service = CheckInService(db_session)
    code = tickets[0].ticket_code

    result = await service.check_in(code)
    assert result.ticket.ticket_code == code
    assert result.ticket.checked_in
    assert result.ticket.checked_in_at is not None
    assert result.registration.full_name == "Ada Lovelace"
    assert result.event.title == "Community Meetup"

    with pytest.raises(AlreadyCheckedInError):
        await service.check_in(code)

    status = await service.verify(code)
    assert status.already_checked_in
    assert status.ticket.checked_in_at is not None


@pytest.mark.asyncio
async def test_tickets_of_one_registration_check_in_independently(db_session, confirmed_tickets):
    _, tickets = await confirmed_tickets(seats=2)
    service = CheckInService(db_session)

    await service.check_in(tickets[0].ticket_code)
    await service.check_in(tickets[1].ticket_code)


@pytest.mark.asyncio
async def test_concurrent_double_scan(session_factory, confirmed_tickets):
    """Two scanners read the same QR code at the same moment; one admits, one refuses."""
    _, tickets = await confirmed_tickets(seats=1)
    code = tickets[0].ticket_code

    async def scan():
        async with session_factory() as session:
            return await CheckInService(session).check_in(code)

    results = await asyncio.gather(scan(), scan(), return_exceptions=True)

    admitted = [r for r in results if not isinstance(r, BaseException)]
    refused = [r for r in results if isinstance(r, AlreadyCheckedInError)]
    assert len(admitted) == 1
    assert len(refused) == 1


@pytest.mark.asyncio
async def test_cancelled_registration_ticket_is_refused(db_session, registration_service, confirmed_tickets):
    registration, tickets = await confirmed_tickets()
    await registration_service.cancel_registration(registration.id)
    service = CheckInService(db_session)

    status = await service.verify(tickets[0].ticket_code)
    assert not status.valid

    with pytest.raises(ConflictingStateError):
        await service.check_in(tickets[0].ticket_code)


@pytest.mark.asyncio
async def test_unknown_ticket(db_session):
    with pytest.raises(TicketNotFoundError):
        await CheckInService(db_session).check_in("RP-NOPE-00000000")
