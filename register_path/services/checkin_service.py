"""
Check-in gate for scanning tickets at the door.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.event import Event
from ..models.registration import Registration, RegistrationStatus, PaymentStatus
from ..models.ticket import Ticket
from ..utils.exceptions import AlreadyCheckedInError, ConflictingStateError, TicketNotFoundError
from ..utils.logging_config import log_business_event

logger = logging.getLogger(__name__)


@dataclass
class TicketStatus:
    valid: bool
    ticket: Ticket
    registration: Registration
    event: Event

    @property
    def already_checked_in(self) -> bool:
        return self.ticket.checked_in


@dataclass
class CheckInResult:
    ticket: Ticket
    registration: Registration
    event: Event


class CheckInService:
    """Verifies tickets and records admission exactly once per ticket."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def verify(self, code: str) -> TicketStatus:
        """
        Look up a ticket and tell whether it admits its holder.

        Raises:
            TicketNotFoundError: the code does not exist
        """
        result = await self.session.execute(
            select(Ticket, Registration, Event)
            .join(Registration, Ticket.registration_id == Registration.id)
            .join(Event, Registration.event_id == Event.id)
            .where(Ticket.ticket_code == code)
            .execution_options(populate_existing=True)
        )
        row = result.first()
        if row is None:
            raise TicketNotFoundError(code)

        ticket, registration, event = row
        valid = (
            registration.status == RegistrationStatus.CONFIRMED
            and registration.payment_status == PaymentStatus.COMPLETED
        )
        return TicketStatus(valid=valid, ticket=ticket, registration=registration, event=event)

    async def check_in(self, code: str) -> CheckInResult:
        """
        Mark the ticket as used.

        Raises:
            TicketNotFoundError: the code does not exist
            ConflictingStateError: the registration no longer admits anyone
            AlreadyCheckedInError: the ticket was already used
        """
        status = await self.verify(code)
        if not status.valid:
            raise ConflictingStateError(
                f"Ticket {code} is not valid for entry",
                current_state=status.registration.status.value,
                required_state=RegistrationStatus.CONFIRMED.value,
            )

        now = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(Ticket)
            .where(Ticket.ticket_code == code, Ticket.checked_in.is_(False))
            .values(checked_in=True, checked_in_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

        if result.rowcount == 0:
            checked_in_at = await self.session.scalar(
                select(Ticket.checked_in_at).where(Ticket.ticket_code == code)
            )
            logger.info(f"Duplicate scan of ticket {code}")
            raise AlreadyCheckedInError(
                code,
                checked_in_at=checked_in_at.isoformat() if checked_in_at else None,
            )

        ticket = await self.session.scalar(
            select(Ticket)
            .where(Ticket.ticket_code == code)
            .execution_options(populate_existing=True)
        )
        log_business_event("ticket_checked_in", {
            "ticket_code": code,
            "registration_id": str(status.registration.id),
            "event_id": str(status.event.id),
        })
        return CheckInResult(ticket=ticket, registration=status.registration, event=status.event)
