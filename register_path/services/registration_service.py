"""
Registration state machine: decides confirmed, waitlisted or payment-pending.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..models.event import Event, EventStatus
from ..models.payment import Payment, PaymentRecordStatus
from ..models.registration import Registration, RegistrationStatus, PaymentStatus
from ..models.ticket import Ticket
from ..utils.exceptions import (
    CapacityExceededError,
    ConflictingStateError,
    EventNotFoundError,
    RegistrationNotFoundError,
    RegisterPathError,
    ValidationError,
)
from ..utils.logging_config import log_business_event
from .capacity_ledger import CapacityLedger
from .notification_service import NotificationService
from .payment_provider import IntentStatus, PaymentProvider
from .payment_reconciliation import PaymentReconciliationService
from .ticket_codes import TicketCodeGenerator
from .ticket_issuer import TicketIssuer

logger = logging.getLogger(__name__)


@dataclass
class AttendeeInfo:
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None


class OutcomeKind(str, Enum):
    CONFIRMED = "confirmed"
    WAITLIST = "waitlist"
    PAYMENT_REQUIRED = "payment_required"


@dataclass
class RegistrationOutcome:
    kind: OutcomeKind
    registration: Registration
    tickets: List[Ticket] = field(default_factory=list)
    client_secret: Optional[str] = None


class RegistrationService:
    """Service that admits attendees to events without overselling."""

    def __init__(
        self,
        session: AsyncSession,
        payment_provider: PaymentProvider,
        notification_service: NotificationService,
        ticket_generator: TicketCodeGenerator,
    ):
        self.session = session
        self.settings = get_settings()
        self.payment_provider = payment_provider
        self.notifications = notification_service
        self.ledger = CapacityLedger(session)
        self.tickets = TicketIssuer(session, ticket_generator)
        self.reconciliation = PaymentReconciliationService(
            session, payment_provider, notification_service, ticket_generator
        )

    async def register(self, event_id: UUID, attendee: AttendeeInfo, seats: int) -> RegistrationOutcome:
        """
        Register an attendee for ``seats`` seats.

        Free events are confirmed immediately with tickets. Paid events get a
        pending registration plus a payment intent; seats are only taken once
        the payment is reconciled. When the event is full the attendee is
        waitlisted, or refused if the event has no waitlist.

        Raises:
            ValidationError: bad contact details or seat count
            EventNotFoundError: unknown or unpublished event
            CapacityExceededError: full event without a waitlist
            PaymentProviderUnavailableError: the payment intent could not be created
        """
        attendee = self._validate(attendee, seats)
        event = await self._get_published_event(event_id)
        total_amount = (event.price * seats).quantize(Decimal("0.01"))

        logger.info(f"Registering {seats} seats on event {event.id} (remaining {event.remaining})")

        if event.remaining < seats:
            return await self._waitlist_or_reject(event, attendee, seats, event.remaining)

        if total_amount == 0:
            return await self._register_free(event, attendee, seats)

        return await self._register_paid(event, attendee, seats, total_amount)

    async def complete_pending_registration(self, registration_id: UUID) -> RegistrationOutcome:
        """
        Finish a paid registration after the client saw the payment succeed.

        Safe to call any number of times and concurrently with the payment webhook.
        """
        registration = await self.get_registration(registration_id)

        if registration.status == RegistrationStatus.CANCELLED:
            raise ConflictingStateError(
                "Registration has been cancelled",
                current_state=registration.status.value,
            )

        tickets = await self.tickets.list_for_registration(registration.id)
        if registration.payment_status == PaymentStatus.COMPLETED and tickets:
            return RegistrationOutcome(OutcomeKind.CONFIRMED, registration, tickets)

        if not registration.payment_intent_id:
            raise ConflictingStateError(
                "Registration has no payment to complete",
                current_state=registration.payment_status.value,
            )

        intent_status = await self.payment_provider.retrieve_intent(registration.payment_intent_id)
        if intent_status != IntentStatus.SUCCEEDED:
            raise ConflictingStateError(
                f"Payment has not succeeded (status: {intent_status.value})",
                current_state=intent_status.value,
                required_state=IntentStatus.SUCCEEDED.value,
            )

        await self.reconciliation.apply_success(registration.payment_intent_id)

        registration = await self.get_registration(registration_id)
        tickets = await self.tickets.list_for_registration(registration.id)
        kind = OutcomeKind.CONFIRMED if registration.status == RegistrationStatus.CONFIRMED else OutcomeKind.WAITLIST
        return RegistrationOutcome(kind, registration, tickets)

    async def cancel_registration(self, registration_id: UUID) -> Registration:
        """Cancel a registration; paid, settled registrations are refunded first."""
        registration = await self.get_registration(registration_id)

        if registration.status == RegistrationStatus.CANCELLED:
            raise ConflictingStateError(
                "Registration is already cancelled",
                current_state=registration.status.value,
            )

        if (registration.payment_status == PaymentStatus.COMPLETED
                and registration.total_amount > 0
                and registration.payment_intent_id):
            await self.reconciliation.refund_registration(registration.id)
            return await self.get_registration(registration_id)

        held_seats = registration.holds_seats
        result = await self.session.execute(
            update(Registration)
            .where(
                Registration.id == registration.id,
                Registration.status == registration.status,
                Registration.payment_status == registration.payment_status,
            )
            .values(status=RegistrationStatus.CANCELLED)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConflictingStateError("Registration changed while it was being cancelled")

        if held_seats:
            await self.ledger.release(registration.event_id, registration.seats)

        await self.session.commit()

        log_business_event("registration_cancelled", {
            "registration_id": str(registration.id),
            "event_id": str(registration.event_id),
            "seats_released": registration.seats if held_seats else 0,
        }, actor="admin")
        return await self.get_registration(registration_id)

    async def get_registration(self, registration_id: UUID) -> Registration:
        result = await self.session.execute(
            select(Registration)
            .where(Registration.id == registration_id)
            .execution_options(populate_existing=True)
        )
        registration = result.scalar_one_or_none()
        if not registration:
            raise RegistrationNotFoundError(str(registration_id))
        return registration

    def _validate(self, attendee: AttendeeInfo, seats: int) -> AttendeeInfo:
        errors: Dict[str, List[str]] = {}

        if isinstance(seats, bool) or not isinstance(seats, int):
            errors["seats"] = ["Seats must be a whole number"]
        elif not 1 <= seats <= self.settings.max_seats_per_registration:
            errors["seats"] = [f"Seats must be between 1 and {self.settings.max_seats_per_registration}"]

        first_name = (attendee.first_name or "").strip()
        last_name = (attendee.last_name or "").strip()
        if not first_name:
            errors["first_name"] = ["First name is required"]
        if not last_name:
            errors["last_name"] = ["Last name is required"]

        email = (attendee.email or "").strip()
        try:
            email = validate_email(email, check_deliverability=False).normalized
        except EmailNotValidError as e:
            errors["email"] = [str(e)]

        if errors:
            raise ValidationError("Invalid registration request", field_errors=errors)

        phone = (attendee.phone or "").strip() or None
        return AttendeeInfo(first_name=first_name, last_name=last_name, email=email, phone=phone)

    async def _get_published_event(self, event_id: UUID) -> Event:
        result = await self.session.execute(
            select(Event)
            .where(Event.id == event_id)
            .execution_options(populate_existing=True)
        )
        event = result.scalar_one_or_none()
        if not event or event.status != EventStatus.PUBLISHED:
            raise EventNotFoundError(str(event_id))
        return event

    def _new_registration(self, event: Event, attendee: AttendeeInfo, seats: int, **state) -> Registration:
        registration = Registration(
            event_id=event.id,
            first_name=attendee.first_name,
            last_name=attendee.last_name,
            email=attendee.email,
            phone=attendee.phone,
            seats=seats,
            **state
        )
        self.session.add(registration)
        return registration

    async def _waitlist_or_reject(
        self, event: Event, attendee: AttendeeInfo, seats: int, available: int
    ) -> RegistrationOutcome:
        if not event.allow_waitlist:
            raise CapacityExceededError(seats, available, event_id=str(event.id))

        registration = self._new_registration(
            event, attendee, seats,
            status=RegistrationStatus.WAITLIST,
            payment_status=PaymentStatus.PENDING,
            total_amount=Decimal("0.00"),
        )
        await self.session.commit()

        log_business_event("registration_waitlisted", {
            "registration_id": str(registration.id),
            "event_id": str(event.id),
            "seats": seats,
        })
        return RegistrationOutcome(OutcomeKind.WAITLIST, registration)

    async def _register_free(self, event: Event, attendee: AttendeeInfo, seats: int) -> RegistrationOutcome:
        reservation = await self.ledger.try_reserve(event.id, seats)
        if not reservation.granted:
            # Lost the race for the last seats
            logger.info(f"Reservation of {seats} seats on event {event.id} lost a race")
            return await self._waitlist_or_reject(event, attendee, seats, reservation.remaining_after)

        registration = self._new_registration(
            event, attendee, seats,
            status=RegistrationStatus.CONFIRMED,
            payment_status=PaymentStatus.COMPLETED,
            total_amount=Decimal("0.00"),
        )
        await self.session.flush()
        tickets = await self.tickets.issue(registration.id, seats)
        await self.session.commit()

        log_business_event("registration_confirmed", {
            "registration_id": str(registration.id),
            "event_id": str(event.id),
            "seats": seats,
            "remaining": reservation.remaining_after,
        })

        await self.notifications.send_registration_confirmation(registration, event, tickets)
        return RegistrationOutcome(OutcomeKind.CONFIRMED, registration, tickets)

    async def _register_paid(
        self, event: Event, attendee: AttendeeInfo, seats: int, total_amount: Decimal
    ) -> RegistrationOutcome:
        registration = self._new_registration(
            event, attendee, seats,
            status=RegistrationStatus.CONFIRMED,
            payment_status=PaymentStatus.PENDING,
            total_amount=total_amount,
        )
        # Commit before talking to the provider so no transaction stays open across the call
        await self.session.commit()

        try:
            intent = await self.payment_provider.create_intent(
                total_amount,
                metadata={
                    "registration_id": str(registration.id),
                    "event_id": str(event.id),
                    "event_title": event.title,
                },
            )
        except RegisterPathError as e:
            logger.warning(f"Payment intent for registration {registration.id} failed: {e.message}")
            raise

        registration.payment_intent_id = intent.id
        self.session.add(Payment(
            registration_id=registration.id,
            provider_intent_id=intent.id,
            amount=total_amount,
            status=PaymentRecordStatus.PENDING,
        ))
        await self.session.commit()

        log_business_event("registration_payment_pending", {
            "registration_id": str(registration.id),
            "event_id": str(event.id),
            "seats": seats,
            "total_amount": str(total_amount),
            "payment_intent_id": intent.id,
        })
        return RegistrationOutcome(
            OutcomeKind.PAYMENT_REQUIRED,
            registration,
            client_secret=intent.client_secret,
        )
