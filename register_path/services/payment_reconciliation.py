"""
Payment reconciliation: applies provider payment outcomes to registrations.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.event import Event
from ..models.payment import Payment, PaymentRecordStatus
from ..models.registration import Registration, RegistrationStatus, PaymentStatus
from ..models.ticket import Ticket
from ..utils.exceptions import ConflictingStateError, RegistrationNotFoundError, ValidationError
from ..utils.logging_config import log_business_event
from .capacity_ledger import CapacityLedger
from .notification_service import NotificationService
from .payment_provider import NotificationKind, PaymentNotification, PaymentProvider
from .ticket_codes import TicketCodeGenerator
from .ticket_issuer import TicketIssuer

logger = logging.getLogger(__name__)


class ReconciliationAction(str, Enum):
    CONFIRMED = "confirmed"
    OVERSOLD = "oversold"
    PAYMENT_FAILED = "payment_failed"
    REFUNDED = "refunded"
    ALREADY_PROCESSED = "already_processed"
    UNKNOWN_INTENT = "unknown_intent"
    IGNORED = "ignored"


@dataclass
class ReconciliationResult:
    action: ReconciliationAction
    registration_id: Optional[UUID] = None
    tickets: List[Ticket] = field(default_factory=list)


class PaymentReconciliationService:
    """
    Moves payments and their registrations forward when the provider reports an outcome.

    Every transition is a compare-and-swap on the current status, so duplicate
    or out-of-order deliveries of the same notification change nothing the
    second time around.
    """

    def __init__(
        self,
        session: AsyncSession,
        payment_provider: PaymentProvider,
        notification_service: NotificationService,
        ticket_generator: TicketCodeGenerator,
    ):
        self.session = session
        self.payment_provider = payment_provider
        self.notifications = notification_service
        self.ledger = CapacityLedger(session)
        self.tickets = TicketIssuer(session, ticket_generator)

    async def handle_notification(self, notification: PaymentNotification) -> ReconciliationResult:
        """Dispatch a verified provider notification."""
        if notification.kind == NotificationKind.IGNORED or not notification.intent_id:
            logger.debug(f"Ignoring payment notification {notification.event_type}")
            return ReconciliationResult(ReconciliationAction.IGNORED)

        logger.info(f"Reconciling {notification.kind.value} for payment intent {notification.intent_id}")

        if notification.kind == NotificationKind.SUCCEEDED:
            return await self.apply_success(notification.intent_id)
        if notification.kind == NotificationKind.FAILED:
            return await self.apply_failure(notification.intent_id)
        return await self.apply_refund(notification.intent_id)

    async def apply_success(self, intent_id: str) -> ReconciliationResult:
        payment = await self._find_payment(intent_id)
        if payment is None:
            return ReconciliationResult(ReconciliationAction.UNKNOWN_INTENT)

        claimed = await self.session.execute(
            update(Payment)
            .where(
                Payment.id == payment.id,
                Payment.status.in_([PaymentRecordStatus.PENDING, PaymentRecordStatus.FAILED]),
            )
            .values(status=PaymentRecordStatus.SUCCEEDED)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            await self.session.commit()
            logger.info(f"Payment intent {intent_id} already reconciled")
            return ReconciliationResult(ReconciliationAction.ALREADY_PROCESSED, payment.registration_id)

        registration = await self._load_registration(payment.registration_id)
        registration.payment_status = PaymentStatus.COMPLETED

        if registration.status == RegistrationStatus.CANCELLED:
            await self.session.commit()
            logger.error(
                f"Payment {intent_id} succeeded for cancelled registration {registration.id}; refund required"
            )
            return ReconciliationResult(ReconciliationAction.ALREADY_PROCESSED, registration.id)

        reservation = await self.ledger.try_reserve(registration.event_id, registration.seats)
        if not reservation.granted:
            registration.status = RegistrationStatus.WAITLIST
            await self.session.commit()
            logger.error(
                f"Event {registration.event_id} sold out before payment {intent_id} settled: "
                f"registration {registration.id} moved to waitlist with payment completed "
                f"({registration.seats} seats requested, {reservation.remaining_after} remaining)"
            )
            log_business_event("payment_oversold", {
                "registration_id": str(registration.id),
                "event_id": str(registration.event_id),
                "payment_intent_id": intent_id,
            })
            return ReconciliationResult(ReconciliationAction.OVERSOLD, registration.id)

        registration.status = RegistrationStatus.CONFIRMED
        existing = await self.tickets.count_for_registration(registration.id)
        await self.tickets.issue(registration.id, registration.seats - existing)
        await self.session.commit()

        tickets = await self.tickets.list_for_registration(registration.id)
        log_business_event("payment_reconciled", {
            "registration_id": str(registration.id),
            "event_id": str(registration.event_id),
            "payment_intent_id": intent_id,
            "tickets_issued": len(tickets),
            "remaining": reservation.remaining_after,
        })

        event = await self.session.get(Event, registration.event_id)
        await self.notifications.send_registration_confirmation(registration, event, tickets)
        return ReconciliationResult(ReconciliationAction.CONFIRMED, registration.id, tickets)

    async def apply_failure(self, intent_id: str) -> ReconciliationResult:
        payment = await self._find_payment(intent_id)
        if payment is None:
            return ReconciliationResult(ReconciliationAction.UNKNOWN_INTENT)

        failed = await self.session.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status == PaymentRecordStatus.PENDING)
            .values(status=PaymentRecordStatus.FAILED)
            .execution_options(synchronize_session=False)
        )
        if failed.rowcount:
            await self.session.execute(
                update(Registration)
                .where(
                    Registration.id == payment.registration_id,
                    Registration.payment_status == PaymentStatus.PENDING,
                )
                .values(payment_status=PaymentStatus.FAILED)
                .execution_options(synchronize_session=False)
            )
        await self.session.commit()

        if not failed.rowcount:
            return ReconciliationResult(ReconciliationAction.ALREADY_PROCESSED, payment.registration_id)

        logger.warning(f"Payment intent {intent_id} failed for registration {payment.registration_id}")
        return ReconciliationResult(ReconciliationAction.PAYMENT_FAILED, payment.registration_id)

    async def apply_refund(self, intent_id: str) -> ReconciliationResult:
        payment = await self._find_payment(intent_id)
        if payment is None:
            return ReconciliationResult(ReconciliationAction.UNKNOWN_INTENT)

        await self.session.execute(
            update(Payment)
            .where(Payment.id == payment.id, Payment.status != PaymentRecordStatus.CANCELLED)
            .values(status=PaymentRecordStatus.CANCELLED)
            .execution_options(synchronize_session=False)
        )

        # Only a registration that was holding seats gives them back
        released = await self.session.execute(
            update(Registration)
            .where(
                Registration.id == payment.registration_id,
                Registration.status == RegistrationStatus.CONFIRMED,
                Registration.payment_status == PaymentStatus.COMPLETED,
            )
            .values(status=RegistrationStatus.CANCELLED, payment_status=PaymentStatus.REFUNDED)
            .execution_options(synchronize_session=False)
        )
        if released.rowcount:
            registration = await self._load_registration(payment.registration_id)
            await self.ledger.release(registration.event_id, registration.seats)
            changed = True
        else:
            other = await self.session.execute(
                update(Registration)
                .where(
                    Registration.id == payment.registration_id,
                    or_(
                        Registration.status != RegistrationStatus.CANCELLED,
                        Registration.payment_status != PaymentStatus.REFUNDED,
                    ),
                )
                .values(status=RegistrationStatus.CANCELLED, payment_status=PaymentStatus.REFUNDED)
                .execution_options(synchronize_session=False)
            )
            changed = bool(other.rowcount)
        await self.session.commit()

        if not changed:
            return ReconciliationResult(ReconciliationAction.ALREADY_PROCESSED, payment.registration_id)

        log_business_event("payment_refunded", {
            "registration_id": str(payment.registration_id),
            "payment_intent_id": intent_id,
            "seats_released": bool(released.rowcount),
        })
        return ReconciliationResult(ReconciliationAction.REFUNDED, payment.registration_id)

    async def refund_registration(self, registration_id: UUID, amount: Optional[Decimal] = None) -> ReconciliationResult:
        """Refund a settled registration through the provider and cancel it."""
        registration = await self._load_registration(registration_id)

        if registration.payment_status != PaymentStatus.COMPLETED or not registration.payment_intent_id:
            raise ConflictingStateError(
                "Only registrations with a completed payment can be refunded",
                current_state=registration.payment_status.value,
                required_state=PaymentStatus.COMPLETED.value,
            )
        if amount is not None and amount != registration.total_amount:
            # A refund cancels the registration, so it must cover the whole payment
            raise ValidationError(
                f"Refund amount must equal the amount paid ({registration.total_amount})",
                field_errors={"amount": [f"must be {registration.total_amount}"]},
            )

        await self.payment_provider.refund(registration.payment_intent_id, amount)
        return await self.apply_refund(registration.payment_intent_id)

    async def _find_payment(self, intent_id: str) -> Optional[Payment]:
        payment = await self.session.scalar(
            select(Payment)
            .where(Payment.provider_intent_id == intent_id)
            .execution_options(populate_existing=True)
        )
        if payment is None:
            logger.warning(f"Payment notification for unknown intent {intent_id}")
        return payment

    async def _load_registration(self, registration_id: UUID) -> Registration:
        registration = await self.session.scalar(
            select(Registration)
            .where(Registration.id == registration_id)
            .execution_options(populate_existing=True)
        )
        if registration is None:
            raise RegistrationNotFoundError(str(registration_id))
        return registration
