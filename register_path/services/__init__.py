"""Business logic services for the Register Path service."""

from .capacity_ledger import CapacityLedger, ReservationResult
from .checkin_service import CheckInService
from .event_service import EventService
from .notification_service import NotificationService
from .payment_reconciliation import PaymentReconciliationService
from .registration_service import RegistrationService
from .reminder_scheduler import ReminderScheduler, ReminderSweep
from .ticket_codes import TicketCodeGenerator

__all__ = [
    "CapacityLedger",
    "ReservationResult",
    "CheckInService",
    "EventService",
    "NotificationService",
    "PaymentReconciliationService",
    "RegistrationService",
    "ReminderScheduler",
    "ReminderSweep",
    "TicketCodeGenerator",
]
