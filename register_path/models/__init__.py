"""
Database models for the Register Path service.
"""

from .base import Base
from .event import Event, EventStatus
from .registration import Registration, RegistrationStatus, PaymentStatus
from .ticket import Ticket
from .payment import Payment, PaymentRecordStatus

__all__ = [
    "Base",
    "Event",
    "EventStatus",
    "Registration",
    "RegistrationStatus",
    "PaymentStatus",
    "Ticket",
    "Payment",
    "PaymentRecordStatus",
]
