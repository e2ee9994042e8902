"""
Ticket verification and check-in schemas.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from ..models.registration import RegistrationStatus, PaymentStatus


class TicketEventInfo(BaseModel):
    id: UUID
    title: str
    location: str
    start_time: datetime


class TicketVerificationResponse(BaseModel):
    """What a door scanner shows for a ticket."""

    valid: bool
    already_checked_in: bool
    ticket_code: str
    checked_in_at: Optional[datetime] = None
    attendee_name: str
    seats: int
    registration_status: RegistrationStatus
    payment_status: PaymentStatus
    event: TicketEventInfo


class CheckInResponse(BaseModel):
    ticket_code: str
    checked_in_at: datetime
    attendee_name: str
    event_title: str
