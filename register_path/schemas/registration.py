"""
Registration schemas for request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ..models.registration import RegistrationStatus, PaymentStatus


class RegistrationCreate(BaseModel):
    """Schema for registering for an event."""

    event_id: UUID
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)
    seats: int = Field(default=1, ge=1, le=4, description="Seats to register (1-4)")


class TicketResponse(BaseModel):
    """Schema for an issued ticket."""

    ticket_code: str
    qr_data: str
    checked_in: bool
    checked_in_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RegistrationResponse(BaseModel):
    """Schema for registration response."""

    id: UUID
    event_id: UUID
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    seats: int
    status: RegistrationStatus
    payment_status: PaymentStatus
    total_amount: Decimal
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RegistrationWithTicketsResponse(RegistrationResponse):
    """Registration as listed for organizers."""

    tickets: List[TicketResponse] = []


class RegistrationOutcomeResponse(BaseModel):
    """Result of a registration attempt."""

    outcome: str = Field(..., description="confirmed, waitlist or payment_required")
    registration: RegistrationResponse
    tickets: List[TicketResponse] = []
    client_secret: Optional[str] = Field(None, description="Payment client secret when payment is required")


class RefundRequest(BaseModel):
    """Refund amount; when given it must equal the amount paid."""

    amount: Optional[Decimal] = Field(None, gt=0)
