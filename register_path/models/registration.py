"""
Registration model: one attendee's booking of N seats against an event.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .event import Event
    from .ticket import Ticket
    from .payment import Payment


class RegistrationStatus(enum.Enum):
    """Enumeration for registration status."""
    CONFIRMED = "confirmed"
    WAITLIST = "waitlist"
    CANCELLED = "cancelled"


class PaymentStatus(enum.Enum):
    """Enumeration for the payment side of a registration."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Registration(Base):
    """Registration model for attendee bookings."""
    
    __tablename__ = "registrations"
    
    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    
    # Attendee contact
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    
    seats: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    
    status: Mapped[RegistrationStatus] = mapped_column(
        Enum(RegistrationStatus),
        default=RegistrationStatus.CONFIRMED,
        nullable=False,
        index=True
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True
    )
    
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), 
        nullable=False,
        default=Decimal('0.00')
    )
    payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    
    # Set once a reminder has been claimed for delivery
    reminder_sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    
    event: Mapped["Event"] = relationship("Event", back_populates="registrations")
    
    tickets: Mapped[List["Ticket"]] = relationship(
        "Ticket", 
        back_populates="registration",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    
    payments: Mapped[List["Payment"]] = relationship(
        "Payment", 
        back_populates="registration",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    
    __table_args__ = (
        CheckConstraint("seats >= 1 AND seats <= 4", name="ck_registrations_seats_range"),
        CheckConstraint("total_amount >= 0", name="ck_registrations_total_amount_non_negative"),
    )
    
    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
    
    @property
    def holds_seats(self) -> bool:
        """Seats are reserved only for confirmed registrations whose payment settled."""
        return (
            self.status == RegistrationStatus.CONFIRMED
            and self.payment_status == PaymentStatus.COMPLETED
        )
    
    def __repr__(self) -> str:
        """String representation of the registration."""
        return (
            f"<Registration(id={self.id}, event_id={self.event_id}, seats={self.seats}, "
            f"status={self.status.value}, payment_status={self.payment_status.value})>"
        )
