"""
Event model: a schedulable, capacity-bounded offering attendees register for.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .registration import Registration


class EventStatus(enum.Enum):
    """Lifecycle status of an event."""
    DRAFT = "draft"
    PUBLISHED = "published"


class Event(Base):
    """Event with its seat pool.

    ``remaining`` is owned by the capacity ledger; admin edits only move it
    together with ``capacity``.
    """
    
    __tablename__ = "events"
    
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    hero_image: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    
    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), 
        nullable=False,
        index=True
    )
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    
    # Seat pool
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), 
        nullable=False,
        default=Decimal('0.00')
    )
    
    allow_waitlist: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    status: Mapped[EventStatus] = mapped_column(
        Enum(EventStatus),
        default=EventStatus.DRAFT,
        nullable=False,
        index=True
    )
    
    registrations: Mapped[List["Registration"]] = relationship(
        "Registration", 
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    
    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_events_capacity_positive"),
        CheckConstraint("remaining >= 0", name="ck_events_remaining_non_negative"),
        CheckConstraint("remaining <= capacity", name="ck_events_remaining_within_capacity"),
        CheckConstraint("price >= 0", name="ck_events_price_non_negative"),
        CheckConstraint("start_time < end_time", name="ck_events_time_window"),
    )
    
    @property
    def is_sold_out(self) -> bool:
        """Check if the event has no seats left."""
        return self.remaining == 0
    
    @property
    def is_free(self) -> bool:
        return self.price == 0
    
    @property
    def seats_taken(self) -> int:
        return self.capacity - self.remaining
    
    def __repr__(self) -> str:
        """String representation of the event."""
        return (
            f"<Event(id={self.id}, title='{self.title}', "
            f"start={self.start_time}, remaining={self.remaining}/{self.capacity})>"
        )
