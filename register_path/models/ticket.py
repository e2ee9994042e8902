"""
Ticket model: one redeemable unit tied to one seat of a registration.
"""

import uuid
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .registration import Registration


class Ticket(Base):
    """Ticket model. ``checked_in`` only ever moves from False to True."""
    
    __tablename__ = "tickets"
    
    registration_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("registrations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    
    ticket_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    qr_data: Mapped[str] = mapped_column(Text, nullable=False)
    
    checked_in: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    checked_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    
    registration: Mapped["Registration"] = relationship("Registration", back_populates="tickets")
    
    def __repr__(self) -> str:
        return f"<Ticket(code={self.ticket_code}, checked_in={self.checked_in})>"
