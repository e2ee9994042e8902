"""
Payment model tracking the lifecycle of an external payment intent.
"""

import enum
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .registration import Registration


class PaymentRecordStatus(enum.Enum):
    """Status of a payment intent as last reported by the provider."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Payment(Base):
    """Payment attached to a paid registration."""
    
    __tablename__ = "payments"
    
    registration_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("registrations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    
    provider_intent_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    
    status: Mapped[PaymentRecordStatus] = mapped_column(
        Enum(PaymentRecordStatus),
        default=PaymentRecordStatus.PENDING,
        nullable=False,
        index=True
    )
    
    registration: Mapped["Registration"] = relationship("Registration", back_populates="payments")
    
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payments_amount_non_negative"),
    )
    
    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, intent={self.provider_intent_id}, "
            f"status={self.status.value})>"
        )
