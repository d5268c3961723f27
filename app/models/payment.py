"""Payment record model"""

from datetime import datetime
from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
import enum

from app.database import Base


class PaymentType(str, enum.Enum):
    """Supported payment providers"""
    GCASH = "gcash"
    MAYA = "maya"


class PaymentStatus(str, enum.Enum):
    """Payment lifecycle; paid and failed are terminal"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PaymentStatus.PAID, PaymentStatus.FAILED)


class PaymentRecord(Base):
    """One attempt to pay for a reservation"""
    __tablename__ = "user_driver_qr_payment_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    guest_id = Column(Integer, ForeignKey("user_driver_guests.id"), nullable=False)
    evse_qr_rate_id = Column(Integer, ForeignKey("evse_qr_rates.id"))

    amount = Column(Numeric(10, 2), nullable=False)
    payment_type = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)

    # Raw status string last reported by the provider
    provider_status = Column(String(50))
    transaction_id = Column(String(255), index=True)
    maya_client_key = Column(String(255))
    description = Column(Text)

    # Metadata
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    guest = relationship("Guest", back_populates="payment_records")
