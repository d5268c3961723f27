"""Guest driver model"""

from datetime import datetime
from sqlalchemy import Column, String, Integer, Boolean, DateTime
from sqlalchemy.orm import relationship

from app.database import Base


class Guest(Base):
    """Transient identity created per reservation attempt"""
    __tablename__ = "user_driver_guests"

    id = Column(Integer, primary_key=True, autoincrement=True)

    mobile_number = Column(String(20), nullable=False, index=True)
    rfid = Column(String(12), nullable=False, unique=True)

    # OTP is only issued on the free path
    otp = Column(String(10))
    otp_verified = Column(Boolean, default=False)

    is_free = Column(Boolean, default=False)
    paid_charge_mins = Column(Integer, default=0)
    home_link = Column(String(500))

    # Status
    charging_status = Column(String(50), default="RESERVED")  # RESERVED, CHARGING, DONE, CANCELLED

    # Metadata
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    reservation = relationship("Reservation", back_populates="guest", uselist=False)
    payment_records = relationship("PaymentRecord", back_populates="guest")
