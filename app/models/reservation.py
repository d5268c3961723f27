"""Reservation model"""

from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from app.database import Base


class Reservation(Base):
    """Links a guest to the current and next booking timeslot"""
    __tablename__ = "user_driver_guest_reservations"
    __table_args__ = (
        # One live reservation per timeslot and date; cancelled rows free the slot
        Index(
            "uq_reservation_active_timeslot",
            "timeslot_id",
            "requested_date",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    guest_id = Column(Integer, ForeignKey("user_driver_guests.id"), nullable=False, unique=True)

    # Timeslots live in the booking service; only their ids are stored
    timeslot_id = Column(Integer, nullable=False, index=True)
    next_timeslot_id = Column(Integer, nullable=False)

    # Request context (the guest's local time and date when scanning)
    requested_time = Column(String(8), nullable=False)
    requested_date = Column(String(10), nullable=False)
    timeslot_time = Column(String(8))
    next_timeslot_date = Column(String(10))

    # Status
    status = Column(String(50), default="RESERVED")  # RESERVED, CONFIRMED, CANCELLED

    # Metadata
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    guest = relationship("Guest", back_populates="reservation")
