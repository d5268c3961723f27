"""Database models"""

from app.models.guest import Guest
from app.models.reservation import Reservation
from app.models.payment import PaymentRecord, PaymentStatus, PaymentType
from app.models.evse import EVSE, Connector, EVSEQRRate

__all__ = [
    "Guest",
    "Reservation",
    "PaymentRecord",
    "PaymentStatus",
    "PaymentType",
    "EVSE",
    "Connector",
    "EVSEQRRate",
]
