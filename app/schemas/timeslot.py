"""Booking timeslot schemas"""

from typing import Optional
from pydantic import BaseModel


class Timeslot(BaseModel):
    """Timeslot as returned by the booking service"""
    timeslot_id: int
    start: Optional[str] = None
    end: Optional[str] = None
    date: Optional[str] = None

    class Config:
        extra = "allow"
