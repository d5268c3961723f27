"""QR reservation schemas"""

from decimal import Decimal
from typing import Generic, List, Optional, TypeVar
from pydantic import BaseModel, Field, field_validator

T = TypeVar("T")


def _validate_time(value: str) -> str:
    parts = value.split(":")
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        raise ValueError("time must be formatted as HH:MM:SS")
    if not 0 <= int(parts[0]) <= 23:
        raise ValueError("hour must be between 0 and 23")
    return value


class APIResponse(BaseModel, Generic[T]):
    """Envelope returned by every QR endpoint"""
    status: int = 200
    data: T
    message: str = "Success"


class ReserveRequest(BaseModel):
    """Free charging reservation request"""
    is_free: int = 1
    mobile_number: str = Field(min_length=1, max_length=20)
    location_id: int
    evse_uid: str
    connector_id: str
    current_time: str
    current_date: str
    paid_charge_mins: int = Field(ge=0)
    homelink: str

    @field_validator("current_time")
    @classmethod
    def check_current_time(cls, value: str) -> str:
        return _validate_time(value)


class ReserveResponse(BaseModel):
    """Committed free reservation"""
    user_driver_guest_id: int
    timeslot_id: int
    next_timeslot_id: int
    status: str


class ReserveWithPaymentRequest(BaseModel):
    """Paid charging reservation request"""
    mobile_number: str = Field(min_length=1, max_length=20)
    location_id: int
    evse_uid: str
    connector_id: str
    current_time: str
    current_date: str
    paid_charge_mins: int = Field(ge=0)
    amount: Decimal = Field(gt=0)
    payment_type: str  # gcash, maya
    homelink: str
    evse_qr_rate_id: Optional[int] = None

    @field_validator("current_time")
    @classmethod
    def check_current_time(cls, value: str) -> str:
        return _validate_time(value)


class CheckoutResponse(BaseModel):
    """Where to send the guest to complete the payment"""
    checkout_url: Optional[str] = None


class GCashPaymentRequest(BaseModel):
    """GCash redirect callback"""
    token: str = Field(min_length=2)
    payment_id: int
    evse_uid: str
    connector_id: str


class MayaPaymentRequest(BaseModel):
    """Maya redirect callback"""
    token: str
    transaction_id: str
    evse_uid: str
    connector_id: str


class PaymentResultResponse(BaseModel):
    """Outcome of a payment callback"""
    payment_status: str  # SUCCESS, FAILED, PENDING
    home_link: Optional[str] = None
    transaction_id: Optional[str] = None


class VerifyOTPRequest(BaseModel):
    user_driver_guest_id: int
    otp: str
    timeslot_id: int
    next_timeslot_id: int


class ResendOTPRequest(BaseModel):
    user_driver_guest_id: int
    timeslot_id: int
    next_timeslot_id: int


class QRRateResponse(BaseModel):
    id: int
    evse_uid: str
    label: Optional[str]
    charge_mins: int
    price: Decimal

    class Config:
        from_attributes = True


class ConnectorResponse(BaseModel):
    connector_id: str
    standard: Optional[str]
    power_type: Optional[str]
    max_power: Optional[int]
    status: str

    class Config:
        from_attributes = True


class EVSEDetailsResponse(BaseModel):
    """EVSE behind a scanned QR code"""
    status: str
    uid: str
    qr_code: int
    location_id: int
    model: Optional[str]
    vendor: Optional[str]
    evse_status: str
    connectors: List[ConnectorResponse] = []
    rates: List[QRRateResponse] = []


class MobileNumberStatusResponse(BaseModel):
    charging_status: Optional[str] = None


class VerifyPaymentResponse(BaseModel):
    amount: Decimal
    payment_type: str
    payment_status: str
    transaction_id: str
    paid_charge_mins: int
