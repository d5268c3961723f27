"""Pydantic schemas for request/response validation"""

from app.schemas.qr import (
    APIResponse,
    ReserveRequest,
    ReserveResponse,
    ReserveWithPaymentRequest,
    CheckoutResponse,
    GCashPaymentRequest,
    MayaPaymentRequest,
    PaymentResultResponse,
    VerifyOTPRequest,
    ResendOTPRequest,
    QRRateResponse,
    ConnectorResponse,
    EVSEDetailsResponse,
    MobileNumberStatusResponse,
    VerifyPaymentResponse,
)
from app.schemas.timeslot import Timeslot
from app.schemas.payment import PaymentIntent, PaymentResolution

__all__ = [
    "APIResponse",
    "ReserveRequest",
    "ReserveResponse",
    "ReserveWithPaymentRequest",
    "CheckoutResponse",
    "GCashPaymentRequest",
    "MayaPaymentRequest",
    "PaymentResultResponse",
    "VerifyOTPRequest",
    "ResendOTPRequest",
    "QRRateResponse",
    "ConnectorResponse",
    "EVSEDetailsResponse",
    "MobileNumberStatusResponse",
    "VerifyPaymentResponse",
    "Timeslot",
    "PaymentIntent",
    "PaymentResolution",
]
