"""Guest QR charging API endpoints"""

from typing import List

from fastapi import APIRouter, Depends

from app.api.deps import get_orchestrator, verify_basic_auth
from app.schemas.qr import (
    APIResponse,
    CheckoutResponse,
    EVSEDetailsResponse,
    GCashPaymentRequest,
    MayaPaymentRequest,
    MobileNumberStatusResponse,
    PaymentResultResponse,
    QRRateResponse,
    ResendOTPRequest,
    ReserveRequest,
    ReserveResponse,
    ReserveWithPaymentRequest,
    VerifyOTPRequest,
    VerifyPaymentResponse,
)
from app.services.orchestrator import ReservationOrchestrator

router = APIRouter(dependencies=[Depends(verify_basic_auth)])


@router.post("/reserve", response_model=APIResponse[ReserveResponse])
async def reserve(
    data: ReserveRequest,
    orchestrator: ReservationOrchestrator = Depends(get_orchestrator),
):
    """Reserve a free charging slot; the guest receives an OTP by SMS"""
    result = await orchestrator.reserve(data)
    return APIResponse(data=result)


@router.post("/reserve-with-payment", response_model=APIResponse[CheckoutResponse])
async def reserve_with_payment(
    data: ReserveWithPaymentRequest,
    orchestrator: ReservationOrchestrator = Depends(get_orchestrator),
):
    """Reserve a paid charging slot and return the provider checkout URL"""
    result = await orchestrator.reserve_with_payment(data)
    return APIResponse(data=result)


@router.post("/payments/gcash", response_model=APIResponse[PaymentResultResponse])
async def gcash_payment(
    data: GCashPaymentRequest,
    orchestrator: ReservationOrchestrator = Depends(get_orchestrator),
):
    result = await orchestrator.gcash_payment(data)
    return APIResponse(data=result)


@router.post("/payments/maya", response_model=APIResponse[PaymentResultResponse])
async def maya_payment(
    data: MayaPaymentRequest,
    orchestrator: ReservationOrchestrator = Depends(get_orchestrator),
):
    result = await orchestrator.maya_payment(data)
    return APIResponse(data=result)


@router.get("/payments/{transaction_id}/verify", response_model=APIResponse[VerifyPaymentResponse])
async def verify_payment(
    transaction_id: str,
    orchestrator: ReservationOrchestrator = Depends(get_orchestrator),
):
    result = await orchestrator.verify_payment(transaction_id)
    return APIResponse(data=result)


@router.post("/otp/verify", response_model=APIResponse[str])
async def verify_otp(
    data: VerifyOTPRequest,
    orchestrator: ReservationOrchestrator = Depends(get_orchestrator),
):
    """Confirm a free reservation with the code sent to the guest"""
    result = await orchestrator.verify_otp(data)
    return APIResponse(data=result)


@router.post("/otp/resend", response_model=APIResponse[str])
async def resend_otp(
    data: ResendOTPRequest,
    orchestrator: ReservationOrchestrator = Depends(get_orchestrator),
):
    result = await orchestrator.resend_otp(data)
    return APIResponse(data=result)


@router.get("/evse/{qr_code}/{evse_uid}", response_model=APIResponse[EVSEDetailsResponse])
async def check_evse(
    qr_code: str,
    evse_uid: str,
    orchestrator: ReservationOrchestrator = Depends(get_orchestrator),
):
    """Resolve a scanned QR code to its EVSE"""
    result = await orchestrator.check_evse(qr_code, evse_uid)
    return APIResponse(data=result)


@router.get("/rates/{evse_uid}", response_model=APIResponse[List[QRRateResponse]])
async def get_qr_rates(
    evse_uid: str,
    orchestrator: ReservationOrchestrator = Depends(get_orchestrator),
):
    result = await orchestrator.get_qr_rates(evse_uid)
    return APIResponse(data=result)


@router.get("/mobile-number/{mobile_number}/status", response_model=APIResponse[MobileNumberStatusResponse])
async def check_mobile_number_status(
    mobile_number: str,
    orchestrator: ReservationOrchestrator = Depends(get_orchestrator),
):
    result = await orchestrator.check_mobile_number_status(mobile_number)
    return APIResponse(data=result)
