"""Reservation and payment orchestration for QR charging.

A reservation attempt moves through

    STARTED -> TIMESLOT_RESOLVED -> GUEST_CREATED -> RESERVED
        -> PAYMENT_PENDING -> PAYMENT_PAID | PAYMENT_FAILED      (paid path)
        -> OTP_SENT -> CONFIRMED                                   (free path)

and ends in ROLLED_BACK when anything fails before the commit. All state lives
in the database; the orchestrator keeps nothing between calls.
"""

from contextlib import asynccontextmanager
from typing import Dict, List, Optional
import enum
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.config import Settings
from app.errors import BadRequest, Conflict, NotFound
from app.models.payment import PaymentStatus, PaymentType
from app.notifications.otp import OTPGateway
from app.payments.amounts import clean_amount_for_topup
from app.payments.auth import AuthModuleClient
from app.payments.providers.base import BasePaymentProvider
from app.payments.providers.maya import AWAITING_NEXT_ACTION
from app.persistence.gateway import PersistenceGateway
from app.persistence.results import Outcome, ProcedureResult
from app.schemas.qr import (
    CheckoutResponse,
    ConnectorResponse,
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
from app.timeslots.client import TimeslotClient

logger = structlog.get_logger()

PAYMENT_TYPES = [payment_type.value for payment_type in PaymentType]
QR_PREFIX = "QR"


class ReservationState(str, enum.Enum):
    STARTED = "STARTED"
    TIMESLOT_RESOLVED = "TIMESLOT_RESOLVED"
    GUEST_CREATED = "GUEST_CREATED"
    RESERVED = "RESERVED"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    PAYMENT_PAID = "PAYMENT_PAID"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    OTP_SENT = "OTP_SENT"
    CONFIRMED = "CONFIRMED"
    ROLLED_BACK = "ROLLED_BACK"


def parse_qr_code(qr_code: str) -> int:
    """Return the number of a ``QR-<number>`` code"""
    prefix, _, number = qr_code.strip().partition("-")
    if prefix != QR_PREFIX or not number.isdigit():
        raise BadRequest(
            "INVALID_QR_CODE_FORMAT",
            [{"message": "Valid QR code format are QR-****"}],
        )
    return int(number)


def _transition(log, state: ReservationState, **context) -> None:
    log.info("Reservation state", state=state.value, **context)


def _current_hour(current_time: str) -> int:
    return int(current_time.split(":")[0])


def _generate_rfid() -> str:
    return uuid.uuid4().hex[:12].upper()


def _ensure_success(result: ProcedureResult, conflict_is_error: bool = False) -> ProcedureResult:
    """Turn a non-SUCCESS storage outcome into the matching error"""
    if result.ok:
        return result
    if conflict_is_error and result.outcome is Outcome.CONFLICT:
        raise Conflict(result.detail)
    if result.outcome is Outcome.NOT_FOUND:
        raise NotFound(result.detail)
    raise BadRequest(result.detail)


def _ensure_not_finalized(payment_status: str) -> None:
    status = PaymentStatus(payment_status)
    if status.is_terminal:
        raise BadRequest(f"ALREADY_{status.name}")


@asynccontextmanager
async def _attempt(gateway: PersistenceGateway, log):
    """Transaction for one reservation attempt, logging the rollback"""
    try:
        async with gateway.transaction() as session:
            _transition(log, ReservationState.STARTED)
            yield session
    except Exception as e:
        _transition(log, ReservationState.ROLLED_BACK, reason=str(e) or type(e).__name__)
        raise


async def _reconcile_evse(gateway: PersistenceGateway, evse_uid: str, connector_id: str, log) -> None:
    connector = await gateway.check_and_update_connector_status(evse_uid, connector_id)
    evse = await gateway.check_and_update_evse_status(evse_uid)
    for result in (connector, evse):
        if not result.ok:
            log.warning("EVSE reconciliation incomplete", status=result.status)


async def _start_gcash(
    gateway: PersistenceGateway,
    session: AsyncSession,
    provider: BasePaymentProvider,
    data: ReserveWithPaymentRequest,
    guest_id: int,
    amount: int,
    auth_token: str,
    description: str,
    log,
) -> Optional[str]:
    """Record a pending payment, then open the GCash source that pays it"""
    record = _ensure_success(
        await gateway.add_payment_record(
            session,
            guest_id=guest_id,
            evse_qr_rate_id=data.evse_qr_rate_id,
            amount=data.amount,
            payment_type=PaymentType.GCASH.value,
            payment_status=PaymentStatus.PENDING,
            description=description,
        )
    )
    payment_id = record["payment_id"]
    _transition(log, ReservationState.PAYMENT_PENDING, payment_id=payment_id)

    intent = await provider.create_intent(
        auth_token=auth_token,
        guest_id=guest_id,
        amount=amount,
        description=description,
        evse_uid=data.evse_uid,
        connector_id=data.connector_id,
        payment_id=payment_id,
    )

    _ensure_success(
        await gateway.update_payment_record(
            session,
            payment_id=payment_id,
            provider_status=intent.provider_status,
            new_transaction_id=intent.transaction_id,
        )
    )
    return intent.checkout_url


async def _start_maya(
    gateway: PersistenceGateway,
    session: AsyncSession,
    provider: BasePaymentProvider,
    data: ReserveWithPaymentRequest,
    guest_id: int,
    amount: int,
    auth_token: str,
    description: str,
    log,
) -> Optional[str]:
    """Open a Maya intent; a record is only kept when the guest can pay it"""
    intent = await provider.create_intent(
        auth_token=auth_token,
        guest_id=guest_id,
        amount=amount,
        description=description,
        evse_uid=data.evse_uid,
        connector_id=data.connector_id,
    )

    if intent.provider_status != AWAITING_NEXT_ACTION:
        log.warning("Maya intent not awaiting action", provider_status=intent.provider_status)
        return None

    record = _ensure_success(
        await gateway.add_payment_record(
            session,
            guest_id=guest_id,
            evse_qr_rate_id=data.evse_qr_rate_id,
            amount=data.amount,
            payment_type=PaymentType.MAYA.value,
            payment_status=PaymentStatus.PENDING,
            provider_status=intent.provider_status,
            transaction_id=intent.transaction_id,
            client_key=intent.client_key,
            description=description,
        )
    )
    _transition(log, ReservationState.PAYMENT_PENDING, payment_id=record["payment_id"])
    return intent.checkout_url


async def _finish_payment(
    gateway: PersistenceGateway,
    status: Optional[PaymentStatus],
    home_link: Optional[str],
    transaction_id: Optional[str],
    evse_uid: str,
    connector_id: str,
    log,
) -> PaymentResultResponse:
    if status is PaymentStatus.PAID:
        await _reconcile_evse(gateway, evse_uid, connector_id, log)
        _transition(log, ReservationState.PAYMENT_PAID)
        payment_status = "SUCCESS"
    elif status is PaymentStatus.FAILED:
        _transition(log, ReservationState.PAYMENT_FAILED)
        payment_status = "FAILED"
    else:
        payment_status = "PENDING"

    return PaymentResultResponse(
        payment_status=payment_status,
        home_link=home_link,
        transaction_id=transaction_id,
    )


class ReservationOrchestrator:
    """Reserve, pay for and confirm guest charging sessions"""

    def __init__(
        self,
        settings: Settings,
        gateway: PersistenceGateway,
        timeslots: TimeslotClient,
        otp: OTPGateway,
        auth_module: AuthModuleClient,
        providers: Dict[str, BasePaymentProvider],
    ):
        self.gateway = gateway
        self.timeslots = timeslots
        self.otp = otp
        self.auth_module = auth_module
        self.providers = providers
        self.dispatch_before_commit = settings.otp_dispatch_before_commit

    async def reserve(self, data: ReserveRequest) -> ReserveResponse:
        """Reserve a free charging slot and text the guest an OTP"""
        log = logger.bind(
            flow="reserve",
            mobile_number=data.mobile_number[-4:],
            evse_uid=data.evse_uid,
            connector_id=data.connector_id,
        )

        otp = self.otp.generate()
        rfid = _generate_rfid()

        async with _attempt(self.gateway, log) as session:
            current, next_slot = await self.timeslots.get_timeslots(
                data.location_id,
                data.evse_uid,
                data.connector_id,
                _current_hour(data.current_time),
            )
            _transition(log, ReservationState.TIMESLOT_RESOLVED, timeslot_id=current.timeslot_id)

            guest = _ensure_success(
                await self.gateway.add_guest(
                    session,
                    is_free=bool(data.is_free),
                    mobile_number=data.mobile_number,
                    current_date=data.current_date,
                    paid_charge_mins=data.paid_charge_mins,
                    rfid=rfid,
                    otp=otp,
                    homelink=data.homelink,
                )
            )
            guest_id = guest["guest_id"]
            _transition(log, ReservationState.GUEST_CREATED, guest_id=guest_id)

            reservation = _ensure_success(
                await self.gateway.reserve(
                    session,
                    user_guest_id=guest_id,
                    timeslot_id=current.timeslot_id,
                    next_timeslot_id=next_slot.timeslot_id,
                    current_time=data.current_time,
                    current_date=data.current_date,
                    timeslot_time=current.end,
                    next_timeslot_date=next_slot.date,
                )
            )
            _transition(log, ReservationState.RESERVED)

            if self.dispatch_before_commit:
                await self.otp.send(data.mobile_number, otp)
                _transition(log, ReservationState.OTP_SENT)

            await self.gateway.commit(session)

        if not self.dispatch_before_commit:
            delivered = await self.otp.deliver(data.mobile_number, otp)
            _transition(log, ReservationState.OTP_SENT, delivered=delivered)

        return ReserveResponse(
            user_driver_guest_id=guest_id,
            timeslot_id=reservation["timeslot_id"],
            next_timeslot_id=reservation["next_timeslot_id"],
            status=guest.status,
        )

    async def reserve_with_payment(self, data: ReserveWithPaymentRequest) -> CheckoutResponse:
        """Reserve a slot and start a GCash or Maya payment for it"""
        if data.payment_type not in PAYMENT_TYPES:
            raise BadRequest(
                "INVALID_PAYMENT_TYPE",
                {"message": "Valid payment types are: gcash, and maya"},
            )
        provider = self.providers[data.payment_type]
        amount = clean_amount_for_topup(data.amount)

        log = logger.bind(
            flow="reserve_with_payment",
            payment_type=data.payment_type,
            mobile_number=data.mobile_number[-4:],
            evse_uid=data.evse_uid,
            connector_id=data.connector_id,
        )

        async with _attempt(self.gateway, log) as session:
            current, next_slot = await self.timeslots.get_timeslots(
                data.location_id,
                data.evse_uid,
                data.connector_id,
                _current_hour(data.current_time),
            )
            _transition(log, ReservationState.TIMESLOT_RESOLVED, timeslot_id=current.timeslot_id)

            reservation = _ensure_success(
                await self.gateway.reserve_with_payment(
                    session,
                    mobile_number=data.mobile_number,
                    paid_charge_mins=data.paid_charge_mins,
                    timeslot_id=current.timeslot_id,
                    next_timeslot_id=next_slot.timeslot_id,
                    current_time=data.current_time,
                    current_date=data.current_date,
                    timeslot_time=current.end,
                    next_timeslot_date=next_slot.date,
                    rfid=_generate_rfid(),
                    homelink=data.homelink,
                ),
                conflict_is_error=True,
            )
            guest_id = reservation["guest_id"]
            _transition(log, ReservationState.RESERVED, guest_id=guest_id)

            auth_token = await self.auth_module.request_token()
            description = str(uuid.uuid4())

            start = _start_gcash if data.payment_type == PaymentType.GCASH.value else _start_maya
            checkout_url = await start(
                self.gateway, session, provider, data, guest_id, amount, auth_token, description, log
            )

            await self.gateway.commit(session)

        return CheckoutResponse(checkout_url=checkout_url)

    async def gcash_payment(self, data: GCashPaymentRequest) -> PaymentResultResponse:
        """Finish a GCash payment from the provider's redirect.

        The last character of the token is the outcome flag ("0" means the
        guest did not pay); the token minus its flag and separator authorizes
        the confirmation call.
        """
        log = logger.bind(flow="gcash_payment", payment_id=data.payment_id)

        details = await self.gateway.get_payment_details(payment_id=data.payment_id)
        if details is None:
            raise NotFound("PAYMENT_ID_NOT_FOUND")
        _ensure_not_finalized(details["payment_status"])

        transaction_id = details["transaction_id"]
        flag = data.token[-1]
        token = data.token[:-2]

        if flag == "0":
            update = _ensure_success(
                await self.gateway.update_payment_record(
                    payment_id=data.payment_id,
                    status=PaymentStatus.FAILED,
                    provider_status="failed",
                )
            )
            return await _finish_payment(
                self.gateway,
                PaymentStatus.FAILED,
                update["home_link"],
                transaction_id,
                data.evse_uid,
                data.connector_id,
                log,
            )

        description = str(uuid.uuid4())
        resolution = await self.providers[PaymentType.GCASH.value].resolve_status(
            token=token,
            transaction_id=transaction_id,
            amount=clean_amount_for_topup(details["amount"]),
            description=description,
        )

        update = _ensure_success(
            await self.gateway.update_payment_record(
                payment_id=data.payment_id,
                status=resolution.status,
                provider_status=resolution.provider_status,
                description=description,
            )
        )
        return await _finish_payment(
            self.gateway,
            resolution.status,
            update["home_link"],
            transaction_id,
            data.evse_uid,
            data.connector_id,
            log,
        )

    async def maya_payment(self, data: MayaPaymentRequest) -> PaymentResultResponse:
        """Poll Maya for the final status of a payment and record it"""
        log = logger.bind(flow="maya_payment", transaction_id=data.transaction_id)

        details = await self.gateway.get_payment_details(transaction_id=data.transaction_id)
        if details is None:
            raise NotFound("TRANSACTION_ID_NOT_FOUND")
        _ensure_not_finalized(details["payment_status"])

        resolution = await self.providers[PaymentType.MAYA.value].resolve_status(
            token=data.token,
            transaction_id=data.transaction_id,
            client_key=details["maya_client_key"],
        )

        if resolution.status is None:
            log.info("Maya payment unresolved", provider_status=resolution.provider_status)
            return PaymentResultResponse(
                payment_status="PENDING",
                home_link=details["home_link"],
                transaction_id=data.transaction_id,
            )

        update = _ensure_success(
            await self.gateway.update_payment_record(
                transaction_id=data.transaction_id,
                status=resolution.status,
                provider_status=resolution.provider_status,
            )
        )
        return await _finish_payment(
            self.gateway,
            resolution.status,
            update["home_link"],
            data.transaction_id,
            data.evse_uid,
            data.connector_id,
            log,
        )

    async def verify_otp(self, data: VerifyOTPRequest) -> str:
        result = _ensure_success(await self.gateway.verify_otp(**data.model_dump()))
        logger.info(
            "Reservation state",
            flow="verify_otp",
            guest_id=data.user_driver_guest_id,
            state=ReservationState.CONFIRMED.value,
        )
        return result.status

    async def resend_otp(self, data: ResendOTPRequest) -> str:
        otp = self.otp.generate()
        result = _ensure_success(await self.gateway.resend_otp(**data.model_dump(), otp=otp))
        await self.otp.send(result["mobile_number"], otp)
        return result.status

    async def check_evse(self, qr_code: str, evse_uid: str) -> EVSEDetailsResponse:
        """Resolve a scanned QR code to its EVSE, connectors and rates"""
        qr_number = parse_qr_code(qr_code)

        result = _ensure_success(await self.gateway.check_evse(qr_number, evse_uid))
        evse = result["evse"]
        rates = await self.gateway.get_qr_rates(evse_uid)

        return EVSEDetailsResponse(
            status=result.status,
            uid=evse.uid,
            qr_code=evse.qr_code,
            location_id=evse.location_id,
            model=evse.model,
            vendor=evse.vendor,
            evse_status=evse.status,
            connectors=[ConnectorResponse.model_validate(connector) for connector in result["connectors"]],
            rates=[QRRateResponse.model_validate(rate) for rate in rates],
        )

    async def get_qr_rates(self, evse_uid: str) -> List[QRRateResponse]:
        rates = await self.gateway.get_qr_rates(evse_uid)
        return [QRRateResponse.model_validate(rate) for rate in rates]

    async def check_mobile_number_status(self, mobile_number: str) -> MobileNumberStatusResponse:
        charging_status = await self.gateway.check_mobile_number_status(mobile_number)
        return MobileNumberStatusResponse(charging_status=charging_status)

    async def verify_payment(self, transaction_id: str) -> VerifyPaymentResponse:
        payment = await self.gateway.verify_payment(transaction_id)
        if payment is None:
            raise NotFound("TRANSACTION_ID_NOT_FOUND")
        return VerifyPaymentResponse(**payment)
