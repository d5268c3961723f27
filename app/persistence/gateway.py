"""Persistence gateway for guests, reservations and payment records.

Every write that belongs to a reservation attempt takes the caller's session so
that the orchestrator can commit or roll the whole attempt back as a unit.
Reads and post-payment reconciliation open their own short-lived session.

Operations report business outcomes through ``ProcedureResult`` and raise
``StorageError`` for anything that went wrong inside the database driver.
"""

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, List, Optional
import functools

from sqlalchemy import desc, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from app.database import SessionLocal
from app.errors import StorageConnectionError, StorageError
from app.models.evse import EVSE, Connector, EVSEQRRate
from app.models.guest import Guest
from app.models.payment import PaymentRecord, PaymentStatus
from app.models.reservation import Reservation
from app.persistence.results import ProcedureResult

logger = structlog.get_logger()

# Guests in these states still hold their mobile number
ACTIVE_GUEST_STATUSES = ("RESERVED", "CHARGING")


def _storage_errors(func):
    """Re-raise driver errors as StorageError"""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.error("Storage operation failed", operation=func.__name__, error=str(e))
            raise StorageError(str(e)) from e

    return wrapper


class PersistenceGateway:
    """Stored-procedure style access to the QR charging tables"""

    def __init__(self, session_factory: async_sessionmaker = SessionLocal):
        self._session_factory = session_factory

    async def acquire(self) -> AsyncSession:
        """Check out a connection and begin a transaction"""
        session = self._session_factory()
        try:
            await session.connection()
        except (SQLAlchemyError, OSError) as e:
            await session.close()
            logger.error("Could not acquire database connection", error=str(e))
            raise StorageConnectionError("Could not acquire a database connection") from e
        return session

    @_storage_errors
    async def commit(self, session: AsyncSession) -> None:
        await session.commit()

    @_storage_errors
    async def rollback(self, session: AsyncSession) -> None:
        await session.rollback()

    async def release(self, session: AsyncSession) -> None:
        await session.close()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Acquire a session, roll back on any error and always release it once.

        Committing is left to the caller.
        """
        session = await self.acquire()
        try:
            yield session
        except BaseException:
            try:
                await self.rollback(session)
            except StorageError:
                logger.exception("Rollback failed")
            raise
        finally:
            await self.release(session)

    async def _has_active_guest(self, session: AsyncSession, mobile_number: str, current_date: str) -> bool:
        """Whether the number still holds a reservation that has not ended yet.

        Dates are ISO strings, so they compare in calendar order.
        """
        result = await session.execute(
            select(Guest.id)
            .join(Reservation, Reservation.guest_id == Guest.id)
            .where(
                Guest.mobile_number == mobile_number,
                Guest.charging_status.in_(ACTIVE_GUEST_STATUSES),
                Reservation.status != "CANCELLED",
                or_(
                    Reservation.requested_date >= current_date,
                    Reservation.next_timeslot_date >= current_date,
                ),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def _timeslot_taken(self, session: AsyncSession, timeslot_id: int, requested_date: str) -> bool:
        result = await session.execute(
            select(Reservation.id).where(
                Reservation.timeslot_id == timeslot_id,
                Reservation.requested_date == requested_date,
                Reservation.status != "CANCELLED",
            )
        )
        return result.first() is not None

    @_storage_errors
    async def add_guest(
        self,
        session: AsyncSession,
        *,
        is_free: bool,
        mobile_number: str,
        current_date: str,
        paid_charge_mins: int,
        rfid: str,
        otp: Optional[str],
        homelink: str,
    ) -> ProcedureResult:
        """Create the guest for a free reservation"""
        if await self._has_active_guest(session, mobile_number, current_date):
            return ProcedureResult.rejected("MOBILE_NUMBER_ALREADY_IN_USE")

        guest = Guest(
            mobile_number=mobile_number,
            rfid=rfid,
            otp=otp,
            is_free=bool(is_free),
            paid_charge_mins=paid_charge_mins,
            home_link=homelink,
        )
        session.add(guest)
        await session.flush()

        logger.debug("Guest added", guest_id=guest.id)
        return ProcedureResult.success(guest_id=guest.id)

    async def _insert_reservation(self, session: AsyncSession, **values: Any) -> bool:
        session.add(Reservation(**values))
        try:
            await session.flush()
        except IntegrityError:
            return False
        return True

    @_storage_errors
    async def reserve(
        self,
        session: AsyncSession,
        *,
        user_guest_id: int,
        timeslot_id: int,
        next_timeslot_id: int,
        current_time: str,
        current_date: str,
        timeslot_time: Optional[str],
        next_timeslot_date: Optional[str],
    ) -> ProcedureResult:
        """Link a guest to the current and next timeslot"""
        guest = await session.get(Guest, user_guest_id)
        if guest is None:
            return ProcedureResult.rejected("GUEST_NOT_FOUND")

        if await self._timeslot_taken(session, timeslot_id, current_date):
            return ProcedureResult.rejected("TIMESLOT_ALREADY_RESERVED")

        inserted = await self._insert_reservation(
            session,
            guest_id=user_guest_id,
            timeslot_id=timeslot_id,
            next_timeslot_id=next_timeslot_id,
            requested_time=current_time,
            requested_date=current_date,
            timeslot_time=timeslot_time,
            next_timeslot_date=next_timeslot_date,
        )
        if not inserted:
            return ProcedureResult.rejected("TIMESLOT_ALREADY_RESERVED")

        return ProcedureResult.success(timeslot_id=timeslot_id, next_timeslot_id=next_timeslot_id)

    @_storage_errors
    async def reserve_with_payment(
        self,
        session: AsyncSession,
        *,
        mobile_number: str,
        paid_charge_mins: int,
        timeslot_id: int,
        next_timeslot_id: int,
        current_time: str,
        current_date: str,
        timeslot_time: Optional[str],
        next_timeslot_date: Optional[str],
        rfid: str,
        homelink: str,
    ) -> ProcedureResult:
        """Create the guest and its reservation for a paid charge.

        A timeslot that is already taken is reported as a conflict.
        """
        if await self._has_active_guest(session, mobile_number, current_date):
            return ProcedureResult.rejected("MOBILE_NUMBER_ALREADY_IN_USE")

        if await self._timeslot_taken(session, timeslot_id, current_date):
            return ProcedureResult.conflict("TIMESLOT_ALREADY_RESERVED")

        guest = Guest(
            mobile_number=mobile_number,
            rfid=rfid,
            is_free=False,
            paid_charge_mins=paid_charge_mins,
            home_link=homelink,
        )
        session.add(guest)
        await session.flush()

        inserted = await self._insert_reservation(
            session,
            guest_id=guest.id,
            timeslot_id=timeslot_id,
            next_timeslot_id=next_timeslot_id,
            requested_time=current_time,
            requested_date=current_date,
            timeslot_time=timeslot_time,
            next_timeslot_date=next_timeslot_date,
        )
        if not inserted:
            return ProcedureResult.conflict("TIMESLOT_ALREADY_RESERVED")

        return ProcedureResult.success(guest_id=guest.id)

    @_storage_errors
    async def add_payment_record(
        self,
        session: AsyncSession,
        *,
        guest_id: int,
        evse_qr_rate_id: Optional[int],
        amount: Decimal,
        payment_type: str,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        provider_status: Optional[str] = None,
        transaction_id: Optional[str] = None,
        client_key: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ProcedureResult:
        record = PaymentRecord(
            guest_id=guest_id,
            evse_qr_rate_id=evse_qr_rate_id,
            amount=amount,
            payment_type=payment_type,
            payment_status=payment_status.value,
            provider_status=provider_status,
            transaction_id=transaction_id,
            maya_client_key=client_key,
            description=description,
        )
        session.add(record)
        await session.flush()
        return ProcedureResult.success(payment_id=record.id)

    async def _cancel_reservation(self, session: AsyncSession, guest_id: int) -> None:
        """Free the timeslot and mobile number held by an unpaid guest"""
        guest = await session.get(Guest, guest_id)
        if guest is not None:
            guest.charging_status = "CANCELLED"

        reservation = (
            await session.execute(select(Reservation).where(Reservation.guest_id == guest_id))
        ).scalar_one_or_none()
        if reservation is not None:
            reservation.status = "CANCELLED"

    async def _update_payment_record(
        self,
        session: AsyncSession,
        payment_id: Optional[int],
        transaction_id: Optional[str],
        status: Optional[PaymentStatus],
        provider_status: Optional[str],
        new_transaction_id: Optional[str],
        description: Optional[str],
    ) -> ProcedureResult:
        query = select(PaymentRecord, Guest.home_link).join(Guest, Guest.id == PaymentRecord.guest_id)
        if payment_id is not None:
            query = query.where(PaymentRecord.id == payment_id)
            missing = "PAYMENT_ID_NOT_FOUND"
        else:
            query = query.where(PaymentRecord.transaction_id == transaction_id)
            missing = "TRANSACTION_ID_NOT_FOUND"

        row = (await session.execute(query.with_for_update(of=PaymentRecord))).first()
        if row is None:
            return ProcedureResult.not_found(missing)

        record, home_link = row
        current = PaymentStatus(record.payment_status)
        if current.is_terminal:
            return ProcedureResult.conflict(f"ALREADY_{current.name}", home_link=home_link)

        if status is not None:
            record.payment_status = status.value
        if provider_status is not None:
            record.provider_status = provider_status
        if new_transaction_id is not None:
            record.transaction_id = new_transaction_id
        if description is not None:
            record.description = description

        if status is PaymentStatus.FAILED:
            await self._cancel_reservation(session, record.guest_id)
        await session.flush()

        return ProcedureResult.success(
            payment_id=record.id,
            transaction_id=record.transaction_id,
            payment_status=record.payment_status,
            home_link=home_link,
        )

    @_storage_errors
    async def update_payment_record(
        self,
        session: Optional[AsyncSession] = None,
        *,
        payment_id: Optional[int] = None,
        transaction_id: Optional[str] = None,
        status: Optional[PaymentStatus] = None,
        provider_status: Optional[str] = None,
        new_transaction_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ProcedureResult:
        """Move a payment record forward; terminal records are never touched.

        Without a session the update runs and commits in its own transaction.
        """
        if payment_id is None and transaction_id is None:
            raise ValueError("payment_id or transaction_id is required")

        args = (payment_id, transaction_id, status, provider_status, new_transaction_id, description)
        if session is not None:
            return await self._update_payment_record(session, *args)

        async with self._session_factory() as own_session:
            result = await self._update_payment_record(own_session, *args)
            if result.ok:
                await own_session.commit()
            return result

    @_storage_errors
    async def get_payment_details(
        self,
        payment_id: Optional[int] = None,
        transaction_id: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Fetch one payment record by internal id or provider transaction id"""
        query = (
            select(PaymentRecord, Guest.home_link)
            .join(Guest, Guest.id == PaymentRecord.guest_id)
        )
        if payment_id is not None:
            query = query.where(PaymentRecord.id == payment_id)
        elif transaction_id is not None:
            query = query.where(PaymentRecord.transaction_id == transaction_id)
        else:
            raise ValueError("payment_id or transaction_id is required")

        async with self._session_factory() as session:
            row = (await session.execute(query)).first()

        if row is None:
            return None

        record, home_link = row
        return {
            "id": record.id,
            "user_driver_guest_id": record.guest_id,
            "amount": record.amount,
            "payment_type": record.payment_type,
            "payment_status": record.payment_status,
            "provider_status": record.provider_status,
            "transaction_id": record.transaction_id,
            "maya_client_key": record.maya_client_key,
            "home_link": home_link,
        }

    @_storage_errors
    async def verify_payment(self, transaction_id: str) -> Optional[Dict[str, Any]]:
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    select(PaymentRecord, Guest.paid_charge_mins)
                    .join(Guest, Guest.id == PaymentRecord.guest_id)
                    .where(PaymentRecord.transaction_id == transaction_id)
                )
            ).first()

        if row is None:
            return None

        record, paid_charge_mins = row
        return {
            "amount": record.amount,
            "payment_type": record.payment_type,
            "payment_status": record.payment_status,
            "transaction_id": record.transaction_id,
            "paid_charge_mins": paid_charge_mins or 0,
        }

    @_storage_errors
    async def check_and_update_connector_status(self, evse_uid: str, connector_id: str) -> ProcedureResult:
        """Mark an available connector as reserved"""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Connector)
                .where(Connector.evse_uid == evse_uid, Connector.connector_id == connector_id)
                .with_for_update()
            )
            connector = result.scalar_one_or_none()
            if connector is None:
                return ProcedureResult.rejected("CONNECTOR_NOT_FOUND")

            if connector.status == "AVAILABLE":
                connector.status = "RESERVED"
                await session.commit()

            return ProcedureResult.success(connector_status=connector.status)

    @_storage_errors
    async def check_and_update_evse_status(self, evse_uid: str) -> ProcedureResult:
        """Derive the EVSE status from its connectors"""
        async with self._session_factory() as session:
            evse = (
                await session.execute(select(EVSE).where(EVSE.uid == evse_uid).with_for_update())
            ).scalar_one_or_none()
            if evse is None:
                return ProcedureResult.rejected("EVSE_NOT_FOUND")

            if evse.status != "OFFLINE":
                statuses = (
                    await session.execute(select(Connector.status).where(Connector.evse_uid == evse_uid))
                ).scalars().all()
                new_status = "AVAILABLE" if "AVAILABLE" in statuses else "OCCUPIED"
                if new_status != evse.status:
                    evse.status = new_status
                    await session.commit()

            return ProcedureResult.success(evse_status=evse.status)

    @_storage_errors
    async def check_evse(self, qr_code: int, evse_uid: str) -> ProcedureResult:
        """Look up the EVSE behind a QR code together with its connectors"""
        async with self._session_factory() as session:
            evse = (
                await session.execute(
                    select(EVSE).where(EVSE.qr_code == qr_code, EVSE.uid == evse_uid)
                )
            ).scalar_one_or_none()
            if evse is None:
                return ProcedureResult.rejected("EVSE_NOT_FOUND")
            if evse.status == "OFFLINE":
                return ProcedureResult.rejected("EVSE_OFFLINE")

            connectors = (
                await session.execute(
                    select(Connector)
                    .where(Connector.evse_uid == evse_uid)
                    .order_by(Connector.connector_id)
                )
            ).scalars().all()

        return ProcedureResult.success(evse=evse, connectors=list(connectors))

    @_storage_errors
    async def get_qr_rates(self, evse_uid: str) -> List[EVSEQRRate]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(EVSEQRRate).where(EVSEQRRate.evse_uid == evse_uid).order_by(EVSEQRRate.charge_mins)
            )
            return list(result.scalars().all())

    async def _guest_reservation(
        self,
        session: AsyncSession,
        guest_id: int,
        timeslot_id: int,
        next_timeslot_id: int,
    ):
        row = (
            await session.execute(
                select(Guest, Reservation)
                .join(Reservation, Reservation.guest_id == Guest.id)
                .where(
                    Guest.id == guest_id,
                    Reservation.timeslot_id == timeslot_id,
                    Reservation.next_timeslot_id == next_timeslot_id,
                )
                .with_for_update()
            )
        ).first()
        return row

    @_storage_errors
    async def verify_otp(
        self,
        *,
        user_driver_guest_id: int,
        otp: str,
        timeslot_id: int,
        next_timeslot_id: int,
    ) -> ProcedureResult:
        async with self._session_factory() as session:
            row = await self._guest_reservation(session, user_driver_guest_id, timeslot_id, next_timeslot_id)
            if row is None:
                return ProcedureResult.rejected("RESERVATION_NOT_FOUND")

            guest, reservation = row
            if guest.otp_verified:
                return ProcedureResult.rejected("OTP_ALREADY_VERIFIED")
            if guest.otp != otp:
                return ProcedureResult.rejected("INVALID_OTP")

            guest.otp_verified = True
            reservation.status = "CONFIRMED"
            await session.commit()

        return ProcedureResult.success()

    @_storage_errors
    async def resend_otp(
        self,
        *,
        user_driver_guest_id: int,
        timeslot_id: int,
        next_timeslot_id: int,
        otp: str,
    ) -> ProcedureResult:
        async with self._session_factory() as session:
            row = await self._guest_reservation(session, user_driver_guest_id, timeslot_id, next_timeslot_id)
            if row is None:
                return ProcedureResult.rejected("RESERVATION_NOT_FOUND")

            guest, _ = row
            if guest.otp_verified:
                return ProcedureResult.rejected("OTP_ALREADY_VERIFIED")

            guest.otp = otp
            await session.commit()

        return ProcedureResult.success(mobile_number=guest.mobile_number)

    @_storage_errors
    async def check_mobile_number_status(self, mobile_number: str) -> Optional[str]:
        """Charging status of the newest guest using this number"""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Guest.charging_status)
                .where(Guest.mobile_number == mobile_number)
                .order_by(desc(Guest.id))
                .limit(1)
            )
            return result.scalar_one_or_none()
