"""Tests for the free and paid reservation flows"""

import pytest
import respx
from httpx import AsyncClient, Response
from sqlalchemy import func, select

from app.jobs.celery_app import celery_app
from app.models.guest import Guest
from app.models.payment import PaymentRecord
from app.models.reservation import Reservation

from conftest import (
    AUTH_URL,
    GCASH_SOURCE_URL,
    MAYA_PAYMENT_URL,
    RESERVE_PAYLOAD,
    timeslot_body,
    timeslot_url,
)

RESERVE_URL = "/qr/api/v1/qr/reserve"
RESERVE_WITH_PAYMENT_URL = "/qr/api/v1/qr/reserve-with-payment"

PAID_PAYLOAD = {
    "mobile_number": "09179999999",
    "location_id": 1,
    "evse_uid": "E1",
    "connector_id": "C1",
    "current_time": "14:30:00",
    "current_date": "2024-01-01",
    "paid_charge_mins": 60,
    "amount": "12.5",
    "payment_type": "gcash",
    "homelink": "https://home",
}

GCASH_SOURCE = {
    "result": {
        "data": {
            "id": "src_123",
            "attributes": {
                "status": "pending",
                "redirect": {"checkout_url": "https://gcash.test/checkout/src_123"},
            },
        }
    }
}


def maya_intent(status="awaiting_next_action") -> dict:
    return {
        "data": {
            "id": "pi_123",
            "attributes": {
                "status": status,
                "client_key": "ck_123",
                "next_action": {"redirect": {"url": "https://maya.test/pay/pi_123"}},
            },
        }
    }


async def count_rows(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar()


@pytest.fixture
def queued_tasks(monkeypatch):
    """Capture OTP retries instead of talking to the broker"""
    queued = []

    def send_task(name, args=None, **kwargs):
        queued.append((name, args))

    monkeypatch.setattr(celery_app, "send_task", send_task)
    return queued


@pytest.mark.asyncio
async def test_free_reservation_end_to_end(client: AsyncClient, sms_sender, session_factory):
    """
    A free reservation:
    1. Resolves the current and next timeslot
    2. Commits the guest and reservation
    3. Texts exactly one OTP
    """
    with respx.mock(assert_all_called=True) as router:
        router.get(timeslot_url()).respond(200, json=timeslot_body())

        response = await client.post(RESERVE_URL, json=RESERVE_PAYLOAD)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == 200
    assert body["message"] == "Success"

    data = body["data"]
    assert data["status"] == "SUCCESS"
    assert data["timeslot_id"] == 101
    assert data["next_timeslot_id"] == 102
    assert data["user_driver_guest_id"] > 0

    assert len(sms_sender.messages) == 1
    to, message = sms_sender.messages[0]
    assert to == "09171234567"
    assert "ParkNcharge free charging" in message

    async with session_factory() as session:
        guest = await session.get(Guest, data["user_driver_guest_id"])
        assert guest.is_free is True
        assert guest.otp in message
        assert len(guest.rfid) == 12
    assert await count_rows(session_factory, Reservation) == 1


@pytest.mark.asyncio
async def test_free_reservation_rolls_back_when_timeslot_lookup_fails(client, sms_sender, session_factory):
    with respx.mock(assert_all_called=True) as router:
        router.get(timeslot_url()).respond(200, json={"data": []})

        response = await client.post(RESERVE_URL, json=RESERVE_PAYLOAD)

    assert response.status_code == 400
    assert response.json()["message"] == "NO_AVAILABLE_TIMESLOTS"
    assert sms_sender.messages == []
    assert await count_rows(session_factory, Guest) == 0


@pytest.mark.asyncio
async def test_free_reservation_rolls_back_when_timeslot_taken(client, sms_sender, session_factory):
    with respx.mock(assert_all_called=True) as router:
        router.get(timeslot_url()).respond(200, json=timeslot_body())
        first = await client.post(RESERVE_URL, json=RESERVE_PAYLOAD)

        second = await client.post(
            RESERVE_URL,
            json={**RESERVE_PAYLOAD, "mobile_number": "09170000000"},
        )

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["message"] == "TIMESLOT_ALREADY_RESERVED"

    # The second guest row was rolled back with the reservation
    assert await count_rows(session_factory, Guest) == 1
    assert len(sms_sender.messages) == 1


@pytest.mark.asyncio
async def test_free_reservation_mobile_number_in_use(client):
    with respx.mock(assert_all_called=True) as router:
        router.get(timeslot_url()).respond(200, json=timeslot_body())
        await client.post(RESERVE_URL, json=RESERVE_PAYLOAD)

        router.get(timeslot_url(hour=15)).respond(200, json=timeslot_body(103, 104))
        response = await client.post(RESERVE_URL, json={**RESERVE_PAYLOAD, "current_time": "15:10:00"})

    assert response.status_code == 400
    assert response.json()["message"] == "MOBILE_NUMBER_ALREADY_IN_USE"


@pytest.mark.asyncio
async def test_mobile_number_can_reserve_again_on_a_later_date(client, sms_sender, session_factory):
    with respx.mock(assert_all_called=True) as router:
        router.get(timeslot_url()).respond(200, json=timeslot_body())
        first = await client.post(RESERVE_URL, json=RESERVE_PAYLOAD)
        second = await client.post(RESERVE_URL, json={**RESERVE_PAYLOAD, "current_date": "2024-01-02"})

    assert first.status_code == 200
    assert second.status_code == 200
    assert await count_rows(session_factory, Reservation) == 2
    assert len(sms_sender.messages) == 2


@pytest.mark.asyncio
async def test_sms_failure_after_commit_keeps_reservation(client, sms_sender, session_factory, queued_tasks):
    sms_sender.fail = True

    with respx.mock(assert_all_called=True) as router:
        router.get(timeslot_url()).respond(200, json=timeslot_body())
        response = await client.post(RESERVE_URL, json=RESERVE_PAYLOAD)

    assert response.status_code == 200
    assert await count_rows(session_factory, Reservation) == 1
    assert len(queued_tasks) == 1
    name, args = queued_tasks[0]
    assert name == "send_otp_sms"
    assert args[0] == "09171234567"


@pytest.mark.asyncio
async def test_strict_dispatch_rolls_back_on_sms_failure(client, orchestrator, sms_sender, session_factory):
    orchestrator.dispatch_before_commit = True
    sms_sender.fail = True

    with respx.mock(assert_all_called=True) as router:
        router.get(timeslot_url()).respond(200, json=timeslot_body())
        response = await client.post(RESERVE_URL, json=RESERVE_PAYLOAD)

    assert response.status_code == 502
    assert response.json()["message"] == "SMS_DELIVERY_FAILED"
    assert await count_rows(session_factory, Guest) == 0
    assert await count_rows(session_factory, Reservation) == 0


@pytest.mark.asyncio
async def test_invalid_current_time_is_rejected(client):
    response = await client.post(RESERVE_URL, json={**RESERVE_PAYLOAD, "current_time": "25:00:00"})

    assert response.status_code == 422
    assert response.json()["message"] == "Unprocessable Entity"


@pytest.mark.asyncio
async def test_invalid_payment_type_makes_no_external_calls(client, session_factory):
    with respx.mock(assert_all_mocked=True) as router:
        response = await client.post(
            RESERVE_WITH_PAYMENT_URL,
            json={**PAID_PAYLOAD, "payment_type": "paypal"},
        )

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "INVALID_PAYMENT_TYPE"
    assert body["data"] == {"message": "Valid payment types are: gcash, and maya"}
    assert len(router.calls) == 0
    assert await count_rows(session_factory, Guest) == 0


@pytest.mark.asyncio
async def test_reserve_with_gcash(client, session_factory):
    with respx.mock(assert_all_called=True) as router:
        router.get(timeslot_url()).respond(200, json=timeslot_body())
        router.post(AUTH_URL).respond(200, json={"access_token": "tok_abc"})
        source = router.post(GCASH_SOURCE_URL).respond(200, json=GCASH_SOURCE)

        response = await client.post(RESERVE_WITH_PAYMENT_URL, json=PAID_PAYLOAD)

    assert response.status_code == 200
    assert response.json()["data"] == {"checkout_url": "https://gcash.test/checkout/src_123"}

    sent = source.calls.last.request
    assert b'"amount":1250' in sent.content.replace(b" ", b"")

    async with session_factory() as session:
        record = (await session.execute(select(PaymentRecord))).scalar_one()
        assert record.payment_type == "gcash"
        assert record.payment_status == "pending"
        assert record.provider_status == "pending"
        assert record.transaction_id == "src_123"


@pytest.mark.asyncio
async def test_reserve_with_maya(client, session_factory):
    with respx.mock(assert_all_called=True) as router:
        router.get(timeslot_url()).respond(200, json=timeslot_body())
        router.post(AUTH_URL).respond(200, json={"access_token": "tok_abc"})
        router.post(MAYA_PAYMENT_URL).respond(200, json=maya_intent())

        response = await client.post(
            RESERVE_WITH_PAYMENT_URL,
            json={**PAID_PAYLOAD, "payment_type": "maya"},
        )

    assert response.status_code == 200
    assert response.json()["data"]["checkout_url"] == "https://maya.test/pay/pi_123"

    async with session_factory() as session:
        record = (await session.execute(select(PaymentRecord))).scalar_one()
        assert record.transaction_id == "pi_123"
        assert record.maya_client_key == "ck_123"


@pytest.mark.asyncio
async def test_reserve_with_maya_not_awaiting_action(client, session_factory):
    with respx.mock(assert_all_called=True) as router:
        router.get(timeslot_url()).respond(200, json=timeslot_body())
        router.post(AUTH_URL).respond(200, json={"access_token": "tok_abc"})
        router.post(MAYA_PAYMENT_URL).respond(200, json=maya_intent(status="processing"))

        response = await client.post(
            RESERVE_WITH_PAYMENT_URL,
            json={**PAID_PAYLOAD, "payment_type": "maya"},
        )

    assert response.status_code == 200
    assert response.json()["data"]["checkout_url"] is None
    assert await count_rows(session_factory, Reservation) == 1
    assert await count_rows(session_factory, PaymentRecord) == 0


@pytest.mark.asyncio
async def test_paid_reservation_conflict_is_409(client, session_factory):
    with respx.mock(assert_all_called=True) as router:
        router.get(timeslot_url()).respond(200, json=timeslot_body())
        await client.post(RESERVE_URL, json=RESERVE_PAYLOAD)

        response = await client.post(RESERVE_WITH_PAYMENT_URL, json=PAID_PAYLOAD)

    assert response.status_code == 409
    assert response.json()["message"] == "TIMESLOT_ALREADY_RESERVED"
    assert await count_rows(session_factory, Guest) == 1


@pytest.mark.asyncio
async def test_paid_reservation_rolls_back_when_provider_fails(client, session_factory):
    with respx.mock(assert_all_called=True) as router:
        router.get(timeslot_url()).respond(200, json=timeslot_body())
        router.post(AUTH_URL).respond(200, json={"access_token": "tok_abc"})
        router.post(GCASH_SOURCE_URL).mock(return_value=Response(502))

        response = await client.post(RESERVE_WITH_PAYMENT_URL, json=PAID_PAYLOAD)

    assert response.status_code == 502
    assert response.json()["message"] == "PAYMENT_PROVIDER_UNAVAILABLE"
    assert await count_rows(session_factory, Guest) == 0
    assert await count_rows(session_factory, PaymentRecord) == 0
