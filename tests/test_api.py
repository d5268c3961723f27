"""Tests for the EVSE lookup, OTP and auxiliary endpoints"""

import pytest
import respx
from httpx import AsyncClient

from app.config import settings

from conftest import RESERVE_PAYLOAD, timeslot_body, timeslot_url

BASE = "/qr/api/v1/qr"


async def reserve(client: AsyncClient) -> dict:
    with respx.mock(assert_all_called=True) as router:
        router.get(timeslot_url()).respond(200, json=timeslot_body())
        response = await client.post(f"{BASE}/reserve", json=RESERVE_PAYLOAD)
    assert response.status_code == 200
    return response.json()["data"]


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_check_evse(client, test_evse):
    response = await client.get(f"{BASE}/evse/QR-42/E1")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "SUCCESS"
    assert data["uid"] == "E1"
    assert data["qr_code"] == 42
    assert data["evse_status"] == "AVAILABLE"
    assert [c["connector_id"] for c in data["connectors"]] == ["C1", "C2"]
    assert data["rates"][0]["charge_mins"] == 60


@pytest.mark.asyncio
async def test_check_evse_invalid_qr_code(client, test_evse):
    response = await client.get(f"{BASE}/evse/42/E1")

    assert response.status_code == 400
    body = response.json()
    assert body["status"] == 400
    assert body["message"] == "INVALID_QR_CODE_FORMAT"
    assert body["data"] == [{"message": "Valid QR code format are QR-****"}]


@pytest.mark.asyncio
async def test_check_evse_not_found(client, test_evse):
    response = await client.get(f"{BASE}/evse/QR-7/E1")

    assert response.status_code == 400
    assert response.json()["message"] == "EVSE_NOT_FOUND"


@pytest.mark.asyncio
async def test_get_qr_rates(client, test_evse):
    response = await client.get(f"{BASE}/rates/E1")

    assert response.status_code == 200
    rates = response.json()["data"]
    assert len(rates) == 1
    assert rates[0]["label"] == "1 hour"


@pytest.mark.asyncio
async def test_mobile_number_status(client):
    unknown = await client.get(f"{BASE}/mobile-number/09171234567/status")
    assert unknown.json()["data"] == {"charging_status": None}

    await reserve(client)

    response = await client.get(f"{BASE}/mobile-number/09171234567/status")
    assert response.json()["data"] == {"charging_status": "RESERVED"}


@pytest.mark.asyncio
async def test_verify_otp(client, sms_sender):
    reservation = await reserve(client)
    otp = sms_sender.messages[0][1].split("is ")[1].split(".")[0]
    payload = {
        "user_driver_guest_id": reservation["user_driver_guest_id"],
        "timeslot_id": reservation["timeslot_id"],
        "next_timeslot_id": reservation["next_timeslot_id"],
    }

    wrong = await client.post(f"{BASE}/otp/verify", json={**payload, "otp": "x"})
    assert wrong.status_code == 400
    assert wrong.json()["message"] == "INVALID_OTP"

    response = await client.post(f"{BASE}/otp/verify", json={**payload, "otp": otp})
    assert response.status_code == 200
    assert response.json()["data"] == "SUCCESS"

    again = await client.post(f"{BASE}/otp/verify", json={**payload, "otp": otp})
    assert again.json()["message"] == "OTP_ALREADY_VERIFIED"


@pytest.mark.asyncio
async def test_resend_otp(client, sms_sender):
    reservation = await reserve(client)
    payload = {
        "user_driver_guest_id": reservation["user_driver_guest_id"],
        "timeslot_id": reservation["timeslot_id"],
        "next_timeslot_id": reservation["next_timeslot_id"],
    }

    response = await client.post(f"{BASE}/otp/resend", json=payload)

    assert response.status_code == 200
    assert len(sms_sender.messages) == 2

    otp = sms_sender.messages[1][1].split("is ")[1].split(".")[0]
    verified = await client.post(f"{BASE}/otp/verify", json={**payload, "otp": otp})
    assert verified.status_code == 200


@pytest.mark.asyncio
async def test_resend_otp_unknown_reservation(client, sms_sender):
    response = await client.post(
        f"{BASE}/otp/resend",
        json={"user_driver_guest_id": 99, "timeslot_id": 1, "next_timeslot_id": 2},
    )

    assert response.status_code == 400
    assert response.json()["message"] == "RESERVATION_NOT_FOUND"
    assert sms_sender.messages == []


@pytest.mark.asyncio
async def test_basic_auth_is_enforced_when_configured(client, test_evse, monkeypatch):
    monkeypatch.setattr(settings, "api_basic_username", "kiosk")
    monkeypatch.setattr(settings, "api_basic_password", "s3cret")

    anonymous = await client.get(f"{BASE}/rates/E1")
    assert anonymous.status_code == 401
    assert anonymous.json()["message"] == "Unauthorized"

    wrong = await client.get(f"{BASE}/rates/E1", auth=("kiosk", "nope"))
    assert wrong.status_code == 401

    allowed = await client.get(f"{BASE}/rates/E1", auth=("kiosk", "s3cret"))
    assert allowed.status_code == 200
