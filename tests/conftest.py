"""Test configuration and fixtures"""

import os

# Keep the application engine off Postgres while the app modules import
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.main import app
from app.api.deps import get_orchestrator
from app.config import Settings
from app.database import Base
from app.models.evse import EVSE, Connector, EVSEQRRate
from app.notifications.otp import OTPGateway
from app.payments.auth import AuthModuleClient
from app.payments.providers.gcash import GCashProvider
from app.payments.providers.maya import MayaProvider
from app.persistence.gateway import PersistenceGateway
from app.services.orchestrator import ReservationOrchestrator
from app.timeslots.client import TimeslotClient


TIMESLOT_URL = "http://timeslots.test"
AUTH_URL = "http://auth.test/oauth/token"
GCASH_SOURCE_URL = "http://payments.test/gcash/source"
GCASH_PAYMENT_URL = "http://payments.test/gcash/payment"
MAYA_PAYMENT_URL = "http://payments.test/maya/intent"
MAYA_GET_PAYMENT_URL = "http://payments.test/maya/intent/status"

RESERVE_PAYLOAD = {
    "is_free": 1,
    "mobile_number": "09171234567",
    "location_id": 1,
    "evse_uid": "E1",
    "connector_id": "C1",
    "current_time": "14:30:00",
    "current_date": "2024-01-01",
    "paid_charge_mins": 60,
    "homelink": "https://x",
}


def timeslot_url(location_id=1, evse_uid="E1", connector_id="C1", hour=14) -> str:
    return f"{TIMESLOT_URL}/booking_timeslot/api/v1/timeslots/{location_id}/{evse_uid}/{connector_id}/{hour}"


def timeslot_body(current_id=101, next_id=102) -> dict:
    return {
        "data": [
            {"timeslot_id": current_id, "start": "14:00:00", "end": "15:00:00", "date": "2024-01-01"},
            {"timeslot_id": next_id, "start": "15:00:00", "end": "16:00:00", "date": "2024-01-01"},
        ]
    }


class FakeSMSSender:
    """Records messages instead of calling Twilio"""

    def __init__(self):
        self.messages = []
        self.fail = False

    async def send(self, to: str, body: str) -> str:
        if self.fail:
            raise RuntimeError("SMS provider unavailable")
        self.messages.append((to, body))
        return f"SM{len(self.messages)}"


@pytest.fixture
async def test_engine(tmp_path):
    """Create test database"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'qr.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway(session_factory):
    return PersistenceGateway(session_factory)


@pytest.fixture
def test_settings():
    return Settings(
        timeslot_base_url=TIMESLOT_URL,
        timeslot_basic_auth="dGltZXNsb3Q6c2VjcmV0",
        authmodule_url=AUTH_URL,
        authmodule_grant_type="client_credentials",
        authmodule_authorization="YXV0aDpzZWNyZXQ=",
        gcash_source_url=GCASH_SOURCE_URL,
        gcash_payment_url=GCASH_PAYMENT_URL,
        maya_payment_url=MAYA_PAYMENT_URL,
        maya_get_payment_url=MAYA_GET_PAYMENT_URL,
        maya_poll_max_attempts=5,
        maya_poll_initial_delay=0,
        maya_poll_max_delay=0,
        maya_poll_timeout=5,
        http_timeout=5,
        api_basic_username="",
        api_basic_password="",
    )


@pytest.fixture
def sms_sender():
    return FakeSMSSender()


@pytest.fixture
def orchestrator(test_settings, gateway, sms_sender):
    return ReservationOrchestrator(
        settings=test_settings,
        gateway=gateway,
        timeslots=TimeslotClient(test_settings),
        otp=OTPGateway(test_settings, sender=sms_sender),
        auth_module=AuthModuleClient(test_settings),
        providers={
            "gcash": GCashProvider(test_settings),
            "maya": MayaProvider(test_settings),
        },
    )


@pytest.fixture
async def test_evse(test_db):
    """Create an EVSE with two connectors and one QR rate"""
    evse = EVSE(uid="E1", qr_code=42, location_id=1, model="AC22", vendor="ParkNcharge", status="AVAILABLE")
    test_db.add(evse)
    await test_db.flush()

    test_db.add(Connector(evse_uid="E1", connector_id="C1", standard="TYPE2", power_type="AC", max_power=22000))
    test_db.add(Connector(evse_uid="E1", connector_id="C2", standard="CCS2", power_type="DC", max_power=50000))
    test_db.add(EVSEQRRate(evse_uid="E1", label="1 hour", charge_mins=60, price=Decimal("140.00")))
    await test_db.commit()

    return evse


@pytest.fixture
async def client(orchestrator):
    """Create test client with the orchestrator bound to the test database"""
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    async with AsyncClient(transport=ASGITransport(app=app, raise_app_exceptions=False), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
