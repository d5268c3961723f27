"""Shared API dependencies"""

from functools import lru_cache
from typing import Optional
import secrets

from fastapi import Depends
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from app.config import settings
from app.database import SessionLocal
from app.errors import Unauthorized
from app.notifications.otp import OTPGateway
from app.payments.auth import AuthModuleClient
from app.payments.providers.gcash import GCashProvider
from app.payments.providers.maya import MayaProvider
from app.persistence.gateway import PersistenceGateway
from app.services.orchestrator import ReservationOrchestrator
from app.timeslots.client import TimeslotClient

basic_scheme = HTTPBasic(auto_error=False)


@lru_cache()
def get_orchestrator() -> ReservationOrchestrator:
    """Build the orchestrator once; missing settings fail here"""
    return ReservationOrchestrator(
        settings=settings,
        gateway=PersistenceGateway(SessionLocal),
        timeslots=TimeslotClient(settings),
        otp=OTPGateway(settings),
        auth_module=AuthModuleClient(settings),
        providers={
            GCashProvider.name: GCashProvider(settings),
            MayaProvider.name: MayaProvider(settings),
        },
    )


async def verify_basic_auth(
    credentials: Optional[HTTPBasicCredentials] = Depends(basic_scheme),
) -> None:
    """Check the static basic credentials of the QR routes (disabled when unset)"""
    if not settings.api_basic_username:
        return

    if credentials is None:
        raise Unauthorized()

    valid_user = secrets.compare_digest(
        credentials.username.encode(), settings.api_basic_username.encode()
    )
    valid_password = secrets.compare_digest(
        credentials.password.encode(), settings.api_basic_password.encode()
    )
    if not (valid_user and valid_password):
        raise Unauthorized()
