"""Base payment provider interface"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import httpx
import structlog

from app.config import Settings
from app.errors import BadRequest, UpstreamUnavailable
from app.schemas.payment import PaymentIntent, PaymentResolution

logger = structlog.get_logger()


class BasePaymentProvider(ABC):
    """Abstract base class for payment providers"""

    name: str = ""

    def __init__(self, settings: Settings):
        self.timeout = settings.http_timeout
        self.brand_name = settings.brand_name

    @abstractmethod
    async def create_intent(
        self,
        *,
        auth_token: str,
        guest_id: int,
        amount: int,
        description: str,
        evse_uid: str,
        connector_id: str,
        payment_id: Optional[int] = None,
    ) -> PaymentIntent:
        """Create a payment at the provider; amount is in minor units"""
        pass

    @abstractmethod
    async def resolve_status(
        self,
        *,
        token: str,
        transaction_id: str,
        **kwargs: Any,
    ) -> PaymentResolution:
        """Ask the provider for the final status of a payment"""
        pass

    async def _post(self, url: str, payload: Dict[str, Any], token: str) -> Dict[str, Any]:
        """POST a bearer-authenticated JSON request and return the decoded body"""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers={
                        "Accept": "application/json",
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            logger.error("Payment provider unreachable", provider=self.name, error=str(e))
            raise UpstreamUnavailable("PAYMENT_PROVIDER_UNAVAILABLE") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            message = body.get("message") if isinstance(body, dict) else None
            logger.warning(
                "Payment provider rejected request",
                provider=self.name,
                status_code=response.status_code,
                message=message,
            )
            if response.status_code >= 500:
                raise UpstreamUnavailable("PAYMENT_PROVIDER_UNAVAILABLE")
            raise BadRequest(message or "PAYMENT_PROVIDER_ERROR")

        if not isinstance(body, dict):
            raise UpstreamUnavailable("PAYMENT_PROVIDER_UNAVAILABLE")

        return body
