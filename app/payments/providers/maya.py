"""Maya payment-intent provider"""

from typing import Any, Optional
import asyncio
import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from app.config import Settings
from app.errors import PaymentTimeout, UpstreamUnavailable
from app.models.payment import PaymentStatus
from app.schemas.payment import PaymentIntent, PaymentResolution
from app.payments.providers.base import BasePaymentProvider

logger = structlog.get_logger()

AWAITING_NEXT_ACTION = "awaiting_next_action"
PROCESSING = "processing"

STATUS_MAP = {
    "succeeded": PaymentStatus.PAID,
    "awaiting_payment_method": PaymentStatus.FAILED,
}


class MayaProvider(BasePaymentProvider):
    """Maya payments through a payment intent and client key.

    The final status is obtained by polling the intent while the provider
    reports it as processing.
    """

    name = "maya"

    def __init__(self, settings: Settings):
        settings.require("maya_payment_url", "maya_get_payment_url")
        super().__init__(settings)
        self.payment_url = settings.maya_payment_url
        self.get_payment_url = settings.maya_get_payment_url
        self.poll_max_attempts = settings.maya_poll_max_attempts
        self.poll_initial_delay = settings.maya_poll_initial_delay
        self.poll_max_delay = settings.maya_poll_max_delay
        self.poll_timeout = settings.maya_poll_timeout

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
        """Create a Maya payment intent; checkout_url is only set when the
        intent is waiting for the guest"""
        logger.info(
            "Maya intent request",
            guest_id=guest_id,
            amount=amount,
            evse_uid=evse_uid,
            connector_id=connector_id,
        )

        body = await self._post(
            self.payment_url,
            {
                "user_id": guest_id,
                "type": "paymaya",
                "description": description,
                "amount": amount,
                "payment_method_allowed": "paymaya",
                "statement_descriptor": self.brand_name,
                "user_type": "guest",
                "pnc_type": "pnc",
                "evse_uid": evse_uid,
                "connector_id": connector_id,
            },
            auth_token,
        )

        try:
            data = body["data"]
            attributes = data["attributes"]
            provider_status = attributes["status"]
            checkout_url = None
            if provider_status == AWAITING_NEXT_ACTION:
                checkout_url = attributes["next_action"]["redirect"]["url"]
            intent = PaymentIntent(
                provider=self.name,
                transaction_id=data["id"],
                provider_status=provider_status,
                client_key=attributes.get("client_key"),
                checkout_url=checkout_url,
            )
        except (KeyError, TypeError) as e:
            logger.error("Unexpected Maya intent response", error=str(e))
            raise UpstreamUnavailable("PAYMENT_PROVIDER_UNAVAILABLE") from e

        logger.info(
            "Maya intent created",
            transaction_id=intent.transaction_id,
            provider_status=intent.provider_status,
        )
        return intent

    async def _fetch_status(self, token: str, transaction_id: str, client_key: Optional[str]) -> str:
        body = await self._post(
            self.get_payment_url,
            {
                "payment_intent": transaction_id,
                "client_key": client_key,
            },
            token,
        )
        try:
            status = body["data"]["attributes"]["status"]
        except (KeyError, TypeError) as e:
            logger.error("Unexpected Maya status response", error=str(e))
            raise UpstreamUnavailable("PAYMENT_PROVIDER_UNAVAILABLE") from e

        logger.debug("Maya intent status", transaction_id=transaction_id, status=status)
        return status

    async def resolve_status(
        self,
        *,
        token: str,
        transaction_id: str,
        client_key: Optional[str] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> PaymentResolution:
        """Poll the intent until it leaves the processing state.

        Polling backs off exponentially and gives up after the configured
        number of attempts or ``timeout`` seconds, raising PaymentTimeout.
        """
        timeout = self.poll_timeout if timeout is None else timeout

        retrying = AsyncRetrying(
            retry=retry_if_result(lambda status: status == PROCESSING),
            stop=stop_after_attempt(self.poll_max_attempts) | stop_after_delay(timeout),
            wait=wait_exponential(multiplier=self.poll_initial_delay, max=self.poll_max_delay),
            reraise=True,
        )

        try:
            provider_status = await asyncio.wait_for(
                retrying(self._fetch_status, token, transaction_id, client_key),
                timeout=timeout,
            )
        except (RetryError, asyncio.TimeoutError) as e:
            logger.warning(
                "Maya payment still processing, giving up",
                transaction_id=transaction_id,
                timeout=timeout,
            )
            raise PaymentTimeout("PAYMENT_STATUS_TIMEOUT") from e

        logger.info(
            "Maya payment resolved",
            transaction_id=transaction_id,
            provider_status=provider_status,
        )
        return PaymentResolution(
            provider_status=provider_status,
            status=STATUS_MAP.get(provider_status),
        )
