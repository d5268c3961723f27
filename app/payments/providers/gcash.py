"""GCash redirect-checkout provider"""

from typing import Any, Optional
import structlog

from app.config import Settings
from app.errors import UpstreamUnavailable
from app.models.payment import PaymentStatus
from app.schemas.payment import PaymentIntent, PaymentResolution
from app.payments.providers.base import BasePaymentProvider

logger = structlog.get_logger()

# Source statuses after which the guest can no longer pay
FAILED_SOURCE_STATUSES = {"failed", "cancelled", "expired"}


class GCashProvider(BasePaymentProvider):
    """GCash payments through a redirect checkout source.

    The guest is sent to the source's checkout URL; the provider then
    redirects back with a token that is used to confirm the payment.
    """

    name = "gcash"

    def __init__(self, settings: Settings):
        settings.require("gcash_source_url", "gcash_payment_url")
        super().__init__(settings)
        self.source_url = settings.gcash_source_url
        self.payment_url = settings.gcash_payment_url
        self.currency = settings.payment_currency

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
        """Create a GCash source for a pending payment record"""
        logger.info(
            "GCash source request",
            guest_id=guest_id,
            amount=amount,
            payment_id=payment_id,
            evse_uid=evse_uid,
            connector_id=connector_id,
        )

        body = await self._post(
            self.source_url,
            {
                "user_id": guest_id,
                "amount": amount,
                "topup_id": payment_id,
                "user_type": "guest",
                "pnc_type": "pnc",
                "evse_uid": evse_uid,
                "connector_id": connector_id,
            },
            auth_token,
        )

        try:
            source = body["result"]["data"]
            attributes = source["attributes"]
            intent = PaymentIntent(
                provider=self.name,
                transaction_id=source["id"],
                provider_status=attributes["status"],
                checkout_url=attributes["redirect"]["checkout_url"],
            )
        except (KeyError, TypeError) as e:
            logger.error("Unexpected GCash source response", error=str(e))
            raise UpstreamUnavailable("PAYMENT_PROVIDER_UNAVAILABLE") from e

        logger.info(
            "GCash source created",
            payment_id=payment_id,
            transaction_id=intent.transaction_id,
            provider_status=intent.provider_status,
        )
        return intent

    async def resolve_status(
        self,
        *,
        token: str,
        transaction_id: str,
        amount: Optional[int] = None,
        description: Optional[str] = None,
        **kwargs: Any,
    ) -> PaymentResolution:
        """Charge the source the guest authorized and report the result"""
        body = await self._post(
            self.payment_url,
            {
                "amount": amount,
                "description": description,
                "currency": self.currency,
                "statement_descriptor": self.brand_name,
                "id": transaction_id,
                "type": "source",
            },
            token,
        )

        try:
            provider_status = body["data"]["attributes"]["status"]
        except (KeyError, TypeError) as e:
            logger.error("Unexpected GCash payment response", error=str(e))
            raise UpstreamUnavailable("PAYMENT_PROVIDER_UNAVAILABLE") from e

        status = None
        if provider_status == "paid":
            status = PaymentStatus.PAID
        elif provider_status in FAILED_SOURCE_STATUSES:
            status = PaymentStatus.FAILED

        logger.info(
            "GCash payment resolved",
            transaction_id=transaction_id,
            provider_status=provider_status,
        )
        return PaymentResolution(provider_status=provider_status, status=status)
