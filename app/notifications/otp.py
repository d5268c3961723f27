"""One-time code generation and delivery"""

from typing import Optional, Protocol
import secrets
import string
import structlog

from app.config import Settings
from app.errors import UpstreamUnavailable

logger = structlog.get_logger()

OTP_TEMPLATE = (
    "Hello, Guest User\n\n"
    "Your OTP for {brand} free charging is {otp}.\n\n"
    "Use it to authenticate. If you didn't request this, ignore it.\n\n"
    "Thanks,\n{brand}"
)


class SMSSender(Protocol):
    async def send(self, to: str, body: str) -> str:
        ...


def generate_otp(length: int = 4) -> str:
    """Numeric code of the given length"""
    return "".join(secrets.choice(string.digits) for _ in range(length))


class OTPGateway:
    """Generates OTP codes and texts them to guests"""

    def __init__(self, settings: Settings, sender: Optional[SMSSender] = None):
        self.length = settings.otp_length
        self.brand = settings.brand_name
        if sender is None:
            from app.notifications.sms import TwilioSMSSender

            sender = TwilioSMSSender(settings)
        self.sender = sender

    def generate(self) -> str:
        return generate_otp(self.length)

    def message(self, code: str) -> str:
        return OTP_TEMPLATE.format(brand=self.brand, otp=code)

    async def send(self, mobile_number: str, code: str) -> None:
        """Text the code; a failed send raises UpstreamUnavailable"""
        try:
            await self.sender.send(mobile_number, self.message(code))
        except Exception as e:
            raise UpstreamUnavailable("SMS_DELIVERY_FAILED") from e
        logger.info("OTP sent", to=mobile_number[-4:])

    async def deliver(self, mobile_number: str, code: str) -> bool:
        """Best-effort send: a failed SMS is queued for retry instead of raised.

        Returns True when the message went out inline.
        """
        try:
            await self.send(mobile_number, code)
            return True
        except Exception as e:
            logger.error("Failed to send OTP, queueing retry", to=mobile_number[-4:], error=str(e))

        try:
            from app.jobs.celery_app import celery_app

            celery_app.send_task("send_otp_sms", args=[mobile_number, self.message(code)])
        except Exception as e:
            logger.error("Failed to queue OTP retry", to=mobile_number[-4:], error=str(e))
        return False
