"""Twilio SMS transport"""

import asyncio
from twilio.rest import Client as TwilioClient
import structlog

from app.config import Settings

logger = structlog.get_logger()


def to_e164(mobile_number: str, country_code: str = "63") -> str:
    """Normalize a local mobile number such as 09171234567 to +639171234567"""
    digits = "".join(ch for ch in mobile_number if ch.isdigit())
    if mobile_number.strip().startswith("+"):
        return f"+{digits}"
    if digits.startswith("0"):
        return f"+{country_code}{digits[1:]}"
    if digits.startswith(country_code):
        return f"+{digits}"
    return f"+{country_code}{digits}"


class TwilioSMSSender:
    """Sends text messages from the configured Twilio number"""

    def __init__(self, settings: Settings):
        settings.require("twilio_account_sid", "twilio_auth_token", "twilio_phone_number")
        self.client = TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token)
        self.from_number = settings.twilio_phone_number
        self.country_code = settings.sms_country_code

    def send_sync(self, to: str, body: str) -> str:
        message = self.client.messages.create(
            body=body,
            from_=self.from_number,
            to=to_e164(to, self.country_code),
        )
        logger.info("SMS sent", to=to[-4:], message_sid=message.sid)
        return message.sid

    async def send(self, to: str, body: str) -> str:
        """Send without blocking the event loop; returns the message SID"""
        return await asyncio.to_thread(self.send_sync, to, body)
