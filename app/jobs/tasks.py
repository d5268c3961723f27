"""Background job tasks"""

from twilio.base.exceptions import TwilioException
import structlog

from app.jobs.celery_app import celery_app
from app.config import settings

logger = structlog.get_logger()


@celery_app.task(
    name="send_otp_sms",
    autoretry_for=(TwilioException, ConnectionError),
    retry_backoff=True,
    retry_backoff_max=300,
    max_retries=5,
)
def send_otp_sms(mobile_number: str, body: str):
    """Retry an OTP text that could not be sent during the request"""
    from app.notifications.sms import TwilioSMSSender

    logger.info("Retrying OTP SMS", to=mobile_number[-4:])

    sender = TwilioSMSSender(settings)
    return sender.send_sync(mobile_number, body)
