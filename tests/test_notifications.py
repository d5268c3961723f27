"""Tests for OTP delivery, the Twilio sender and the SMS retry task"""

from types import SimpleNamespace

import pytest

from app.errors import UpstreamUnavailable
from app.jobs.celery_app import celery_app
from app.jobs.tasks import send_otp_sms
from app.notifications import sms
from app.notifications.otp import OTPGateway, generate_otp

from conftest import FakeSMSSender


class FakeMessages:
    def __init__(self):
        self.created = []

    def create(self, body, from_, to):
        self.created.append({"body": body, "from_": from_, "to": to})
        return SimpleNamespace(sid=f"SM{len(self.created)}")


def twilio_settings(test_settings):
    return test_settings.model_copy(
        update={
            "twilio_account_sid": "AC123",
            "twilio_auth_token": "token",
            "twilio_phone_number": "+15550001111",
        }
    )


def test_generate_otp():
    code = generate_otp(6)

    assert len(code) == 6
    assert code.isdigit()


@pytest.mark.asyncio
async def test_send_raises_upstream_error(test_settings):
    sender = FakeSMSSender()
    sender.fail = True
    otp = OTPGateway(test_settings, sender=sender)

    with pytest.raises(UpstreamUnavailable) as exc_info:
        await otp.send("09171234567", "1234")

    assert exc_info.value.message == "SMS_DELIVERY_FAILED"


@pytest.mark.asyncio
async def test_deliver_queues_retry_on_failure(test_settings, monkeypatch):
    queued = []
    monkeypatch.setattr(celery_app, "send_task", lambda name, args=None, **kwargs: queued.append((name, args)))

    sender = FakeSMSSender()
    sender.fail = True
    otp = OTPGateway(test_settings, sender=sender)

    delivered = await otp.deliver("09171234567", "1234")

    assert delivered is False
    assert queued == [("send_otp_sms", ["09171234567", otp.message("1234")])]


@pytest.mark.asyncio
async def test_twilio_sender_normalizes_number(test_settings):
    sender = sms.TwilioSMSSender(twilio_settings(test_settings))
    messages = FakeMessages()
    sender.client = SimpleNamespace(messages=messages)

    sid = await sender.send("09171234567", "hello")

    assert sid == "SM1"
    assert messages.created == [{"body": "hello", "from_": "+15550001111", "to": "+639171234567"}]


def test_send_otp_sms_task(test_settings, monkeypatch):
    messages = FakeMessages()

    class StubSender:
        def __init__(self, settings):
            pass

        def send_sync(self, to, body):
            return messages.create(body=body, from_="+15550001111", to=to).sid

    monkeypatch.setattr(sms, "TwilioSMSSender", StubSender)

    assert send_otp_sms.run("09171234567", "Your OTP is 1234.") == "SM1"
    assert messages.created[0]["to"] == "09171234567"
