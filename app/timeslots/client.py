"""Booking timeslot service client"""

from typing import Optional, Tuple
import httpx
from pydantic import ValidationError
import structlog

from app.config import Settings
from app.errors import BadRequest, UpstreamUnavailable
from app.schemas.timeslot import Timeslot

logger = structlog.get_logger()


def _error_message(response: httpx.Response) -> Optional[str]:
    """Structured error message reported by the booking service, if any"""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return None


class TimeslotClient:
    """Resolves the current and next timeslot of a connector.

    No retries happen here; a failed lookup fails the reservation.
    """

    def __init__(self, settings: Settings):
        settings.require("timeslot_base_url", "timeslot_basic_auth")
        self.base_url = settings.timeslot_base_url.rstrip("/")
        self.basic_auth = settings.timeslot_basic_auth
        self.timeout = settings.http_timeout

    async def get_timeslots(
        self,
        location_id: int,
        evse_uid: str,
        connector_id: str,
        current_hour: int,
    ) -> Tuple[Timeslot, Timeslot]:
        """Return the (current, next) timeslot for the given hour"""
        url = (
            f"{self.base_url}/booking_timeslot/api/v1/timeslots/"
            f"{location_id}/{evse_uid}/{connector_id}/{current_hour}"
        )

        logger.debug(
            "Timeslot request",
            location_id=location_id,
            evse_uid=evse_uid,
            connector_id=connector_id,
            hour=current_hour,
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    url,
                    headers={
                        "Accept": "application/json",
                        "Authorization": f"Basic {self.basic_auth}",
                    },
                )
        except httpx.HTTPError as e:
            logger.error("Timeslot service unreachable", url=url, error=str(e))
            raise UpstreamUnavailable("TIMESLOT_SERVICE_UNAVAILABLE") from e

        if response.is_error:
            message = _error_message(response)
            logger.warning(
                "Timeslot service error",
                status_code=response.status_code,
                message=message,
            )
            if message:
                raise BadRequest(message)
            raise UpstreamUnavailable("TIMESLOT_SERVICE_UNAVAILABLE")

        try:
            slots = response.json().get("data") or []
        except (ValueError, AttributeError) as e:
            raise UpstreamUnavailable("TIMESLOT_SERVICE_UNAVAILABLE") from e

        try:
            if len(slots) >= 2:
                return Timeslot(**slots[0]), Timeslot(**slots[1])
        except (ValidationError, KeyError, TypeError) as e:
            logger.error("Unexpected timeslot response", error=str(e))
            raise UpstreamUnavailable("TIMESLOT_SERVICE_UNAVAILABLE") from e

        raise BadRequest("NO_AVAILABLE_TIMESLOTS")
