"""Auth module client issuing access tokens for the payment providers"""

import httpx
import structlog

from app.config import Settings
from app.errors import UpstreamUnavailable

logger = structlog.get_logger()


class AuthModuleClient:
    """Requests a bearer token used to create provider payments"""

    def __init__(self, settings: Settings):
        settings.require("authmodule_url", "authmodule_grant_type", "authmodule_authorization")
        self.url = settings.authmodule_url
        self.grant_type = settings.authmodule_grant_type
        self.authorization = settings.authmodule_authorization
        self.timeout = settings.http_timeout

    async def request_token(self) -> str:
        logger.info("Requesting auth module token")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.url,
                    json={"grant_type": self.grant_type},
                    headers={
                        "Accept": "application/json",
                        "Authorization": f"Basic {self.authorization}",
                        "Content-Type": "application/json",
                    },
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Auth module request failed", error=str(e))
            raise UpstreamUnavailable("AUTHMODULE_UNAVAILABLE") from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            logger.error("Auth module returned no access token")
            raise UpstreamUnavailable("AUTHMODULE_UNAVAILABLE")

        return token
