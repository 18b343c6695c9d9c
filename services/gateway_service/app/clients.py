"""HTTP clients for gateway to call microservices."""

from typing import Optional

import httpx
from libs.common.config import get_settings

settings = get_settings()


class ServiceClient:
    """Thin client forwarding raw requests to one microservice.

    Responses are returned as-is, error statuses included; the gateway
    relays them to the caller unchanged.
    """

    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def request(
        self,
        method: str,
        path: str,
        content: Optional[bytes] = None,
        headers: Optional[dict] = None,
    ) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(
                method,
                f"{self.base_url}{path}",
                content=content,
                headers=headers or {},
            )


# Service client instances
members_client = ServiceClient(
    settings.MEMBERS_SERVICE_URL, settings.GATEWAY_PROXY_TIMEOUT_SECONDS
)
communications_client = ServiceClient(
    settings.COMMUNICATIONS_SERVICE_URL, settings.GATEWAY_PROXY_TIMEOUT_SECONDS
)
approvals_client = ServiceClient(
    settings.APPROVALS_SERVICE_URL, settings.GATEWAY_PROXY_TIMEOUT_SECONDS
)
