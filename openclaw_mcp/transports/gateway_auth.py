"""
Custom httpx transport that authenticates requests to the OpenClaw gateway.

The GatewayAuthTransport wraps httpx.AsyncHTTPTransport and injects the
gateway bearer token (when one is configured) on every outbound request.
"""

from typing import Optional

import httpx
from loguru import logger


class GatewayAuthTransport(httpx.AsyncBaseTransport):
    """
    Transport that adds the gateway Authorization header to all requests.

    Keeping the token here, rather than in default client headers, means the
    token never shows up in client construction logs or repr output.
    """

    def __init__(
        self,
        gateway_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            gateway_token: Bearer token for the OpenClaw gateway, if it requires one
            transport: Underlying transport (defaults to AsyncHTTPTransport)
        """
        self._gateway_token = gateway_token
        self._transport = transport or httpx.AsyncHTTPTransport()

        logger.debug(
            f"GatewayAuthTransport initialized: token={'configured' if gateway_token else 'not set'}"
        )

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if self._gateway_token and "Authorization" not in request.headers:
            request.headers["Authorization"] = f"Bearer {self._gateway_token}"

        try:
            response = await self._transport.handle_async_request(request)
            logger.debug(f"{request.method} {request.url.path} -> {response.status_code}")
            return response
        except Exception as e:
            logger.error(f"Request failed: {request.method} {request.url.path} - {e}")
            raise

    async def aclose(self):
        await self._transport.aclose()
        logger.debug("GatewayAuthTransport closed")
