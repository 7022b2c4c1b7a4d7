"""
Async HTTP client for the OpenClaw gateway.

The gateway speaks the OpenAI-compatible chat completions API, so both chat
and health checks go through POST /v1/chat/completions.
"""

import json
from typing import Any, Dict, Optional

import httpx
from loguru import logger
from pydantic import BaseModel

from openclaw_mcp.transports.gateway_auth import GatewayAuthTransport

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MODEL = "claude-opus-4-5"
MAX_RESPONSE_SIZE_BYTES = 10 * 1024 * 1024  # 10MB
CHAT_COMPLETIONS_PATH = "/v1/chat/completions"


class OpenClawError(Exception):
    """Base error for gateway calls."""

    pass


class OpenClawConnectionError(OpenClawError):
    """Raised when the gateway cannot be reached or the request times out."""

    pass


class OpenClawApiError(OpenClawError):
    """Raised when the gateway answers with an error status or an unusable body."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class ChatResponse(BaseModel):
    """Assistant reply extracted from a chat completion."""

    response: str
    model: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None


class HealthResponse(BaseModel):
    status: str  # "ok" or "error"
    message: str


class OpenClawClient:
    """
    Client for the OpenClaw gateway.

    One httpx.AsyncClient is created lazily and reused for the lifetime of the
    process; call aclose() on shutdown.
    """

    def __init__(
        self,
        base_url: str,
        gateway_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        model: str = DEFAULT_MODEL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Gateway base URL (e.g. http://127.0.0.1:18789)
            gateway_token: Optional bearer token required by the gateway
            timeout: Per-request timeout in seconds
            model: Model name sent with chat completions
            transport: Underlying transport (tests pass httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.model = model
        self._transport = GatewayAuthTransport(gateway_token, transport)
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post(self, path: str, payload: Dict[str, Any]) -> httpx.Response:
        try:
            return await self._get_client().post(path, json=payload)
        except httpx.TimeoutException as e:
            raise OpenClawConnectionError(
                f"Request to OpenClaw timed out after {self.timeout:g}s"
            ) from e
        except httpx.HTTPError as e:
            raise OpenClawConnectionError(
                f"Failed to connect to OpenClaw at {self.base_url}: {e}"
            ) from e

    async def _request_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._post(path, payload)

        if response.is_error:
            raise OpenClawApiError(
                f"API request failed: {response.status_code} {response.reason_phrase}",
                response.status_code,
            )

        content_length = response.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > MAX_RESPONSE_SIZE_BYTES:
            raise OpenClawApiError("Response exceeds maximum allowed size (10MB)", 413)
        if len(response.content) > MAX_RESPONSE_SIZE_BYTES:
            raise OpenClawApiError("Response exceeds maximum allowed size (10MB)", 413)

        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise OpenClawApiError("Gateway returned invalid JSON", response.status_code) from e

    async def chat(self, message: str, session_id: Optional[str] = None) -> ChatResponse:
        """
        Send a message via the chat completions endpoint.

        Args:
            message: User message
            session_id: Conversation key, forwarded as the OpenAI "user" field

        Returns:
            ChatResponse with the first choice's content

        Raises:
            OpenClawConnectionError: On timeout or network failure
            OpenClawApiError: On non-2xx status or oversized/invalid body
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": message}],
            "max_tokens": 4096,
        }
        if session_id:
            payload["user"] = session_id

        logger.debug(f"Chat request: {len(message)} chars, session={session_id}")
        completion = await self._request_json(CHAT_COMPLETIONS_PATH, payload)

        choices = completion.get("choices") or []
        content = ""
        if choices:
            content = (choices[0].get("message") or {}).get("content") or ""

        return ChatResponse(
            response=content,
            model=completion.get("model"),
            usage=completion.get("usage"),
        )

    async def health(self) -> HealthResponse:
        """
        Check gateway health with a minimal chat completion request.

        Any status below 500 means the gateway parsed the request, so it is
        alive (a 400 for the empty message list is expected).

        Raises:
            OpenClawConnectionError: If the gateway is unreachable
        """
        response = await self._post(
            CHAT_COMPLETIONS_PATH,
            {"model": "health-check", "messages": [], "max_tokens": 1},
        )

        if response.status_code < 500:
            return HealthResponse(status="ok", message=f"Gateway responding (HTTP {response.status_code})")
        return HealthResponse(status="error", message=f"Gateway error (HTTP {response.status_code})")
