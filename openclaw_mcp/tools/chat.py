"""
Synchronous gateway tools: chat and status.
"""

from typing import Optional

from loguru import logger

from openclaw_mcp.gateway.client import OpenClawClient, OpenClawError
from openclaw_mcp.utils.responses import ToolResponse, error_response, json_response, success_response
from openclaw_mcp.utils.validation import ValidationError, validate_message, validate_optional_id


async def handle_chat(
    client: OpenClawClient,
    message: str,
    session_id: Optional[str] = None,
) -> ToolResponse:
    """Send a message to the gateway and wait for the reply."""
    try:
        message = validate_message(message)
        session_id = validate_optional_id(session_id, "session_id")
    except ValidationError as e:
        return error_response(str(e))

    try:
        response = await client.chat(message, session_id)
    except OpenClawError as e:
        logger.error(f"openclaw_chat failed: {e}")
        return error_response(str(e))

    return success_response(response.response)


async def handle_status(client: OpenClawClient) -> ToolResponse:
    """Report gateway health."""
    try:
        health = await client.health()
    except OpenClawError as e:
        return error_response(str(e))
    return json_response(health.model_dump())
