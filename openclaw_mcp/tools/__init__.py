"""
MCP tools for the OpenClaw gateway.

- chat: synchronous chat and gateway status
- tasks: async chat submission plus task status, list and cancel

Handlers return the plain tool contract ({"content": [...], "isError": ...});
register_tools() adapts them to fastmcp, turning error responses into ToolError.
"""

from typing import TYPE_CHECKING, Annotated, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from pydantic import Field

from openclaw_mcp.tools.chat import handle_chat, handle_status
from openclaw_mcp.tools.tasks import (
    handle_chat_async,
    handle_task_cancel,
    handle_task_list,
    handle_task_status,
)
from openclaw_mcp.utils.responses import ToolResponse, is_error, response_text

if TYPE_CHECKING:
    from openclaw_mcp.server import Services


def _unwrap(response: ToolResponse) -> str:
    if is_error(response):
        raise ToolError(response_text(response))
    return response_text(response)


def register_tools(mcp: FastMCP, services: "Services") -> None:
    """Register the openclaw_* tools on an MCP server instance."""

    @mcp.tool()
    async def openclaw_chat(
        message: Annotated[str, Field(description="The message to send to OpenClaw")],
        session_id: Annotated[
            Optional[str], Field(description="Optional session ID for conversation context")
        ] = None,
    ) -> str:
        """Send a message to OpenClaw and wait for the response."""
        return _unwrap(await handle_chat(services.client, message, session_id))

    @mcp.tool()
    async def openclaw_status() -> str:
        """Check whether the OpenClaw gateway is reachable and healthy."""
        return _unwrap(await handle_status(services.client))

    @mcp.tool()
    async def openclaw_chat_async(
        message: Annotated[str, Field(description="The message to send to OpenClaw")],
        session_id: Annotated[
            Optional[str], Field(description="Optional session ID for conversation context")
        ] = None,
        priority: Annotated[
            int, Field(description="Task priority (higher = processed first). Default: 0")
        ] = 0,
    ) -> str:
        """
        Queue a message for OpenClaw and return a task ID immediately.

        Use openclaw_task_status to poll for the result.
        """
        return _unwrap(
            await handle_chat_async(services.store, services.worker, message, session_id, priority)
        )

    @mcp.tool()
    async def openclaw_task_status(
        task_id: Annotated[str, Field(description="The task ID returned by openclaw_chat_async")],
    ) -> str:
        """Get the status of an async task, including its result once completed."""
        return _unwrap(await handle_task_status(services.store, task_id))

    @mcp.tool()
    async def openclaw_task_list(
        status: Annotated[
            Optional[str],
            Field(description="Filter by status: pending, running, completed, failed, cancelled"),
        ] = None,
        session_id: Annotated[Optional[str], Field(description="Filter by session ID")] = None,
    ) -> str:
        """List async tasks with optional filters, highest priority first."""
        return _unwrap(await handle_task_list(services.store, status, session_id))

    @mcp.tool()
    async def openclaw_task_cancel(
        task_id: Annotated[str, Field(description="The task ID to cancel")],
    ) -> str:
        """Cancel a pending task. Running or finished tasks cannot be cancelled."""
        return _unwrap(await handle_task_cancel(services.store, task_id))
