"""
Tests for the MCP tool handlers and their registration on FastMCP.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastmcp import Client, FastMCP
from fastmcp.exceptions import ToolError
from mcp.types import TextContent

from openclaw_mcp.auth.clients import ClientRegistry
from openclaw_mcp.auth.server import AuthorizationServer
from openclaw_mcp.config import Settings
from openclaw_mcp.gateway.client import ChatResponse, HealthResponse, OpenClawApiError
from openclaw_mcp.server import Services
from openclaw_mcp.tasks.models import TaskStatus
from openclaw_mcp.tasks.store import TaskStore
from openclaw_mcp.tasks.worker import TaskWorker
from openclaw_mcp.tools import register_tools
from openclaw_mcp.tools.chat import handle_chat, handle_status
from openclaw_mcp.tools.tasks import (
    handle_chat_async,
    handle_task_cancel,
    handle_task_list,
    handle_task_status,
)
from openclaw_mcp.utils.responses import is_error, response_text


@pytest.fixture
def gateway():
    client = MagicMock()
    client.chat = AsyncMock(return_value=ChatResponse(response="Hello from OpenClaw"))
    client.health = AsyncMock(return_value=HealthResponse(status="ok", message="Gateway responding (HTTP 400)"))
    return client


@pytest.fixture
def store(clock):
    return TaskStore(max_tasks=3, clock=clock)


@pytest.fixture
def worker(store):
    return MagicMock(spec=TaskWorker)


def payload(response):
    assert not is_error(response), response_text(response)
    return json.loads(response_text(response))


class TestChatTools:
    @pytest.mark.asyncio
    async def test_chat_returns_reply_text(self, gateway):
        response = await handle_chat(gateway, "  Hi  ", "s1")

        assert response == {"content": [{"type": "text", "text": "Hello from OpenClaw"}]}
        gateway.chat.assert_awaited_once_with("Hi", "s1")

    @pytest.mark.asyncio
    async def test_chat_rejects_empty_message(self, gateway):
        response = await handle_chat(gateway, "   ")

        assert is_error(response)
        assert response_text(response) == "Error: message must not be empty"
        gateway.chat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_chat_rejects_control_characters(self, gateway):
        response = await handle_chat(gateway, "hi\x00there")

        assert is_error(response)

    @pytest.mark.asyncio
    async def test_chat_gateway_error(self, gateway):
        gateway.chat.side_effect = OpenClawApiError("API request failed: 500 Internal Server Error", 500)

        response = await handle_chat(gateway, "Hi")

        assert response["isError"] is True
        assert response_text(response) == "Error: API request failed: 500 Internal Server Error"

    @pytest.mark.asyncio
    async def test_status(self, gateway):
        assert payload(await handle_status(gateway)) == {
            "status": "ok",
            "message": "Gateway responding (HTTP 400)",
        }


class TestTaskTools:
    @pytest.mark.asyncio
    async def test_chat_async_queues_task_and_starts_worker(self, store, worker):
        data = payload(await handle_chat_async(store, worker, "Hi", "s1", 5))

        assert data["status"] == "pending"
        assert data["message"] == "Task queued. Use openclaw_task_status to check progress."
        worker.start.assert_called_once()
        task = store.get(data["task_id"])
        assert task.input == {"message": "Hi", "session_id": "s1"}
        assert task.priority == 5

    @pytest.mark.asyncio
    async def test_chat_async_capacity(self, store, worker):
        for _ in range(3):
            await handle_chat_async(store, worker, "Hi")

        response = await handle_chat_async(store, worker, "Hi")

        assert is_error(response)
        assert "Task limit reached (3)" in response_text(response)

    @pytest.mark.asyncio
    async def test_chat_async_rejects_bool_priority(self, store, worker):
        response = await handle_chat_async(store, worker, "Hi", priority=True)

        assert response_text(response) == "Error: priority must be an integer"
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_task_status(self, store):
        task = store.create("chat", {"message": "Hi"})
        store.update_status(task.id, TaskStatus.RUNNING)
        store.update_status(task.id, TaskStatus.COMPLETED, result="Done")

        data = payload(await handle_task_status(store, task.id))

        assert data["status"] == "completed"
        assert data["result"] == "Done"

    @pytest.mark.asyncio
    async def test_task_status_not_found(self, store):
        response = await handle_task_status(store, "task_missing")

        assert response_text(response) == "Error: Task not found: task_missing"

    @pytest.mark.asyncio
    async def test_task_list_with_filters(self, store):
        a = store.create("chat", {}, session_id="s1", priority=1)
        store.create("chat", {}, session_id="s2")
        store.cancel(a.id)

        data = payload(await handle_task_list(store, status="cancelled"))

        assert [t["task_id"] for t in data["tasks"]] == [a.id]
        assert data["stats"]["total"] == 2
        assert data["stats"]["by_status"]["cancelled"] == 1

    @pytest.mark.asyncio
    async def test_task_list_invalid_status(self, store):
        response = await handle_task_list(store, status="done")

        assert response_text(response).startswith("Error: status must be one of: pending, running")

    @pytest.mark.asyncio
    async def test_cancel_pending(self, store):
        task = store.create("chat", {})

        data = payload(await handle_task_cancel(store, task.id))

        assert data == {"task_id": task.id, "status": "cancelled", "message": "Task cancelled successfully"}

    @pytest.mark.asyncio
    async def test_cancel_running_rejected(self, store):
        task = store.create("chat", {})
        store.claim_next_pending()

        response = await handle_task_cancel(store, task.id)

        assert response_text(response) == (
            "Error: Cannot cancel task with status: running. Only pending tasks can be cancelled."
        )

    @pytest.mark.asyncio
    async def test_cancel_unknown(self, store):
        response = await handle_task_cancel(store, "task_missing")

        assert response_text(response) == "Error: Task not found: task_missing"


class TestRegistration:
    @pytest.fixture
    def mcp(self, gateway, store, worker):
        settings = Settings()
        clients = ClientRegistry()
        services = Services(
            settings=settings,
            store=store,
            worker=worker,
            client=gateway,
            clients=clients,
            auth_server=AuthorizationServer(clients),
        )
        mcp = FastMCP(name="test")
        register_tools(mcp, services)
        return mcp

    @pytest.mark.asyncio
    async def test_all_tools_registered(self, mcp):
        async with Client(mcp) as client:
            names = {tool.name for tool in await client.list_tools()}

        assert names == {
            "openclaw_chat",
            "openclaw_status",
            "openclaw_chat_async",
            "openclaw_task_status",
            "openclaw_task_list",
            "openclaw_task_cancel",
        }

    @pytest.mark.asyncio
    async def test_call_returns_text_content(self, mcp):
        async with Client(mcp) as client:
            result = await client.call_tool("openclaw_chat", {"message": "Hi"})

        block = result.content[0]
        assert isinstance(block, TextContent)
        assert block.text == "Hello from OpenClaw"

    @pytest.mark.asyncio
    async def test_error_response_becomes_tool_error(self, mcp):
        async with Client(mcp) as client:
            with pytest.raises(ToolError, match="Task not found: task_missing"):
                await client.call_tool("openclaw_task_status", {"task_id": "task_missing"})
