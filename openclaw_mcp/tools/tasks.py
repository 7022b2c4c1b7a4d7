"""
Async task tools.

`openclaw_chat_async` queues a chat message and returns a task ID at once;
the TaskWorker processes it in the background and the other tools poll,
list and cancel.
"""

from typing import Optional

from loguru import logger

from openclaw_mcp.tasks.models import TaskKind, TaskStatus
from openclaw_mcp.tasks.store import CancelOutcome, CapacityExceededError, TaskStore
from openclaw_mcp.tasks.worker import TaskWorker
from openclaw_mcp.utils.responses import ToolResponse, error_response, json_response
from openclaw_mcp.utils.validation import (
    ValidationError,
    validate_id,
    validate_message,
    validate_optional_id,
    validate_priority,
    validate_status,
)


async def handle_chat_async(
    store: TaskStore,
    worker: TaskWorker,
    message: str,
    session_id: Optional[str] = None,
    priority: Optional[int] = 0,
) -> ToolResponse:
    try:
        message = validate_message(message)
        session_id = validate_optional_id(session_id, "session_id")
        priority = validate_priority(priority)
    except ValidationError as e:
        return error_response(str(e))

    # The worker is started lazily on the first async submission
    worker.start()

    try:
        task = store.create(
            TaskKind.CHAT.value,
            {"message": message, "session_id": session_id},
            session_id=session_id,
            priority=priority,
        )
    except CapacityExceededError as e:
        logger.warning(str(e))
        return error_response(str(e))

    return json_response(
        {
            "task_id": task.id,
            "status": task.status.value,
            "message": "Task queued. Use openclaw_task_status to check progress.",
        }
    )


async def handle_task_status(store: TaskStore, task_id: str) -> ToolResponse:
    try:
        task_id = validate_id(task_id, "task_id")
    except ValidationError as e:
        return error_response(str(e))

    task = store.get(task_id)
    if task is None:
        return error_response(f"Task not found: {task_id}")
    return json_response(task.to_detail())


async def handle_task_list(
    store: TaskStore,
    status: Optional[str] = None,
    session_id: Optional[str] = None,
) -> ToolResponse:
    try:
        status_filter = validate_status(status)
        session_id = validate_optional_id(session_id, "session_id")
    except ValidationError as e:
        return error_response(str(e))

    tasks = store.list(status=status_filter, session_id=session_id)
    return json_response(
        {
            "stats": store.stats(),
            "tasks": [t.to_summary() for t in tasks],
        }
    )


async def handle_task_cancel(store: TaskStore, task_id: str) -> ToolResponse:
    try:
        task_id = validate_id(task_id, "task_id")
    except ValidationError as e:
        return error_response(str(e))

    outcome = store.cancel(task_id)
    if outcome == CancelOutcome.NOT_FOUND:
        return error_response(f"Task not found: {task_id}")
    if outcome == CancelOutcome.REJECTED:
        task = store.get(task_id)
        current = task.status.value if task else "unknown"
        return error_response(
            f"Cannot cancel task with status: {current}. Only pending tasks can be cancelled."
        )

    return json_response(
        {
            "task_id": task_id,
            "status": TaskStatus.CANCELLED.value,
            "message": "Task cancelled successfully",
        }
    )
