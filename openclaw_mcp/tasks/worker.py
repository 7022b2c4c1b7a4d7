"""
Background worker that drains the TaskStore.

A single cooperative loop: claim the next pending task, hand it to the
dispatcher registered for its kind, record the outcome, repeat. When nothing
is pending the loop sleeps for a short fixed interval before polling again.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Optional

from loguru import logger

from openclaw_mcp.gateway.client import OpenClawClient
from openclaw_mcp.tasks.models import Task, TaskKind, TaskStatus
from openclaw_mcp.tasks.store import TaskStore

Dispatcher = Callable[[Task], Awaitable[str]]

DEFAULT_POLL_INTERVAL = 0.1


def chat_dispatcher(client: OpenClawClient) -> Dispatcher:
    """Build the dispatcher for "chat" tasks, backed by the gateway client."""

    async def dispatch(task: Task) -> str:
        payload = task.input or {}
        response = await client.chat(payload["message"], payload.get("session_id"))
        return response.response

    return dispatch


class TaskWorker:
    """
    Runs queued tasks one at a time.

    start() is idempotent and is called on the first async submission.
    stop() only sets a flag: the task currently in flight runs to completion.
    """

    def __init__(
        self,
        store: TaskStore,
        dispatchers: Optional[Dict[str, Dispatcher]] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.store = store
        self.dispatchers: Dict[str, Dispatcher] = dict(dispatchers or {})
        self.poll_interval = poll_interval
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the worker loop on the running event loop. No-op if already running."""
        if self._running:
            return

        self._running = True
        if self._loop_task is not None and not self._loop_task.done():
            # A stopped loop still finishing its in-flight task resumes polling
            logger.info("Task processor resumed")
            return

        self._loop_task = asyncio.create_task(self._run())
        self._loop_task.add_done_callback(self._on_loop_done)
        logger.info("Task processor started")

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        logger.info("Task processor stopped")

    async def aclose(self) -> None:
        """Stop the loop and wait for the in-flight task to finish."""
        self.stop()
        if self._loop_task is not None:
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

    def _on_loop_done(self, loop_task: asyncio.Task) -> None:
        # Last-resort safety stop: a crashed loop must not look alive
        self._running = False
        if not loop_task.cancelled() and loop_task.exception() is not None:
            logger.error(f"Task processor crashed: {loop_task.exception()}")

    async def _run(self) -> None:
        while self._running:
            task = self.store.claim_next_pending()
            if task is None:
                await asyncio.sleep(self.poll_interval)
                continue
            await self.process(task)

    async def process(self, task: Task) -> None:
        """
        Dispatch one claimed task and record its outcome.

        Failures of any kind end up as a FAILED task with the error message;
        they never propagate out of this method.
        """
        dispatcher = self.dispatchers.get(task.kind)
        if dispatcher is None:
            logger.warning(f"Task {task.id}: no dispatcher for type {task.kind!r}")
            self.store.update_status(task.id, TaskStatus.FAILED, error=f"Unknown task type: {task.kind}")
            return

        try:
            result = await dispatcher(task)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"Task {task.id} failed: {message}")
            self.store.update_status(task.id, TaskStatus.FAILED, error=message)
            return

        self.store.update_status(task.id, TaskStatus.COMPLETED, result=result)
        logger.info(f"Task {task.id} completed")


def build_worker(store: TaskStore, client: OpenClawClient, **kwargs) -> TaskWorker:
    return TaskWorker(store, {TaskKind.CHAT.value: chat_dispatcher(client)}, **kwargs)
