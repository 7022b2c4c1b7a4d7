"""
In-memory async task storage and scheduling.

Holds every Task submitted through the async tools so that:
- `openclaw_chat_async` can enqueue work and return a task ID immediately,
- the TaskWorker can pick up the highest-priority, oldest pending task,
- `openclaw_task_status` / `openclaw_task_list` can poll results later.

Note: This is per-process storage. Tasks are lost on restart and are never
shared between instances.
"""

import asyncio
import itertools
import threading
import time
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from openclaw_mcp.tasks.models import TERMINAL_STATUSES, Task, TaskStatus

DEFAULT_MAX_TASKS = 1000
CLEANUP_INTERVAL = timedelta(minutes=10)
CLEANUP_MAX_AGE = timedelta(hours=1)

# Allowed forward moves; terminal states have no outgoing edges
_TRANSITIONS = {
    TaskStatus.PENDING: {
        TaskStatus.PENDING,
        TaskStatus.RUNNING,
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.CANCELLED,
    },
    TaskStatus.RUNNING: {TaskStatus.RUNNING, TaskStatus.COMPLETED, TaskStatus.FAILED},
}


class CapacityExceededError(Exception):
    """Raised when the store already holds the maximum number of tasks."""

    def __init__(self, max_tasks: int):
        self.max_tasks = max_tasks
        super().__init__(
            f"Task limit reached ({max_tasks}). "
            "Wait for tasks to complete or cancel pending ones."
        )


class CancelOutcome(str, Enum):
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while True:
        value, rem = divmod(value, 36)
        out = digits[rem] + out
        if value == 0:
            return out


class TaskStore:
    """
    Registry of async tasks with priority-ordered retrieval.

    All reads return snapshot copies; every mutation goes through this class.
    A single lock guards the task map so request handlers, the worker loop and
    the cleanup loop never interleave partial updates.
    """

    def __init__(
        self,
        max_tasks: int = DEFAULT_MAX_TASKS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Args:
            max_tasks: Capacity ceiling, counted across all statuses
            clock: Returns the current aware datetime (injectable for tests)
        """
        self.max_tasks = max_tasks
        self._clock = clock
        self._tasks: Dict[str, Task] = {}
        self._lock = threading.Lock()
        self._seq = itertools.count(1)
        self._cleanup_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._tasks)

    def _generate_id(self, seq: int) -> str:
        timestamp = _base36(int(time.time() * 1000))
        return f"task_{timestamp}_{_base36(seq).rjust(4, '0')}"

    def create(
        self,
        kind: str,
        input: Any,
        session_id: Optional[str] = None,
        priority: int = 0,
    ) -> Task:
        """
        Create a new pending task.

        Args:
            kind: Work variant tag (e.g. "chat")
            input: Opaque payload handed to the dispatcher
            session_id: Optional correlation key for filtering
            priority: Higher values are served first

        Returns:
            Snapshot of the created task

        Raises:
            CapacityExceededError: If the store is full
        """
        with self._lock:
            if len(self._tasks) >= self.max_tasks:
                raise CapacityExceededError(self.max_tasks)

            seq = next(self._seq)
            task = Task(
                id=self._generate_id(seq),
                kind=kind,
                input=input,
                created_at=self._clock(),
                priority=priority,
                session_id=session_id,
                seq=seq,
            )
            self._tasks[task.id] = task

        logger.info(f"Task created: {task.id} (type: {task.kind}, priority: {task.priority})")
        return replace(task)

    def get(self, task_id: str) -> Optional[Task]:
        with self._lock:
            task = self._tasks.get(task_id)
            return replace(task) if task else None

    def list(
        self,
        status: Optional[TaskStatus] = None,
        session_id: Optional[str] = None,
    ) -> List[Task]:
        """
        List tasks matching every given filter.

        Ordering is the scheduling contract: priority descending, then
        creation time ascending, then insertion order.
        """
        with self._lock:
            return self._list_locked(status, session_id)

    def _list_locked(self, status, session_id) -> List[Task]:
        tasks = [
            t
            for t in self._tasks.values()
            if (status is None or t.status == status)
            and (session_id is None or t.session_id == session_id)
        ]
        tasks.sort(key=Task.sort_key)
        return [replace(t) for t in tasks]

    def update_status(
        self,
        task_id: str,
        status: TaskStatus,
        result: Optional[str] = None,
        error: Optional[str] = None,
    ) -> bool:
        """
        Move a task to a new status.

        Sets started_at the first time the task enters RUNNING and
        completed_at on entry to any terminal status. result/error are stored
        verbatim when given.

        Returns:
            True if updated, False if the task does not exist or the move would
            go backwards or leave a terminal status
        """
        status = TaskStatus(status)
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                return False

            if status not in _TRANSITIONS.get(task.status, set()):
                logger.warning(
                    f"Task {task_id}: ignoring transition {task.status.value} -> {status.value}"
                )
                return False

            now = self._clock()
            task.status = status
            if status == TaskStatus.RUNNING and task.started_at is None:
                task.started_at = now
            if status in TERMINAL_STATUSES:
                task.completed_at = now
            if result is not None:
                task.result = result
            if error is not None:
                task.error = error

        logger.debug(f"Task {task_id} status: {status.value}")
        return True

    def cancel(self, task_id: str) -> CancelOutcome:
        """Cancel a task. Only pending tasks can be cancelled."""
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                return CancelOutcome.NOT_FOUND
            if task.status != TaskStatus.PENDING:
                return CancelOutcome.REJECTED

            task.status = TaskStatus.CANCELLED
            task.completed_at = self._clock()

        logger.info(f"Task cancelled: {task_id}")
        return CancelOutcome.CANCELLED

    def delete(self, task_id: str) -> bool:
        with self._lock:
            return self._tasks.pop(task_id, None) is not None

    def next_pending(self) -> Optional[Task]:
        """
        Peek at the highest-priority, oldest pending task.

        Does not claim the task. Use claim_next_pending() when more than one
        consumer may be polling.
        """
        with self._lock:
            pending = self._list_locked(TaskStatus.PENDING, None)
            return pending[0] if pending else None

    def claim_next_pending(self) -> Optional[Task]:
        """
        Atomically take the next pending task and mark it RUNNING.

        Returns:
            Snapshot of the claimed task, or None if nothing is pending
        """
        with self._lock:
            pending = [t for t in self._tasks.values() if t.status == TaskStatus.PENDING]
            if not pending:
                return None

            task = min(pending, key=Task.sort_key)
            task.status = TaskStatus.RUNNING
            if task.started_at is None:
                task.started_at = self._clock()
            claimed = replace(task)

        logger.debug(f"Task {claimed.id} status: running")
        return claimed

    def cleanup(self, max_age: timedelta = CLEANUP_MAX_AGE) -> int:
        """
        Remove terminal tasks that completed more than max_age ago.

        Pending and running tasks are never removed, whatever their age.

        Returns:
            Number of tasks removed
        """
        with self._lock:
            now = self._clock()
            expired = [
                task_id
                for task_id, task in self._tasks.items()
                if task.status in TERMINAL_STATUSES
                and task.completed_at is not None
                and now - task.completed_at > max_age
            ]
            for task_id in expired:
                del self._tasks[task_id]

        if expired:
            logger.info(f"Cleaned up {len(expired)} old tasks")
        return len(expired)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            by_status = {status.value: 0 for status in TaskStatus}
            for task in self._tasks.values():
                by_status[task.status.value] += 1
            return {"total": len(self._tasks), "by_status": by_status}

    def start_cleanup(
        self,
        interval: timedelta = CLEANUP_INTERVAL,
        max_age: timedelta = CLEANUP_MAX_AGE,
    ) -> None:
        """Start the periodic cleanup loop on the running event loop (idempotent)."""
        if self._cleanup_task and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop(interval, max_age))

    async def stop_cleanup(self) -> None:
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None

    async def _cleanup_loop(self, interval: timedelta, max_age: timedelta) -> None:
        while True:
            await asyncio.sleep(interval.total_seconds())
            try:
                self.cleanup(max_age)
            except Exception as e:
                logger.error(f"Task cleanup failed: {e}")
