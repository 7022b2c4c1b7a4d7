"""
Data models for async tasks.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED})


class TaskKind(str, Enum):
    CHAT = "chat"
    CUSTOM = "custom"


@dataclass
class Task:
    """A unit of background work owned by the TaskStore."""

    id: str
    kind: str
    input: Any
    created_at: datetime
    status: TaskStatus = TaskStatus.PENDING
    priority: int = 0
    session_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Optional[str] = None
    error: Optional[str] = None
    # Insertion sequence, the tie-break for equal (priority, created_at)
    seq: int = field(default=0, repr=False)

    def sort_key(self):
        return (-self.priority, self.created_at, self.seq)

    def to_summary(self) -> Dict[str, Any]:
        """Compact listing shape used by openclaw_task_list."""
        return {
            "task_id": self.id,
            "type": self.kind,
            "status": self.status.value,
            "priority": self.priority,
            "created_at": self.created_at.isoformat(),
            "has_result": self.status == TaskStatus.COMPLETED and bool(self.result),
        }

    def to_detail(self) -> Dict[str, Any]:
        """Full status shape used by openclaw_task_status."""
        detail: Dict[str, Any] = {
            "task_id": self.id,
            "type": self.kind,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }
        if self.session_id:
            detail["session_id"] = self.session_id
        if self.started_at:
            detail["started_at"] = self.started_at.isoformat()
        if self.completed_at:
            detail["completed_at"] = self.completed_at.isoformat()
        if self.status == TaskStatus.COMPLETED and self.result:
            detail["result"] = self.result
        if self.status == TaskStatus.FAILED and self.error:
            detail["error"] = self.error
        return detail
