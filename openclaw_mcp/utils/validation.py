"""
Input validation for MCP tool arguments.

String fields are trimmed, must be non-empty, are length-capped and must not
contain control characters.
"""

import re
from typing import Any, Optional

from openclaw_mcp.tasks.models import TaskStatus

# C0 and C1 control characters, excluding tab, newline and carriage return
CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F-\x9F]")

MAX_MESSAGE_LENGTH = 100_000
MAX_ID_LENGTH = 256


class ValidationError(ValueError):
    """Raised when a tool argument is invalid. The message is safe to show to callers."""

    pass


def validate_string(value: Any, field_name: str, max_length: int) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")

    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(f"{field_name} must not be empty")
    if len(trimmed) > max_length:
        raise ValidationError(f"{field_name} exceeds maximum length of {max_length} characters")
    if CONTROL_CHAR_RE.search(trimmed):
        raise ValidationError(f"{field_name} contains invalid control characters")
    return trimmed


def validate_message(value: Any) -> str:
    return validate_string(value, "message", MAX_MESSAGE_LENGTH)


def validate_id(value: Any, field_name: str) -> str:
    return validate_string(value, field_name, MAX_ID_LENGTH)


def validate_optional_id(value: Any, field_name: str) -> Optional[str]:
    if value is None:
        return None
    return validate_id(value, field_name)


def validate_priority(value: Any) -> int:
    if value is None:
        return 0
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("priority must be an integer")
    return value


def validate_status(value: Any) -> Optional[TaskStatus]:
    if value is None:
        return None
    try:
        return TaskStatus(value)
    except ValueError:
        choices = ", ".join(s.value for s in TaskStatus)
        raise ValidationError(f"status must be one of: {choices}") from None
