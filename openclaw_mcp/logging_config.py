"""
Logging setup for the OpenClaw MCP bridge.

All output goes to stderr: with the stdio transport, stdout carries the MCP
protocol stream and must never receive log lines.
"""

import re
import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)

REDACTED = "[REDACTED]"

_SECRET_PATTERNS = [
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._~+/=-]+"),
    re.compile(
        r"(?i)\b(client_secret|access_token|refresh_token|code_verifier|code|token)"
        r"(=|\":\s*\"|:\s*)([^&\s\",]+)"
    ),
]


def redact(message: str) -> str:
    """Mask bearer tokens and credential-looking key/value pairs in a log message."""
    message = _SECRET_PATTERNS[0].sub(lambda m: f"{m.group(1)}{REDACTED}", message)
    return _SECRET_PATTERNS[1].sub(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", message)


class RedactionFilter:
    """Filter that scrubs credentials from records before they are written."""

    def __call__(self, record):
        record["message"] = redact(record["message"])
        return True


def configure_logging(level: str = "INFO") -> None:
    """
    Replace loguru's default handler with a redacting stderr handler.

    Args:
        level: Minimum log level (e.g. "DEBUG", "INFO")
    """
    logger.remove()
    logger.add(
        sys.stderr,
        format=LOG_FORMAT,
        level=level.upper(),
        colorize=True,
        filter=RedactionFilter(),
    )
