"""
Helpers for building MCP tool results.

Every tool handler returns a single text content block; structured results
are serialized as indented JSON inside that block.
"""

import json
from typing import Any, Dict, List, TypedDict


class TextContentBlock(TypedDict):
    type: str
    text: str


class ToolResponse(TypedDict, total=False):
    content: List[TextContentBlock]
    isError: bool


def success_response(text: str) -> ToolResponse:
    return {"content": [{"type": "text", "text": text}]}


def error_response(message: str) -> ToolResponse:
    return {"content": [{"type": "text", "text": f"Error: {message}"}], "isError": True}


def json_response(data: Any) -> ToolResponse:
    return success_response(json.dumps(data, indent=2, default=str))


def response_text(response: ToolResponse) -> str:
    return "\n".join(block["text"] for block in response["content"])


def is_error(response: Dict[str, Any]) -> bool:
    return bool(response.get("isError"))
