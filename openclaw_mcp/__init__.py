"""
OpenClaw MCP bridge.

Exposes an OpenClaw gateway to MCP clients over stdio, streamable HTTP or SSE,
with an optional built-in OAuth 2.1 authorization server and an in-memory
async task queue.
"""

__version__ = "1.0.0"
