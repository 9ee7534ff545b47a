"""MCP (Model Context Protocol) client-side integration.

This package intentionally avoids the top-level name `mcp` to prevent shadowing
the upstream MCP Python SDK module (`import mcp`).
"""

from __future__ import annotations

from .client import McpToolBackend, ToolBackend, result_from_call
from .errors import McpClientError, McpNotConnectedError, McpTimeoutError
from .types import HttpMcpServerConfig, McpServerConfig, StdioMcpServerConfig, server_config_from_mapping

__all__ = [
    "HttpMcpServerConfig",
    "McpClientError",
    "McpNotConnectedError",
    "McpServerConfig",
    "McpTimeoutError",
    "McpToolBackend",
    "StdioMcpServerConfig",
    "ToolBackend",
    "result_from_call",
    "server_config_from_mapping",
]
