from __future__ import annotations


class McpClientError(RuntimeError):
    """Base exception for MCP client failures.

    Transport and protocol failures are normalized into a small set of stable
    error types; the turn controller reports all of them as a failed invocation.
    """

    def __init__(self, error_type: str, message: str, *, details: dict[str, str] | None = None):
        super().__init__(message)
        self.error_type = error_type
        self.message = message
        self.details = details or {}


class McpNotConnectedError(McpClientError):
    def __init__(self) -> None:
        super().__init__("not_connected", "MCP session is not started")


class McpTimeoutError(McpClientError):
    def __init__(self, *, timeout_s: float, operation: str = "call"):
        super().__init__(
            "timeout",
            f"MCP {operation} timed out after {timeout_s}s",
            details={"timeout_s": str(timeout_s), "operation": operation},
        )
