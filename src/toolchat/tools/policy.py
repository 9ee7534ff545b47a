"""Tool governance: kill switch and allowlist.

Policy rules (project defaults):
- If tools are disabled (`tools.enabled=false`), no tool execution is allowed.
- If the allowlist (`tools.whitelist`) is empty, tools are allowed by default (allow-all).
- If the allowlist is non-empty, only listed tool names are allowed.

Callers treat policy violations as a failed invocation, never as a crash.
"""

from __future__ import annotations

from toolchat.core.config import ToolsConfig
from toolchat.core.errors import ToolChatError


class PolicyError(ToolChatError):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ToolDisabledError(PolicyError):
    pass


class ToolNotAllowedError(PolicyError):
    pass


class ToolPolicy:
    """Evaluate whether a tool call is permitted."""

    def __init__(self, *, enabled: bool, whitelist: list[str] | None = None) -> None:
        self._enabled = bool(enabled)
        self._whitelist = [t for t in (whitelist or []) if isinstance(t, str) and t]

    @classmethod
    def from_config(cls, cfg: ToolsConfig) -> "ToolPolicy":
        return cls(enabled=cfg.enabled, whitelist=list(cfg.whitelist))

    def check(self, tool_name: str) -> None:
        """Raise a PolicyError if the tool call is not permitted."""

        if not self._enabled:
            raise ToolDisabledError("Tool execution is disabled by configuration")

        if self._whitelist and tool_name not in self._whitelist:
            raise ToolNotAllowedError(f"Tool '{tool_name}' is not in allowlist")
