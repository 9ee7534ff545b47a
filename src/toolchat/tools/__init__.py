"""Tool governance and tool-definition helpers."""

from __future__ import annotations

from .policy import PolicyError, ToolDisabledError, ToolNotAllowedError, ToolPolicy
from .tool_specs import tool_to_openai_spec

__all__ = [
    "PolicyError",
    "ToolDisabledError",
    "ToolNotAllowedError",
    "ToolPolicy",
    "tool_to_openai_spec",
]
