"""toolchat: single-turn chat orchestration with text-embedded MCP tool calls."""

from __future__ import annotations

from toolchat.core import __version__

__all__ = ["__version__"]
