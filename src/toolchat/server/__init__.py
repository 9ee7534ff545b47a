"""Reference MCP tool server exposing `SaveFile` over stdio."""

from __future__ import annotations

from .files import mcp, save_file

__all__ = ["mcp", "save_file"]
