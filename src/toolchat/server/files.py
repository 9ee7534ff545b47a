from __future__ import annotations

from pathlib import Path

from mcp.server.fastmcp import FastMCP

from toolchat.observability.logging import get_logger

mcp = FastMCP("toolchat-files")

_log = get_logger("toolchat.server")


@mcp.tool(name="SaveFile", description="Write text content to a file at the given local path.")
def save_file(filePath: str, fileContent: str) -> str:  # noqa: N803
    """Write `fileContent` to `filePath` (UTF-8), replacing any existing file.

    Args:
        filePath: Target file path, e.g. d:/test.txt.
        fileContent: Text to save.
    """

    path = Path(filePath)
    path.write_text(fileContent, encoding="utf-8")
    _log.info("file_saved", path=str(path), chars=len(fileContent))
    return f"Saved {len(fileContent)} characters to {path}"
