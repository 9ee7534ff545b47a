from __future__ import annotations

from typing import Any


def tool_to_openai_spec(tool: Any) -> dict[str, Any]:
    """Convert an MCP tool definition into an OpenAI-compatible tool spec.

    MCP tools already carry a JSON schema (`inputSchema`); it is used as-is when
    it describes an object.
    """

    desc = getattr(tool, "description", None)

    parameters: dict[str, Any] = {"type": "object", "properties": {}, "additionalProperties": False}
    schema = getattr(tool, "inputSchema", None)
    if isinstance(schema, dict) and schema.get("type") == "object":
        parameters = dict(schema)

    return {
        "type": "function",
        "function": {
            "name": str(getattr(tool, "name", "tool")),
            "description": str(desc) if desc is not None else "",
            "parameters": parameters,
        },
    }
