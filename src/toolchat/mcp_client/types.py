from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Union


@dataclass(frozen=True, slots=True)
class StdioMcpServerConfig:
    """Configuration for launching an MCP server over stdio."""

    command: str
    args: list[str]
    env: dict[str, str] | None = None
    cwd: str | None = None
    timeout_s: float = 30.0
    init_timeout_s: float = 10.0


@dataclass(frozen=True, slots=True)
class HttpMcpServerConfig:
    """Configuration for connecting to an MCP server over Streamable HTTP."""

    url: str
    timeout_s: float = 30.0
    init_timeout_s: float = 10.0


McpServerConfig = Union[StdioMcpServerConfig, HttpMcpServerConfig]


def server_config_from_mapping(
    server: Mapping[str, Any], *, timeout_s: float, init_timeout_s: float
) -> McpServerConfig:
    """Build a typed server config from the (already validated) `mcp.server` mapping."""

    transport = str(server.get("transport", ""))
    if transport == "stdio":
        env = server.get("env")
        cwd = server.get("cwd")
        return StdioMcpServerConfig(
            command=str(server["command"]),
            args=[str(a) for a in server.get("args", [])],
            env={str(k): str(v) for k, v in env.items()} if isinstance(env, Mapping) else None,
            cwd=str(cwd) if cwd is not None else None,
            timeout_s=timeout_s,
            init_timeout_s=init_timeout_s,
        )
    if transport in {"streamable_http", "http"}:
        return HttpMcpServerConfig(url=str(server["url"]), timeout_s=timeout_s, init_timeout_s=init_timeout_s)
    raise ValueError(f"unsupported MCP transport: {transport!r}")
