from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .errors import ConfigError

# re-export for contract/tests
__all__ = [
    "AppConfig",
    "ConfigError",
    "GenerationConfig",
    "LlmConfig",
    "McpConfig",
    "ToolsConfig",
    "load_config",
]


_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

API_KEY_ENV = "TOOLCHAT_API_KEY"


def _expand_env_in_str(value: str, *, path: str) -> str:
    def repl(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in os.environ or os.environ[key] == "":
            raise ConfigError(f"environment variable {key!r} is not set", path=path)
        return os.environ[key]

    return _ENV_PATTERN.sub(repl, value)


def _expand_env(obj: Any, *, path: str) -> Any:
    if isinstance(obj, str):
        return _expand_env_in_str(obj, path=path)
    if isinstance(obj, list):
        return [_expand_env(v, path=path) for v in obj]
    if isinstance(obj, dict):
        return {k: _expand_env(v, path=f"{path}.{k}" if path else str(k)) for k, v in obj.items()}
    return obj


def _section(expanded: dict[str, Any], name: str) -> dict[str, Any]:
    raw = expanded.get(name, {})
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("must be a mapping", path=name)
    return raw


@dataclass(frozen=True)
class LlmConfig:
    api_key: str
    base_url: str = "http://127.0.0.1:11434/v1"
    model: str = "phi4-mini"
    timeout_s: float = 120.0
    max_retries: int = 2


@dataclass(frozen=True)
class GenerationConfig:
    max_output_tokens: int = 4096
    length_hint: int = 2048


@dataclass(frozen=True)
class McpConfig:
    """Client-side MCP configuration (one tool server per process)."""

    enabled: bool = False
    # Passed to the transport as-is: {transport: stdio, command, args, env, cwd}
    # or {transport: streamable_http|http, url}.
    server: dict[str, Any] = field(default_factory=dict)
    timeout_s: float = 30.0
    init_timeout_s: float = 10.0


@dataclass(frozen=True)
class ToolsConfig:
    enabled: bool = True
    whitelist: list[str] = field(default_factory=list)
    file_tool: str = "SaveFile"
    file_path: str = "d:/test.txt"


@dataclass(frozen=True)
class AppConfig:
    llm: LlmConfig
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    mcp: McpConfig = field(default_factory=McpConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)


def _validate_server(server: dict[str, Any]) -> None:
    t = str(server.get("transport", ""))
    if t not in {"stdio", "streamable_http", "http"}:
        raise ConfigError(f"unsupported transport: {t!r}", path="mcp.server.transport")
    if t == "stdio":
        cmd = server.get("command")
        if not isinstance(cmd, str) or not cmd.strip():
            raise ConfigError("stdio requires a command", path="mcp.server.command")
        args = server.get("args", [])
        if not isinstance(args, list) or not all(isinstance(x, str) for x in args):
            raise ConfigError("must be a list of strings", path="mcp.server.args")
        env = server.get("env")
        if env is not None and not isinstance(env, dict):
            raise ConfigError("must be a mapping", path="mcp.server.env")
    else:
        u = server.get("url")
        if not isinstance(u, str) or not u.strip():
            raise ConfigError("http requires a url", path="mcp.server.url")


def load_config(path: str | Path) -> AppConfig:
    """Load YAML config and expand ${ENV_VAR}."""

    # Local dev: allow injecting secrets from .env (do not commit it).
    load_dotenv(override=False)

    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError("config file does not exist", path=str(config_path))

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except Exception as e:  # noqa: BLE001
        raise ConfigError(f"YAML parse failed: {e}", path=str(config_path)) from e

    if not isinstance(raw, dict):
        raise ConfigError("top level must be a YAML mapping", path=str(config_path))

    expanded = _expand_env(raw, path="")

    llm_raw = _section(expanded, "llm")

    # api_key can default from env.
    api_key = llm_raw.get("api_key")
    if api_key is None or api_key == "":
        api_key = os.getenv(API_KEY_ENV)
    if not isinstance(api_key, str) or not api_key.strip():
        raise ConfigError(f"must be a non-empty string (or set {API_KEY_ENV})", path="llm.api_key")

    llm = LlmConfig(
        api_key=api_key,
        base_url=str(llm_raw.get("base_url", LlmConfig.base_url)),
        model=str(llm_raw.get("model", LlmConfig.model)),
        timeout_s=float(llm_raw.get("timeout_s", LlmConfig.timeout_s)),
        max_retries=int(llm_raw.get("max_retries", LlmConfig.max_retries)),
    )

    gen_raw = _section(expanded, "generation")
    generation = GenerationConfig(
        max_output_tokens=int(gen_raw.get("max_output_tokens", GenerationConfig.max_output_tokens)),
        length_hint=int(gen_raw.get("length_hint", GenerationConfig.length_hint)),
    )
    if generation.max_output_tokens < 1:
        raise ConfigError("must be an integer >= 1", path="generation.max_output_tokens")
    if generation.length_hint < 1:
        raise ConfigError("must be an integer >= 1", path="generation.length_hint")

    mcp_raw = _section(expanded, "mcp")
    enabled = bool(mcp_raw.get("enabled", McpConfig.enabled))
    server_raw = mcp_raw.get("server", {})
    if server_raw is None:
        server_raw = {}
    if not isinstance(server_raw, dict):
        raise ConfigError("must be a mapping", path="mcp.server")
    if enabled:
        if not server_raw:
            raise ConfigError("mcp.server is required when MCP is enabled", path="mcp.server")
        _validate_server(server_raw)

    mcp = McpConfig(
        enabled=enabled,
        server=dict(server_raw),
        timeout_s=float(mcp_raw.get("timeout_s", McpConfig.timeout_s)),
        init_timeout_s=float(mcp_raw.get("init_timeout_s", McpConfig.init_timeout_s)),
    )
    if mcp.timeout_s <= 0:
        raise ConfigError("must be > 0", path="mcp.timeout_s")

    tools_raw = _section(expanded, "tools")
    whitelist = tools_raw.get("whitelist", [])
    if whitelist is None:
        whitelist = []
    if not isinstance(whitelist, list) or not all(isinstance(x, str) for x in whitelist):
        raise ConfigError("must be a list of strings", path="tools.whitelist")

    tools = ToolsConfig(
        enabled=bool(tools_raw.get("enabled", ToolsConfig.enabled)),
        whitelist=list(whitelist),
        file_tool=str(tools_raw.get("file_tool", ToolsConfig.file_tool)),
        file_path=str(tools_raw.get("file_path", ToolsConfig.file_path)),
    )

    return AppConfig(llm=llm, generation=generation, mcp=mcp, tools=tools)
