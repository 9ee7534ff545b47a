from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from typing import Any, Mapping, Protocol

from mcp import ClientSession, StdioServerParameters
from mcp import types as mcp_types
from mcp.client.stdio import stdio_client

from toolchat.core import __version__
from toolchat.core.types import ArgumentValue, ContentItem, ToolInvocationResult
from toolchat.observability.logging import get_logger

from .errors import McpClientError, McpNotConnectedError, McpTimeoutError
from .types import HttpMcpServerConfig, McpServerConfig, StdioMcpServerConfig


class ToolBackend(Protocol):
    """Smallest useful tool backend surface: invoke one tool, get its result.

    Implementations may raise McpClientError on failures.
    """

    async def invoke(self, name: str, arguments: Mapping[str, ArgumentValue]) -> ToolInvocationResult:
        ...


def result_from_call(payload: Any) -> ToolInvocationResult:
    """Map an MCP CallToolResult into ToolInvocationResult.

    Text blocks keep their text; other block kinds (image, resource, ...) are
    kept inspectable as their JSON dump.
    """

    items: list[ContentItem] = []
    for block in getattr(payload, "content", None) or []:
        text = getattr(block, "text", None)
        if isinstance(text, str):
            items.append(ContentItem(text=text))
            continue
        dump = getattr(block, "model_dump_json", None)
        items.append(ContentItem(text=dump(exclude_none=True) if callable(dump) else repr(block)))

    return ToolInvocationResult(is_error=bool(getattr(payload, "isError", False)), content_items=tuple(items))


class McpToolBackend:
    """MCP tool backend over one long-lived client session.

    The session is opened once per process (`async with McpToolBackend(cfg)`) and
    released on every exit path. Calls are bounded by `cfg.timeout_s`.
    """

    def __init__(self, cfg: McpServerConfig, *, client_name: str = "toolchat") -> None:
        self._cfg = cfg
        self._client_info = mcp_types.Implementation(name=client_name, version=__version__)
        self._stack: AsyncExitStack | None = None
        self._session: Any = None
        self._log = get_logger("toolchat.mcp")

    async def __aenter__(self) -> "McpToolBackend":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def started(self) -> bool:
        return self._session is not None

    async def start(self) -> None:
        if self._session is not None:
            return

        stack = AsyncExitStack()
        try:
            session = await self._open_session(stack)
            try:
                await asyncio.wait_for(session.initialize(), timeout=self._cfg.init_timeout_s)
            except TimeoutError as e:
                raise McpTimeoutError(timeout_s=float(self._cfg.init_timeout_s), operation="initialize") from e
        except BaseException:
            await stack.aclose()
            raise

        self._stack = stack
        self._session = session
        self._log.info("mcp_session_started", transport=type(self._cfg).__name__)

    async def close(self) -> None:
        stack, self._stack, self._session = self._stack, None, None
        if stack is not None:
            await stack.aclose()
            self._log.info("mcp_session_closed")

    async def _open_session(self, stack: AsyncExitStack) -> Any:
        if isinstance(self._cfg, StdioMcpServerConfig):
            params = StdioServerParameters(
                command=self._cfg.command,
                args=list(self._cfg.args),
                env=dict(self._cfg.env) if self._cfg.env is not None else None,
                cwd=self._cfg.cwd,
            )
            read, write = await stack.enter_async_context(stdio_client(params))
        elif isinstance(self._cfg, HttpMcpServerConfig):
            from mcp.client.streamable_http import streamable_http_client

            read, write, _get_session_id = await stack.enter_async_context(streamable_http_client(self._cfg.url))
        else:
            raise McpClientError("bad_config", f"unsupported server config: {type(self._cfg).__name__}")

        return await stack.enter_async_context(ClientSession(read, write, client_info=self._client_info))

    def _require_session(self) -> Any:
        if self._session is None:
            raise McpNotConnectedError()
        return self._session

    async def list_tools(self) -> list[mcp_types.Tool]:
        session = self._require_session()
        try:
            result = await asyncio.wait_for(session.list_tools(), timeout=self._cfg.timeout_s)
        except TimeoutError as e:
            raise McpTimeoutError(timeout_s=float(self._cfg.timeout_s), operation="list_tools") from e
        except McpClientError:
            raise
        except Exception as e:  # noqa: BLE001
            raise McpClientError("mcp_error", str(e), details={"exc": type(e).__name__}) from e

        tools = list(result.tools)
        self._log.info("mcp_tools_listed", tools=[t.name for t in tools])
        return tools

    async def invoke(self, name: str, arguments: Mapping[str, ArgumentValue]) -> ToolInvocationResult:
        if not isinstance(name, str) or not name:
            raise ValueError("tool name must be a non-empty string")

        session = self._require_session()
        try:
            payload = await asyncio.wait_for(
                session.call_tool(name, arguments=dict(arguments)),
                timeout=self._cfg.timeout_s,
            )
        except TimeoutError as e:
            raise McpTimeoutError(timeout_s=float(self._cfg.timeout_s)) from e
        except McpClientError:
            raise
        except Exception as e:  # noqa: BLE001
            raise McpClientError("mcp_error", str(e), details={"exc": type(e).__name__}) from e

        result = result_from_call(payload)
        self._log.info(
            "mcp_tool_called",
            tool=name,
            is_error=result.is_error,
            content_items=len(result.content_items),
        )
        return result
