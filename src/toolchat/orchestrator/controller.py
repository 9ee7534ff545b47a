from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, cast

from langgraph.graph import END, START, StateGraph

from toolchat.core.cancellation import await_or_cancel
from toolchat.core.errors import TurnCancelledError
from toolchat.core.types import (
    GenerationOptions,
    OutputSink,
    ToolCallRequest,
    ToolInvocationResult,
    TurnError,
    TurnOutcome,
    TurnState,
)
from toolchat.llm.tool_call_extractor import ExtractionResult, ToolCallExtractor
from toolchat.mcp_client.client import ToolBackend
from toolchat.mcp_client.errors import McpClientError
from toolchat.observability import add_error, get_logger, set_state
from toolchat.tools.policy import PolicyError, ToolPolicy

from .collector import StreamingResponseCollector
from .graph_state import TurnGraphState
from .history import ConversationHistory


@dataclass(slots=True)
class _TurnRecord:
    states: list[TurnState] = field(default_factory=list)
    responses: list[str] = field(default_factory=list)
    extraction: ExtractionResult | None = None


class ToolInvocationController:
    """Bounded turn state machine.

    AwaitingFirstResponse → [AwaitingToolResult → [AwaitingSecondResponse]] → Terminated

    At most one tool invocation and two generation rounds happen per turn. The
    second round is never scanned for tool calls.
    """

    def __init__(
        self,
        *,
        collector: StreamingResponseCollector,
        tool_backend: ToolBackend | None,
        policy: ToolPolicy,
        extractor: ToolCallExtractor | None = None,
    ) -> None:
        self._collector = collector
        self._tools = tool_backend
        self._policy = policy
        self._extractor = extractor or ToolCallExtractor()
        self._log = get_logger("toolchat.controller")

    async def run(
        self,
        *,
        history: ConversationHistory,
        options: GenerationOptions,
        sink: OutputSink,
        cancel: asyncio.Event | None = None,
    ) -> TurnOutcome:
        record = _TurnRecord()
        graph = self._build_graph(history=history, options=options, sink=sink, cancel=cancel, record=record)

        out = cast(TurnGraphState, await graph.ainvoke({"result_appended": False}))

        record.states.append(TurnState.TERMINATED)
        set_state(TurnState.TERMINATED)

        return TurnOutcome(
            states=tuple(record.states),
            responses=tuple(record.responses),
            extraction=record.extraction,
            tool_call=out.get("tool_call"),
            tool_result=out.get("tool_result"),
            error=out.get("error"),
        )

    def _cancelled(self, e: TurnCancelledError, sink: OutputSink) -> dict[str, Any]:
        self._log.warning("turn_cancelled", where=e.where)
        add_error("cancelled")
        sink("\n[error] turn cancelled")
        return {"error": TurnError(kind="cancelled", message=str(e))}

    def _generation_failed(self, e: Exception, sink: OutputSink) -> dict[str, Any]:
        message = str(e) or type(e).__name__
        self._log.warning("generation_failed", error_type=type(e).__name__, error=message)
        add_error("generation_failed")
        sink(f"\n[error] generation failed: {message}")
        return {"error": TurnError(kind="generation", message=message)}

    def _invocation_failed(
        self, call: ToolCallRequest, message: str, sink: OutputSink, *, error_type: str
    ) -> dict[str, Any]:
        self._log.warning("tool_invoke_failed", tool=call.name, error_type=error_type, error=message)
        add_error(f"tool_invoke_failed:{error_type}")
        sink(f"\n[error] tool call failed: {message}")
        return {"error": TurnError(kind="invocation", message=message)}

    async def _invoke(self, call: ToolCallRequest, cancel: asyncio.Event | None) -> ToolInvocationResult:
        if self._tools is None:
            raise McpClientError("not_configured", "no tool backend is configured")
        return await await_or_cancel(self._tools.invoke(call.name, call.arguments), cancel, where="tool_call")

    def _build_graph(
        self,
        *,
        history: ConversationHistory,
        options: GenerationOptions,
        sink: OutputSink,
        cancel: asyncio.Event | None,
        record: _TurnRecord,
    ):
        def enter(state: TurnState) -> None:
            record.states.append(state)
            set_state(state)

        async def first_response_node(state: TurnGraphState) -> dict[str, Any]:
            enter(TurnState.AWAITING_FIRST_RESPONSE)
            try:
                text = await self._collector.collect(history.snapshot(), options, sink, cancel=cancel)
            except TurnCancelledError as e:
                return self._cancelled(e, sink)
            except Exception as e:  # noqa: BLE001
                return self._generation_failed(e, sink)
            record.responses.append(text)

            # Tool-less scenarios never look for tool calls.
            if not options.tools:
                return {"first_response": text}

            extraction = self._extractor.extract(text)
            record.extraction = extraction
            if isinstance(extraction, ToolCallRequest):
                return {"first_response": text, "tool_call": extraction}
            return {"first_response": text}

        def after_first(state: TurnGraphState) -> str:
            if state.get("error") is None and state.get("tool_call") is not None:
                return "invoke_tool"
            return END

        async def invoke_tool_node(state: TurnGraphState) -> dict[str, Any]:
            enter(TurnState.AWAITING_TOOL_RESULT)
            call = state["tool_call"]

            try:
                self._policy.check(call.name)
            except PolicyError as e:
                return self._invocation_failed(call, e.message, sink, error_type=type(e).__name__)

            sink(f"\n[system] calling tool {call.name}...")
            try:
                result = await self._invoke(call, cancel)
            except TurnCancelledError as e:
                return self._cancelled(e, sink)
            except McpClientError as e:
                return self._invocation_failed(call, e.message, sink, error_type=e.error_type)
            except Exception as e:  # noqa: BLE001
                return self._invocation_failed(call, str(e) or type(e).__name__, sink, error_type=type(e).__name__)

            if result.is_error:
                out = self._invocation_failed(
                    call, result.text or "tool reported an error", sink, error_type="tool_error"
                )
                out["tool_result"] = result
                return out

            if not result.content_items:
                self._log.info("tool_result_empty", tool=call.name)
                return {"tool_result": result}

            # Only the first content item reaches the conversation.
            history.append_assistant(result.content_items[0].text)
            self._log.info("tool_result_appended", tool=call.name, content_items=len(result.content_items))
            return {"tool_result": result, "result_appended": True}

        def after_tool(state: TurnGraphState) -> str:
            if state.get("error") is None and state.get("result_appended"):
                return "second_response"
            return END

        async def second_response_node(state: TurnGraphState) -> dict[str, Any]:
            enter(TurnState.AWAITING_SECOND_RESPONSE)
            try:
                text = await self._collector.collect(history.snapshot(), options, sink, cancel=cancel)
            except TurnCancelledError as e:
                return self._cancelled(e, sink)
            except Exception as e:  # noqa: BLE001
                return self._generation_failed(e, sink)
            record.responses.append(text)
            return {"second_response": text}

        builder = StateGraph(TurnGraphState)
        builder.add_node("first_response", first_response_node)
        builder.add_node("invoke_tool", invoke_tool_node)
        builder.add_node("second_response", second_response_node)

        builder.add_edge(START, "first_response")
        builder.add_conditional_edges("first_response", after_first, ["invoke_tool", END])
        builder.add_conditional_edges("invoke_tool", after_tool, ["second_response", END])
        builder.add_edge("second_response", END)

        return builder.compile()
