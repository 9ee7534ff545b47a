from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Mapping, Sequence

import pytest

from toolchat.core.config import GenerationConfig
from toolchat.core.errors import ConfigError
from toolchat.core.types import (
    ArgumentValue,
    CaptureSink,
    ContentItem,
    GenerationOptions,
    Message,
    OutputSink,
    Role,
    ToolInvocationResult,
    TurnOutcome,
    TurnState,
)
from toolchat.llm.client import FakeChatBackend
from toolchat.llm.tool_call_extractor import InvalidToolCall, NoToolCall
from toolchat.mcp_client.errors import McpTimeoutError
from toolchat.orchestrator.chat import ChatOrchestrator
from toolchat.orchestrator.scenarios import ScenarioConfig
from toolchat.tools.policy import ToolPolicy

SAVE_FILE_SPEC: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "SaveFile",
        "description": "Write text content to a file.",
        "parameters": {"type": "object", "properties": {}},
    },
}

CALL = '<tool_call>{"name":"SaveFile","parameters":{"filePath":"d:/t.txt","fileContent":"line1\\nline2"}}</tool_call>'

OK = ToolInvocationResult(
    is_error=False,
    content_items=(ContentItem(text="saved 11 chars"), ContentItem(text="second item")),
)


class RecordingTools:
    def __init__(
        self,
        result: ToolInvocationResult = OK,
        *,
        exc: Exception | None = None,
        block: bool = False,
    ) -> None:
        self._result = result
        self._exc = exc
        self._block = block
        self.calls: list[tuple[str, dict[str, ArgumentValue]]] = []

    async def invoke(self, name: str, arguments: Mapping[str, ArgumentValue]) -> ToolInvocationResult:
        self.calls.append((name, dict(arguments)))
        if self._block:
            await asyncio.sleep(3600)
        if self._exc is not None:
            raise self._exc
        return self._result


def _scenario(
    sink: OutputSink,
    *,
    user: str | None = "please save it",
    tool: dict[str, Any] | None = SAVE_FILE_SPEC,
    prompt: str = "You are a coding assistant.",
) -> ScenarioConfig:
    return ScenarioConfig(
        title="test",
        system_prompt=prompt,
        output_sink=sink,
        input_source=lambda: user,
        tool=tool,
    )


def _orch(
    backend: FakeChatBackend,
    tools: RecordingTools | None,
    *,
    policy: ToolPolicy | None = None,
) -> ChatOrchestrator:
    return ChatOrchestrator(
        generator=backend,
        tool_backend=tools,
        generation=GenerationConfig(max_output_tokens=128, length_hint=64),
        policy=policy or ToolPolicy(enabled=True, whitelist=[]),
    )


def _run(orch: ChatOrchestrator, scenario: ScenarioConfig | None, **kwargs: Any) -> TurnOutcome:
    return asyncio.run(orch.run_turn(scenario, **kwargs))


def test_no_tool_call_terminates_after_one_round() -> None:
    backend = FakeChatBackend([["Just ", "an answer."]])
    tools = RecordingTools()
    sink = CaptureSink()
    orch = _orch(backend, tools)

    out = _run(orch, _scenario(sink))

    assert out.states == (TurnState.AWAITING_FIRST_RESPONSE, TurnState.TERMINATED)
    assert out.responses == ("Just an answer.",)
    assert out.extraction == NoToolCall()
    assert out.error is None
    assert tools.calls == []
    assert len(backend.calls) == 1
    assert sink.text == "Just an answer.\n"

    assert orch.history.snapshot() == (
        Message(role=Role.SYSTEM, text="You are a coding assistant."),
        Message(role=Role.USER, text="please save it"),
    )


def test_generation_options_carry_config_and_tool() -> None:
    backend = FakeChatBackend([["ok"]])
    _run(_orch(backend, RecordingTools()), _scenario(CaptureSink()))

    _, options = backend.calls[0]
    assert options.max_output_tokens == 128
    assert options.length_hint == 64
    assert options.tools == (SAVE_FILE_SPEC,)


def test_tool_round_is_bounded_to_one() -> None:
    # The second round asks for another tool call; it must be ignored.
    backend = FakeChatBackend([["Here you go.\n", CALL], ["Saved! ", CALL]])
    tools = RecordingTools()
    sink = CaptureSink()
    orch = _orch(backend, tools)

    out = _run(orch, _scenario(sink))

    assert out.states == (
        TurnState.AWAITING_FIRST_RESPONSE,
        TurnState.AWAITING_TOOL_RESULT,
        TurnState.AWAITING_SECOND_RESPONSE,
        TurnState.TERMINATED,
    )
    assert out.final_state is TurnState.TERMINATED
    assert out.rounds == 2
    assert len(backend.calls) == 2
    assert tools.calls == [("SaveFile", {"filePath": "d:/t.txt", "fileContent": "line1\nline2"})]
    assert out.tool_call is not None and out.tool_call.name == "SaveFile"
    assert out.tool_result == OK
    assert out.error is None

    # Only the first content item reaches history, and round 2 sees it.
    expected = (
        Message(role=Role.SYSTEM, text="You are a coding assistant."),
        Message(role=Role.USER, text="please save it"),
        Message(role=Role.ASSISTANT, text="saved 11 chars"),
    )
    assert orch.history.snapshot() == expected
    assert backend.calls[1][0] == expected

    assert "\n[system] calling tool SaveFile..." in sink.text
    assert sink.text.endswith("Saved! " + CALL + "\n")


def test_tool_error_result_is_reported_and_not_appended() -> None:
    backend = FakeChatBackend([[CALL]])
    tools = RecordingTools(ToolInvocationResult(is_error=True, content_items=(ContentItem(text="disk full"),)))
    sink = CaptureSink()
    orch = _orch(backend, tools)

    out = _run(orch, _scenario(sink))

    assert out.states[-2:] == (TurnState.AWAITING_TOOL_RESULT, TurnState.TERMINATED)
    assert out.rounds == 1
    assert out.error is not None and out.error.kind == "invocation"
    assert "\n[error] tool call failed: disk full" in sink.text
    assert len(orch.history.snapshot()) == 2


def test_tool_backend_exception_is_an_invocation_failure() -> None:
    backend = FakeChatBackend([[CALL]])
    sink = CaptureSink()
    orch = _orch(backend, RecordingTools(exc=McpTimeoutError(timeout_s=1.0)))

    out = _run(orch, _scenario(sink))

    assert out.error is not None and out.error.kind == "invocation"
    assert "timed out" in out.error.message
    assert "[error] tool call failed:" in sink.text
    assert len(orch.history.snapshot()) == 2


def test_unexpected_exception_is_an_invocation_failure() -> None:
    orch = _orch(FakeChatBackend([[CALL]]), RecordingTools(exc=RuntimeError("pipe closed")))

    out = _run(orch, _scenario(CaptureSink()))

    assert out.error is not None
    assert out.error.message == "pipe closed"
    assert out.rounds == 1


def test_missing_tool_backend_is_an_invocation_failure() -> None:
    out = _run(_orch(FakeChatBackend([[CALL]]), None), _scenario(CaptureSink()))

    assert out.error is not None and out.error.kind == "invocation"


def test_empty_tool_result_terminates_quietly() -> None:
    backend = FakeChatBackend([[CALL]])
    sink = CaptureSink()
    orch = _orch(backend, RecordingTools(ToolInvocationResult(is_error=False)))

    out = _run(orch, _scenario(sink))

    assert out.error is None
    assert out.rounds == 1
    assert out.final_state is TurnState.TERMINATED
    assert len(backend.calls) == 1
    assert len(orch.history.snapshot()) == 2
    assert "[error]" not in sink.text


def test_policy_rejection_skips_the_backend() -> None:
    tools = RecordingTools()
    sink = CaptureSink()
    orch = _orch(FakeChatBackend([[CALL]]), tools, policy=ToolPolicy(enabled=True, whitelist=["Other"]))

    out = _run(orch, _scenario(sink))

    assert tools.calls == []
    assert out.error is not None and out.error.kind == "invocation"
    assert "not in allowlist" in sink.text


def test_malformed_tool_call_terminates_without_invocation() -> None:
    tools = RecordingTools()
    orch = _orch(FakeChatBackend([['<tool_call>{"name":"SaveFile"}}</tool_call>']]), tools)

    out = _run(orch, _scenario(CaptureSink()))

    assert isinstance(out.extraction, InvalidToolCall)
    assert out.error is None
    assert out.rounds == 1
    assert tools.calls == []


def test_toolless_scenario_never_extracts() -> None:
    tools = RecordingTools()
    backend = FakeChatBackend([[CALL]])

    out = _run(_orch(backend, tools), _scenario(CaptureSink(), tool=None))

    assert out.extraction is None
    assert tools.calls == []
    assert backend.calls[0][1].tools == ()


def test_user_text_is_stripped() -> None:
    orch = _orch(FakeChatBackend([["ok"]]), None)
    _run(orch, _scenario(CaptureSink(), user="  hello \n"))

    assert orch.history.snapshot()[1] == Message(role=Role.USER, text="hello")


def test_end_of_input_runs_no_generation() -> None:
    backend = FakeChatBackend([["ok"]])
    out = _run(_orch(backend, None), _scenario(CaptureSink(), user=None))

    assert out.states == (TurnState.TERMINATED,)
    assert out.rounds == 0
    assert backend.calls == []


@pytest.mark.parametrize("prompt", ["", "   "])
def test_blank_system_prompt_is_rejected_before_generation(prompt: str) -> None:
    backend = FakeChatBackend([["ok"]])
    with pytest.raises(ConfigError):
        _run(_orch(backend, None), _scenario(CaptureSink(), prompt=prompt))
    assert backend.calls == []


def test_missing_scenario_is_rejected() -> None:
    with pytest.raises(ConfigError):
        _run(_orch(FakeChatBackend([["ok"]]), None), None)


def test_history_is_reseeded_every_turn() -> None:
    orch = _orch(FakeChatBackend([[CALL], ["done"]]), RecordingTools())
    _run(orch, _scenario(CaptureSink()))
    assert len(orch.history.snapshot()) == 3

    _run(orch, _scenario(CaptureSink(), user="again", tool=None))
    assert orch.history.snapshot() == (
        Message(role=Role.SYSTEM, text="You are a coding assistant."),
        Message(role=Role.USER, text="again"),
    )


def test_cancel_during_tool_call() -> None:
    tools = RecordingTools(block=True)
    sink = CaptureSink()
    orch = _orch(FakeChatBackend([[CALL]]), tools)

    async def main() -> TurnOutcome:
        cancel = asyncio.Event()

        def watching_sink(text: str) -> None:
            sink(text)
            if text.startswith("\n[system] calling tool"):
                asyncio.get_running_loop().call_soon(cancel.set)

        return await orch.run_turn(_scenario(watching_sink), cancel=cancel)

    out = asyncio.run(main())

    assert out.states == (
        TurnState.AWAITING_FIRST_RESPONSE,
        TurnState.AWAITING_TOOL_RESULT,
        TurnState.TERMINATED,
    )
    assert out.error is not None and out.error.kind == "cancelled"
    assert len(tools.calls) == 1
    assert sink.text.endswith("\n[error] turn cancelled")
    assert len(orch.history.snapshot()) == 2


def test_cancel_before_first_round() -> None:
    backend = FakeChatBackend([["never"]])
    sink = CaptureSink()
    orch = _orch(backend, None)

    async def main() -> TurnOutcome:
        cancel = asyncio.Event()
        cancel.set()
        return await orch.run_turn(_scenario(sink), cancel=cancel)

    out = asyncio.run(main())

    assert out.states == (TurnState.AWAITING_FIRST_RESPONSE, TurnState.TERMINATED)
    assert out.rounds == 0
    assert out.error is not None and out.error.kind == "cancelled"
    assert sink.text == "\n[error] turn cancelled"


class FailingBackend(FakeChatBackend):
    """Streams the scripted round, then fails on the configured round number."""

    def __init__(self, rounds: list[list[str]], *, fail_on: int) -> None:
        super().__init__(rounds)
        self._fail_on = fail_on

    async def stream_response(self, history: Sequence[Message], options: GenerationOptions) -> AsyncIterator[str]:
        async for fragment in super().stream_response(history, options):
            yield fragment
        if len(self.calls) == self._fail_on:
            raise ConnectionError("model server went away")


def test_generation_failure_in_first_round_terminates_the_turn() -> None:
    tools = RecordingTools()
    sink = CaptureSink()
    orch = _orch(FailingBackend([["partial "]], fail_on=1), tools)

    out = _run(orch, _scenario(sink))

    assert out.states == (TurnState.AWAITING_FIRST_RESPONSE, TurnState.TERMINATED)
    assert out.rounds == 0
    assert out.error is not None and out.error.kind == "generation"
    assert sink.text == "partial \n[error] generation failed: model server went away"
    assert tools.calls == []


def test_generation_failure_in_second_round_keeps_tool_result() -> None:
    tools = RecordingTools()
    sink = CaptureSink()
    orch = _orch(FailingBackend([[CALL], ["never finished"]], fail_on=2), tools)

    out = _run(orch, _scenario(sink))

    assert out.states[-2:] == (TurnState.AWAITING_SECOND_RESPONSE, TurnState.TERMINATED)
    assert out.rounds == 1
    assert out.error is not None and out.error.kind == "generation"
    assert len(tools.calls) == 1
    assert len(orch.history.snapshot()) == 3
    assert sink.text.endswith("\n[error] generation failed: model server went away")
