from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Union


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True, slots=True)
class Message:
    role: Role
    text: str


class RawText(str):
    """Fallback argument value: the JSON rendering of a null/array/object.

    It is a real `str` (so it serializes unchanged towards the tool backend),
    but stays distinguishable from a JSON string argument via isinstance().
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return f"RawText({str.__repr__(self)})"


ArgumentValue = Union[str, float, bool, RawText]


@dataclass(frozen=True, slots=True)
class ToolCallRequest:
    """A tool call decoded from model output."""

    name: str
    arguments: dict[str, ArgumentValue]


@dataclass(frozen=True, slots=True)
class ContentItem:
    text: str


@dataclass(frozen=True, slots=True)
class ToolInvocationResult:
    is_error: bool
    content_items: tuple[ContentItem, ...] = ()

    @property
    def text(self) -> str:
        return "\n".join(item.text for item in self.content_items)


class TurnState(str, Enum):
    AWAITING_FIRST_RESPONSE = "AwaitingFirstResponse"
    AWAITING_TOOL_RESULT = "AwaitingToolResult"
    AWAITING_SECOND_RESPONSE = "AwaitingSecondResponse"
    TERMINATED = "Terminated"


@dataclass(frozen=True, slots=True)
class GenerationOptions:
    """Fixed per-turn option set handed to the generation backend.

    `tools` holds OpenAI-format function tool definitions (zero or one).
    """

    max_output_tokens: int
    length_hint: int
    tools: tuple[dict[str, Any], ...] = ()


@dataclass(frozen=True, slots=True)
class TurnError:
    kind: str  # "invocation" | "generation" | "cancelled"
    message: str


@dataclass(frozen=True, slots=True)
class TurnOutcome:
    states: tuple[TurnState, ...]
    responses: tuple[str, ...] = ()
    extraction: Any = None
    tool_call: ToolCallRequest | None = None
    tool_result: ToolInvocationResult | None = None
    error: TurnError | None = None

    @property
    def final_state(self) -> TurnState:
        return self.states[-1] if self.states else TurnState.TERMINATED

    @property
    def rounds(self) -> int:
        return len(self.responses)


OutputSink = Callable[[str], None]
InputSource = Callable[[], "str | None"]


@dataclass(slots=True)
class CaptureSink:
    """Output sink that records every call; handy for tests and scripting."""

    chunks: list[str] = field(default_factory=list)

    def __call__(self, text: str) -> None:
        self.chunks.append(text)

    @property
    def text(self) -> str:
        return "".join(self.chunks)
