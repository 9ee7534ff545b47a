from __future__ import annotations

from typing_extensions import TypedDict

from toolchat.core.types import ToolCallRequest, ToolInvocationResult, TurnError


class TurnGraphState(TypedDict, total=False):
    # Round 1
    first_response: str
    tool_call: ToolCallRequest

    # Tool round
    tool_result: ToolInvocationResult
    result_appended: bool

    # Round 2
    second_response: str

    # Terminal
    error: TurnError
