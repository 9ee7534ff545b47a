from __future__ import annotations

import json
import logging

from toolchat.core.types import TurnState
from toolchat.observability import add_error, bind_context, set_state
from toolchat.observability.logging import KVLogger, _JsonFormatter


class _ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


def test_kv_logger_fields_and_turn_context() -> None:
    base = logging.getLogger("toolchat.test.kv")
    base.propagate = False
    base.setLevel(logging.DEBUG)
    handler = _ListHandler()
    base.addHandler(handler)
    try:
        trace = bind_context(session_id="s1", turn_id=3)
        set_state(TurnState.AWAITING_TOOL_RESULT)
        add_error("tool_invoke_failed:timeout")

        KVLogger(base).warning("tool_invoke_failed", tool="SaveFile", error_type="timeout")

        payload = json.loads(_JsonFormatter().format(handler.records[0]))
    finally:
        base.removeHandler(handler)

    assert payload["message"] == "tool_invoke_failed"
    assert payload["level"] == "WARNING"
    assert payload["logger"] == "toolchat.test.kv"
    assert payload["tool"] == "SaveFile"
    assert payload["error_type"] == "timeout"
    assert payload["trace_id"] == trace
    assert len(trace) == 32
    assert payload["session_id"] == "s1"
    assert payload["turn_id"] == 3
    assert payload["state"] == "AwaitingToolResult"
    assert payload["errors"] == ["tool_invoke_failed:timeout"]


def test_non_json_fields_fall_back_to_repr() -> None:
    record = logging.LogRecord("toolchat.test", logging.INFO, __file__, 1, "evt", None, None)
    record.obj = object()

    payload = json.loads(_JsonFormatter().format(record))
    assert payload["obj"].startswith("<object object")


def test_bind_context_starts_a_clean_turn() -> None:
    bind_context(session_id="s1", turn_id=1, trace_id="first")
    set_state(TurnState.TERMINATED)
    add_error("cancelled")

    bind_context(session_id="s1", turn_id=2, trace_id="second")
    record = logging.LogRecord("toolchat.test", logging.INFO, __file__, 1, "evt", None, None)
    payload = json.loads(_JsonFormatter().format(record))

    assert payload["trace_id"] == "second"
    assert payload["turn_id"] == 2
    assert "state" not in payload
    assert payload["errors"] == []
