"""Per-turn observability context, merged into every JSON log record."""

from __future__ import annotations

import secrets
from contextvars import ContextVar

from toolchat.core.types import TurnState

_session_id: ContextVar[str | None] = ContextVar("session_id", default=None)
_turn_id: ContextVar[int | None] = ContextVar("turn_id", default=None)
_trace_id: ContextVar[str | None] = ContextVar("trace_id", default=None)
_state: ContextVar[TurnState | None] = ContextVar("state", default=None)
_errors: ContextVar[tuple[str, ...]] = ContextVar("errors", default=())


def new_session_id() -> str:
    return secrets.token_hex(12)


def bind_context(*, session_id: str, turn_id: int, trace_id: str | None = None) -> str:
    """Start a turn: bind its ids, clear state and errors. Returns the trace id."""

    trace = trace_id or secrets.token_hex(16)
    _session_id.set(session_id)
    _turn_id.set(turn_id)
    _trace_id.set(trace)
    _state.set(None)
    _errors.set(())
    return trace


def set_state(state: TurnState) -> None:
    _state.set(state)


def add_error(kind: str) -> None:
    _errors.set((*_errors.get(), kind))


def snapshot() -> dict[str, object]:
    out: dict[str, object] = {}
    if (v := _trace_id.get()) is not None:
        out["trace_id"] = v
    if (v := _session_id.get()) is not None:
        out["session_id"] = v
    if (v := _turn_id.get()) is not None:
        out["turn_id"] = v
    if (s := _state.get()) is not None:
        out["state"] = s.value
    out["errors"] = list(_errors.get())
    return out
