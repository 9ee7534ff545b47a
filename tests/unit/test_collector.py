from __future__ import annotations

import asyncio
from typing import AsyncIterator, Sequence

import pytest

from toolchat.core.errors import TurnCancelledError
from toolchat.core.types import CaptureSink, GenerationOptions, Message, Role
from toolchat.llm.client import FakeChatBackend
from toolchat.orchestrator.collector import StreamingResponseCollector

OPTIONS = GenerationOptions(max_output_tokens=16, length_hint=8)
HISTORY = (Message(role=Role.SYSTEM, text="sys"), Message(role=Role.USER, text="hi"))


class TrackingBackend:
    """Yields the scripted fragments, then optionally blocks forever."""

    def __init__(self, fragments: list[str], *, block: bool = False) -> None:
        self._fragments = fragments
        self._block = block
        self.closed = False

    async def stream_response(self, history: Sequence[Message], options: GenerationOptions) -> AsyncIterator[str]:
        _ = (history, options)
        try:
            for f in self._fragments:
                yield f
            if self._block:
                await asyncio.sleep(3600)
        finally:
            self.closed = True


def test_forwards_fragments_in_order_and_terminates_round() -> None:
    backend = FakeChatBackend([["Hel", "lo", ", world"]])
    sink = CaptureSink()

    text = asyncio.run(StreamingResponseCollector(backend).collect(HISTORY, OPTIONS, sink))

    assert text == "Hello, world"
    assert sink.chunks == ["Hel", "lo", ", world", "\n"]
    assert backend.calls == [(HISTORY, OPTIONS)]


def test_empty_stream_still_writes_terminator() -> None:
    sink = CaptureSink()
    text = asyncio.run(StreamingResponseCollector(FakeChatBackend([[]])).collect(HISTORY, OPTIONS, sink))

    assert text == ""
    assert sink.chunks == ["\n"]


def test_stream_is_closed_when_sink_fails() -> None:
    backend = TrackingBackend(["a", "b"])

    def sink(text: str) -> None:
        raise RuntimeError("console gone")

    with pytest.raises(RuntimeError):
        asyncio.run(StreamingResponseCollector(backend).collect(HISTORY, OPTIONS, sink))

    assert backend.closed is True


def test_cancel_while_waiting_for_fragment() -> None:
    backend = TrackingBackend(["partial"], block=True)
    sink = CaptureSink()

    async def main() -> str:
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, cancel.set)
        return await StreamingResponseCollector(backend).collect(HISTORY, OPTIONS, sink, cancel=cancel)

    with pytest.raises(TurnCancelledError):
        asyncio.run(main())

    # No end-of-round marker on cancellation.
    assert sink.chunks == ["partial"]
    assert backend.closed is True
