from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Sequence

from toolchat.core.cancellation import await_or_cancel
from toolchat.core.types import GenerationOptions, Message, OutputSink
from toolchat.llm.client import GenerationBackend
from toolchat.observability.logging import get_logger

_END = object()


async def _next_fragment(stream: AsyncIterator[str]) -> Any:
    try:
        return await stream.__anext__()
    except StopAsyncIteration:
        return _END


class StreamingResponseCollector:
    """Forward fragments to a sink as they arrive and return the joined text."""

    def __init__(self, backend: GenerationBackend) -> None:
        self._backend = backend
        self._log = get_logger("toolchat.collector")

    async def collect(
        self,
        history: Sequence[Message],
        options: GenerationOptions,
        sink: OutputSink,
        *,
        cancel: asyncio.Event | None = None,
    ) -> str:
        stream = self._backend.stream_response(history, options)
        parts: list[str] = []
        try:
            while True:
                fragment = await await_or_cancel(_next_fragment(stream), cancel, where="fragment")
                if fragment is _END:
                    break
                sink(fragment)
                parts.append(fragment)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        sink("\n")
        text = "".join(parts)
        self._log.debug("generation_round_done", fragments=len(parts), text_len=len(text))
        return text
