"""OpenAI-compatible generation backend.

This client uses LangChain's OpenAI wrapper (`langchain_openai.ChatOpenAI`), which
covers local model servers exposing `/v1/chat/completions` (Ollama, vLLM,
Foundry Local, llama.cpp server, ...).

Constraints:
- Streaming is mandatory; fragments are yielded as they arrive.
- The offered tool is advertised with `tool_choice="none"`: the model must answer
  in text and embed its tool request as a `<tool_call>` block.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Iterable, Protocol, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import SecretStr

from toolchat.core.config import LlmConfig
from toolchat.core.types import GenerationOptions, Message, Role
from toolchat.observability.logging import get_logger


class GenerationBackend(Protocol):
    """Black-box streaming text producer."""

    def stream_response(
        self, history: Sequence[Message], options: GenerationOptions
    ) -> AsyncIterator[str]:
        ...


def to_langchain_messages(history: Iterable[Message]) -> list[BaseMessage]:
    out: list[BaseMessage] = []
    for m in history:
        if m.role is Role.SYSTEM:
            out.append(SystemMessage(content=m.text))
        elif m.role is Role.USER:
            out.append(HumanMessage(content=m.text))
        else:
            out.append(AIMessage(content=m.text))
    return out


class ChatModelBackend:
    """Streaming chat backend over an OpenAI-compatible endpoint."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        model: str,
        timeout_s: float = 120,
        max_retries: int = 2,
    ) -> None:
        self._model_name = model
        self._model = ChatOpenAI(
            model=model,
            api_key=SecretStr(api_key),
            base_url=base_url,
            timeout=timeout_s,
            max_retries=max_retries,
            streaming=True,
        )
        self._log = get_logger("toolchat.llm")

    @classmethod
    def from_config(cls, cfg: LlmConfig) -> "ChatModelBackend":
        return cls(
            api_key=cfg.api_key,
            base_url=cfg.base_url,
            model=cfg.model,
            timeout_s=cfg.timeout_s,
            max_retries=cfg.max_retries,
        )

    async def stream_response(
        self, history: Sequence[Message], options: GenerationOptions
    ) -> AsyncIterator[str]:
        model: Any = self._model
        if options.tools:
            model = self._model.bind_tools(list(options.tools), tool_choice="none")

        fragments = 0
        async for chunk in model.astream(
            to_langchain_messages(history),
            max_tokens=options.max_output_tokens,
            extra_body={"max_length": options.length_hint},
        ):
            # LangChain streams AIMessageChunk objects.
            content = getattr(chunk, "content", None)
            if isinstance(content, str) and content:
                fragments += 1
                yield content

        self._log.debug("llm_stream_done", model=self._model_name, fragments=fragments)


class FakeChatBackend:
    """Offline stub for running a turn without a model server.

    `rounds` is a list of fragment lists, consumed one per generation round; the
    last entry is reused once exhausted. Every call is recorded in `calls`.
    """

    def __init__(self, rounds: list[list[str]] | None = None) -> None:
        self._rounds = rounds or [["(fake) ", "hello!"]]
        self.calls: list[tuple[tuple[Message, ...], GenerationOptions]] = []

    async def stream_response(
        self, history: Sequence[Message], options: GenerationOptions
    ) -> AsyncIterator[str]:
        idx = min(len(self.calls), len(self._rounds) - 1)
        self.calls.append((tuple(history), options))
        for fragment in self._rounds[idx]:
            yield fragment
