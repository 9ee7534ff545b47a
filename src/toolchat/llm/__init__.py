"""LLM adapters (OpenAI-compatible streaming client, tool-call extraction)."""

from __future__ import annotations

from .client import ChatModelBackend, FakeChatBackend, GenerationBackend
from .tool_call_extractor import ExtractionResult, InvalidToolCall, NoToolCall, ToolCallExtractor, extract

__all__ = [
    "ChatModelBackend",
    "ExtractionResult",
    "FakeChatBackend",
    "GenerationBackend",
    "InvalidToolCall",
    "NoToolCall",
    "ToolCallExtractor",
    "extract",
]
