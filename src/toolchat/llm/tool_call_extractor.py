"""Lenient extraction of a tool call embedded in generated text.

Models are prompted to emit exactly one block of the form

    <tool_call>{"name": "...", "parameters": {...}}</tool_call>

somewhere in their free-form answer. Small local models routinely get the JSON
slightly wrong, so extraction applies a fixed set of repairs before parsing:

- `//` line comments are stripped (this also cuts string content containing
  `//`, e.g. URLs; known and accepted).
- Missing closing braces are appended. Excess closing braces are *not* removed,
  and nothing else (commas, quoting, nesting order) is repaired.

The heuristics are pinned by tests; do not swap them for a general JSON-repair
library whose behaviour may drift.

All parsing is best-effort: a malformed block is logged and reported as
InvalidToolCall, never raised.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Union

from toolchat.core.types import ArgumentValue, RawText, ToolCallRequest
from toolchat.observability.logging import get_logger

TOOL_CALL_OPEN = "<tool_call>"
TOOL_CALL_CLOSE = "</tool_call>"

FILE_CONTENT_KEY = "fileContent"

_BLOCK_RE = re.compile(re.escape(TOOL_CALL_OPEN) + r"(.*?)" + re.escape(TOOL_CALL_CLOSE), re.DOTALL)
_LINE_COMMENT_RE = re.compile(r"//.*")
_ESCAPE_RE = re.compile(r'\\([\\nt"])')
_UNESCAPES = {"\\": "\\", "n": "\n", "t": "\t", '"': '"'}

_log = get_logger("toolchat.extractor")


@dataclass(frozen=True, slots=True)
class NoToolCall:
    """No tool-call block in the response (a normal outcome)."""


@dataclass(frozen=True, slots=True)
class InvalidToolCall:
    """A tool-call block was found but could not be decoded."""

    raw: str
    error: str


ExtractionResult = Union[ToolCallRequest, NoToolCall, InvalidToolCall]


def find_tool_call_block(text: str) -> str | None:
    """Return the content of the first `<tool_call>` block, if any."""

    m = _BLOCK_RE.search(text)
    return m.group(1) if m else None


def strip_line_comments(block: str) -> str:
    return _LINE_COMMENT_RE.sub("", block)


def balance_braces(block: str) -> str:
    """Append `}` until braces balance. Never removes anything."""

    missing = block.count("{") - block.count("}")
    if missing > 0:
        return block + "}" * missing
    return block


def repair_json(block: str) -> str:
    return balance_braces(strip_line_comments(block))


def unescape_file_content(value: str) -> str:
    """Resolve `\\n`, `\\t`, `\\"` and `\\\\` left literally in file content.

    Single left-to-right pass: an escaped backslash is consumed as one unit, so
    `\\\\n` yields a backslash followed by `n`, not a newline.
    """

    return _ESCAPE_RE.sub(lambda m: _UNESCAPES[m.group(1)], value)


def to_argument_value(value: Any) -> ArgumentValue:
    # bool before number: JSON true/false decode to Python bool, which is an int.
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        number = float(value)
        if not math.isfinite(number):
            raise ValueError(f"number out of range: {value!r}")
        return number
    return RawText(json.dumps(value, ensure_ascii=False))


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def decode_tool_call(repaired: str) -> ToolCallRequest:
    """Decode a repaired block. Raises ValueError on any shape problem."""

    doc = json.loads(repaired, parse_constant=_reject_constant)
    if not isinstance(doc, dict):
        raise ValueError("tool call must be a JSON object")

    name = doc.get("name")
    if not isinstance(name, str):
        raise ValueError("missing or non-string 'name'")

    params = doc.get("parameters")
    if not isinstance(params, dict):
        raise ValueError("missing or non-object 'parameters'")

    arguments: dict[str, ArgumentValue] = {str(k): to_argument_value(v) for k, v in params.items()}

    content = arguments.get(FILE_CONTENT_KEY)
    if isinstance(content, str) and not isinstance(content, RawText):
        arguments[FILE_CONTENT_KEY] = unescape_file_content(content)

    return ToolCallRequest(name=name, arguments=arguments)


def extract(response_text: str) -> ExtractionResult:
    block = find_tool_call_block(response_text)
    if block is None:
        return NoToolCall()

    repaired = repair_json(block)
    try:
        request = decode_tool_call(repaired)
    except (ValueError, OverflowError, RecursionError) as e:
        # json.JSONDecodeError is a ValueError subclass; huge integers overflow float().
        _log.warning("tool_call_malformed", error=str(e), raw_len=len(block))
        return InvalidToolCall(raw=block, error=str(e))

    _log.info("tool_call_extracted", tool=request.name, arguments=sorted(request.arguments))
    return request


class ToolCallExtractor:
    """Object seam around `extract()` so the controller can be handed a double."""

    def extract(self, response_text: str) -> ExtractionResult:
        return extract(response_text)
