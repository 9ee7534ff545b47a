from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from toolchat.core.config import ToolsConfig
from toolchat.core.types import InputSource, OutputSink

CHAT_SYSTEM_PROMPT = "You are a helpful assistant. Answer the user's questions clearly and concisely."

_CODING_PROMPT_TEMPLATE = """\
You are a coding assistant. After answering the user's question you must call a tool to save the answer.
A tool is only called when your reply contains the <tool_call> and </tool_call> tags.
The tool block must follow this structure exactly:
'''
<tool_call>
{{
    "name": "{tool}",
    "parameters": {{
        "filePath": "{path}",
        "fileContent": "[the full answer]"
    }}
}}
</tool_call>
'''
### Rules
1. Fixed path: "filePath" is always "{path}".
2. Content:
   - Put the complete answer into "fileContent". Escape special characters so the tool_call block is valid JSON.
3. Limits:
   - Each response may contain only one tool call.
"""


@dataclass(frozen=True, slots=True)
class ScenarioConfig:
    """One selectable conversation mode.

    `tool` is the OpenAI-format definition offered to the model, or None for a
    plain chat.
    """

    title: str
    system_prompt: str
    output_sink: OutputSink
    input_source: InputSource
    tool: dict[str, Any] | None = None


def coding_system_prompt(tool_name: str, file_path: str) -> str:
    return _CODING_PROMPT_TEMPLATE.format(tool=tool_name, path=file_path)


def find_tool(tools: Iterable[dict[str, Any]], name: str) -> dict[str, Any] | None:
    for spec in tools:
        fn = spec.get("function")
        if isinstance(fn, dict) and fn.get("name") == name:
            return spec
    return None


def build_scenarios(
    tools: Iterable[dict[str, Any]],
    tools_cfg: ToolsConfig,
    *,
    output_sink: OutputSink,
    input_source: InputSource,
) -> dict[str, ScenarioConfig]:
    """Build the menu of scenarios, keyed by their CLI name (insertion ordered).

    The coding assistant is only offered when the tool server lists the
    configured file tool.
    """

    scenarios = {
        "chat": ScenarioConfig(
            title="General conversation",
            system_prompt=CHAT_SYSTEM_PROMPT,
            output_sink=output_sink,
            input_source=input_source,
        )
    }

    file_tool = find_tool(tools, tools_cfg.file_tool)
    if file_tool is not None:
        scenarios["coding"] = ScenarioConfig(
            title="Coding assistant",
            system_prompt=coding_system_prompt(tools_cfg.file_tool, tools_cfg.file_path),
            output_sink=output_sink,
            input_source=input_source,
            tool=file_tool,
        )

    return scenarios
