from __future__ import annotations

import argparse
import asyncio
import os
import sys
from contextlib import AsyncExitStack
from typing import Any

from toolchat.llm.client import ChatModelBackend, FakeChatBackend, GenerationBackend
from toolchat.mcp_client import McpToolBackend, server_config_from_mapping
from toolchat.observability.logging import configure_logging, get_logger
from toolchat.orchestrator import ChatOrchestrator, ScenarioConfig, build_scenarios
from toolchat.tools import ToolPolicy, tool_to_openai_spec

from .config import API_KEY_ENV, AppConfig, ToolsConfig, load_config
from .errors import ConfigError


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="toolchat: streaming chat with one bounded MCP tool round")
    p.add_argument("--config", default="configs/app.yaml", help="YAML config path")
    p.add_argument("--log-level", default="INFO", help="log level (logs go to stderr)")
    p.add_argument("--fake", action="store_true", help="use the scripted offline model backend")
    p.add_argument(
        "--scenario",
        choices=["chat", "coding"],
        default=None,
        help="run a single turn of this scenario and exit (default: interactive menu)",
    )
    return p


def console_sink(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def console_source() -> str | None:
    try:
        return input()
    except EOFError:
        return None


def _fake_rounds(tools_cfg: ToolsConfig) -> list[list[str]]:
    call = (
        '<tool_call>{"name": "%s", "parameters": {"filePath": "%s", "fileContent": "(fake) hello\\nworld"}}</tool_call>'
        % (tools_cfg.file_tool, tools_cfg.file_path)
    )
    return [["(fake) ", "here is the answer.\n", call], ["(fake) ", "saved."]]


async def _menu(orch: ChatOrchestrator, scenarios: dict[str, ScenarioConfig]) -> None:
    keys = list(scenarios)
    while True:
        console_sink("\nChoose a mode:\n")
        for i, key in enumerate(keys, start=1):
            console_sink(f"{i}. {scenarios[key].title}\n")
        console_sink("exit to quit\n")

        choice = await asyncio.to_thread(console_source)
        if choice is None or choice.strip().lower() == "exit":
            return

        raw = choice.strip()
        if raw.isdigit() and 1 <= int(raw) <= len(keys):
            await orch.run_turn(scenarios[keys[int(raw) - 1]])


async def _run(cfg: AppConfig, args: argparse.Namespace) -> int:
    log = get_logger("toolchat.cli")

    async with AsyncExitStack() as stack:
        tool_backend: McpToolBackend | None = None
        tools: list[dict[str, Any]] = []
        if cfg.mcp.enabled:
            server = server_config_from_mapping(
                cfg.mcp.server, timeout_s=cfg.mcp.timeout_s, init_timeout_s=cfg.mcp.init_timeout_s
            )
            tool_backend = await stack.enter_async_context(McpToolBackend(server))
            tools = [tool_to_openai_spec(t) for t in await tool_backend.list_tools()]

        generator: GenerationBackend
        if args.fake:
            generator = FakeChatBackend(_fake_rounds(cfg.tools))
        else:
            generator = ChatModelBackend.from_config(cfg.llm)

        orch = ChatOrchestrator(
            generator=generator,
            tool_backend=tool_backend,
            generation=cfg.generation,
            policy=ToolPolicy.from_config(cfg.tools),
        )
        scenarios = build_scenarios(tools, cfg.tools, output_sink=console_sink, input_source=console_source)
        log.info("cli_ready", scenarios=list(scenarios), tools=[t["function"]["name"] for t in tools])

        if args.scenario is None:
            await _menu(orch, scenarios)
            return 0

        scenario = scenarios.get(args.scenario)
        if scenario is None:
            raise ConfigError(
                f"scenario {args.scenario!r} is not available (is the MCP server offering {cfg.tools.file_tool!r}?)",
                path="scenario",
            )
        outcome = await orch.run_turn(scenario)
        log.info("turn_output", states=[s.value for s in outcome.states], rounds=outcome.rounds)
        return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(level=args.log_level)
    log = get_logger("toolchat.cli")

    # Offline stub: allow running without a real key.
    if args.fake and not os.getenv(API_KEY_ENV):
        os.environ[API_KEY_ENV] = "k_fake"

    try:
        cfg = load_config(args.config)
        return asyncio.run(_run(cfg, args))
    except ConfigError as e:
        log.error("config_invalid", error=str(e), path=e.path)
        return 2
    except Exception:  # noqa: BLE001
        log.exception("fatal")
        return 1
