from __future__ import annotations

import asyncio
import time

from toolchat.core.config import GenerationConfig
from toolchat.core.errors import ConfigError
from toolchat.core.types import GenerationOptions, TurnOutcome, TurnState
from toolchat.llm.client import GenerationBackend
from toolchat.llm.tool_call_extractor import ToolCallExtractor
from toolchat.mcp_client.client import ToolBackend
from toolchat.observability import bind_context, get_logger, new_session_id, set_state
from toolchat.tools.policy import ToolPolicy

from .collector import StreamingResponseCollector
from .controller import ToolInvocationController
from .history import ConversationHistory
from .scenarios import ScenarioConfig


class ChatOrchestrator:
    """Runs one scenario turn: seed history, read the user, hand off to the controller.

    One turn is in flight per instance; the history is cleared and reseeded at
    the start of every turn.
    """

    def __init__(
        self,
        *,
        generator: GenerationBackend,
        tool_backend: ToolBackend | None,
        generation: GenerationConfig,
        policy: ToolPolicy,
        extractor: ToolCallExtractor | None = None,
    ) -> None:
        self._generation = generation
        self._history = ConversationHistory()
        self._controller = ToolInvocationController(
            collector=StreamingResponseCollector(generator),
            tool_backend=tool_backend,
            policy=policy,
            extractor=extractor,
        )

        self._session_id = new_session_id()
        self._turn_id = 0
        self._log = get_logger("toolchat.orchestrator")

    @property
    def history(self) -> ConversationHistory:
        return self._history

    async def run_turn(self, scenario: ScenarioConfig | None, *, cancel: asyncio.Event | None = None) -> TurnOutcome:
        if scenario is None:
            raise ConfigError("scenario configuration is required", path="scenario")
        if not isinstance(scenario.system_prompt, str) or not scenario.system_prompt.strip():
            raise ConfigError("system prompt must be a non-empty string", path="scenario.system_prompt")

        self._turn_id += 1
        bind_context(session_id=self._session_id, turn_id=self._turn_id)

        self._history.reset(scenario.system_prompt)

        user_text = await asyncio.to_thread(scenario.input_source)
        if user_text is None:
            set_state(TurnState.TERMINATED)
            self._log.info("turn_skipped", reason="end_of_input")
            return TurnOutcome(states=(TurnState.TERMINATED,))

        self._history.append_user(user_text.strip())

        options = GenerationOptions(
            max_output_tokens=self._generation.max_output_tokens,
            length_hint=self._generation.length_hint,
            tools=(scenario.tool,) if scenario.tool is not None else (),
        )

        t0 = time.perf_counter()
        outcome = await self._controller.run(
            history=self._history,
            options=options,
            sink=scenario.output_sink,
            cancel=cancel,
        )

        self._log.info(
            "turn_done",
            scenario=scenario.title,
            latency_ms=round((time.perf_counter() - t0) * 1000, 2),
            rounds=outcome.rounds,
            tool=outcome.tool_call.name if outcome.tool_call is not None else None,
            error=outcome.error.kind if outcome.error is not None else None,
        )
        return outcome
