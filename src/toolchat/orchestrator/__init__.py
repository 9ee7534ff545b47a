from __future__ import annotations

from .chat import ChatOrchestrator
from .collector import StreamingResponseCollector
from .controller import ToolInvocationController
from .history import ConversationHistory
from .scenarios import ScenarioConfig, build_scenarios

__all__ = [
    "ChatOrchestrator",
    "ConversationHistory",
    "ScenarioConfig",
    "StreamingResponseCollector",
    "ToolInvocationController",
    "build_scenarios",
]
