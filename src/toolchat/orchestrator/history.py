from __future__ import annotations

from toolchat.core.types import Message, Role


class ConversationHistory:
    """Ordered, role-tagged message log for one turn.

    `reset()` seeds exactly one System message; everything after it is
    append-only. Messages are never removed individually.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []

    def reset(self, system_prompt: str) -> None:
        self._messages = [Message(role=Role.SYSTEM, text=system_prompt)]

    def append_user(self, text: str) -> None:
        self._append(Role.USER, text)

    def append_assistant(self, text: str) -> None:
        self._append(Role.ASSISTANT, text)

    def snapshot(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def _append(self, role: Role, text: str) -> None:
        if not self._messages:
            raise RuntimeError("history must be reset with a system prompt before appending")
        self._messages.append(Message(role=role, text=text))
