from __future__ import annotations


class ToolChatError(Exception):
    """Base exception for this project."""


class ConfigError(ToolChatError):
    """Raised when configuration is invalid or incomplete.

    Also used for scenario configuration rejected at turn start.
    """

    def __init__(self, message: str, *, path: str | None = None):
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path


class TurnCancelledError(ToolChatError):
    """Raised when a turn's cancellation event fires at a suspension point."""

    def __init__(self, where: str) -> None:
        super().__init__(f"turn cancelled while awaiting {where}")
        self.where = where
