from __future__ import annotations

import pytest

from toolchat.core.config import ToolsConfig
from toolchat.core.errors import ToolChatError
from toolchat.tools.policy import PolicyError, ToolDisabledError, ToolNotAllowedError, ToolPolicy


def test_policy_allow_all_when_whitelist_empty() -> None:
    policy = ToolPolicy(enabled=True, whitelist=[])
    policy.check("any_tool")


def test_policy_blocks_when_disabled() -> None:
    policy = ToolPolicy(enabled=False, whitelist=[])
    with pytest.raises(ToolDisabledError):
        policy.check("any_tool")


def test_policy_blocks_when_whitelist_non_empty() -> None:
    policy = ToolPolicy(enabled=True, whitelist=["allowed"])

    policy.check("allowed")
    with pytest.raises(ToolNotAllowedError) as ei:
        policy.check("denied")

    assert "denied" in ei.value.message
    assert isinstance(ei.value, PolicyError)
    assert isinstance(ei.value, ToolChatError)


def test_policy_from_config() -> None:
    policy = ToolPolicy.from_config(ToolsConfig(enabled=True, whitelist=["SaveFile"]))

    policy.check("SaveFile")
    with pytest.raises(ToolNotAllowedError):
        policy.check("DeleteFile")


def test_policy_from_disabled_config() -> None:
    policy = ToolPolicy.from_config(ToolsConfig(enabled=False, whitelist=["SaveFile"]))
    with pytest.raises(ToolDisabledError):
        policy.check("SaveFile")
