"""
Shared fixtures for the superbot test suite.

Provides a temp workspace, a fresh message bus and a scripted LLM
provider that replays canned responses without any network access.
"""

import copy
from pathlib import Path
from typing import Any

import pytest

from superbot.bus.queue import MessageBus
from superbot.providers.base import LLMProvider, LLMResponse, ToolCallRequest


class ScriptedProvider(LLMProvider):
    """
    Provider stub that replays responses in order.

    Entries may be LLMResponse objects or exceptions (raised when reached).
    Once the script runs out the last entry is repeated. Every call's
    messages are snapshotted in `calls`.
    """

    def __init__(self, responses: list[Any], default_model: str = "test-model"):
        super().__init__(api_key="test", default_model=default_model)
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    async def chat(self, messages, tools=None, model=None, max_tokens=4096, temperature=0.7):
        self.calls.append(
            {"messages": copy.deepcopy(messages), "tools": tools, "model": model}
        )
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        item = self.responses[index]
        if isinstance(item, Exception):
            raise item
        return item


def reply(content: str) -> LLMResponse:
    return LLMResponse(content=content)


def tool_call(name: str, arguments: dict[str, Any], call_id: str = "call_1", content: str | None = None) -> LLMResponse:
    return LLMResponse(
        content=content,
        tool_calls=[ToolCallRequest(id=call_id, name=name, arguments=arguments)],
        finish_reason="tool_calls",
    )


@pytest.fixture
def workspace(tmp_path) -> Path:
    """A throwaway agent workspace."""
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws


@pytest.fixture
def bus() -> MessageBus:
    return MessageBus().start()


@pytest.fixture
def scripted():
    """Factory: scripted(responses) -> ScriptedProvider."""
    return ScriptedProvider


@pytest.fixture
def reply_factory():
    return reply


@pytest.fixture
def tool_call_factory():
    return tool_call
