"""
Base LLM provider interface and response types.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolCallRequest:
    """A tool call requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class LLMResponse:
    """Response from an LLM provider."""

    content: str | None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def has_tool_calls(self) -> bool:
        """Tool calls mean the turn continues, whatever the content says."""
        return len(self.tool_calls) > 0


class LLMProvider(ABC):
    """
    Abstract chat-completion provider.

    Implementations must not raise for ordinary request failures; they
    return an `LLMResponse` with `finish_reason="error"` instead.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str | None = None,
    ):
        self.api_key = api_key
        self.api_base = api_base
        self.default_model = default_model

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> LLMResponse:
        pass

    def get_default_model(self) -> str:
        return self.default_model or "gpt-4"
