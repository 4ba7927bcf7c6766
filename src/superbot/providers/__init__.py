"""LLM providers."""

from superbot.providers.base import LLMProvider, LLMResponse, ToolCallRequest
from superbot.providers.openai import OpenAIProvider, create_provider

__all__ = ["LLMProvider", "LLMResponse", "ToolCallRequest", "OpenAIProvider", "create_provider"]
