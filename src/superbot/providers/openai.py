"""
OpenAI-compatible LLM provider.

Works with OpenAI, OpenRouter and other `/chat/completions` endpoints.
"""

import json
import logging
from typing import Any

import httpx

from superbot.providers.base import LLMProvider, LLMResponse, ToolCallRequest

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """
    Chat-completions client with fallback models.

    When a request to a model times out, the identical request is retried
    on each entry of `fallback_models` in order (skipping the model that
    was already tried). Other failures are returned as an error response
    straight away.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str | None = None,
        fallback_models: list[str] | None = None,
        timeout_s: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            api_key=api_key,
            api_base=(api_base or "https://api.openai.com/v1").rstrip("/"),
            default_model=default_model or "gpt-4",
        )
        self.fallback_models = list(fallback_models or [])
        self.timeout_s = timeout_s
        self._transport = transport

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> LLMResponse:
        use_model = model or self.get_default_model()

        payload: dict[str, Any] = {
            "model": use_model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        try:
            return await self._request(payload)
        except httpx.TimeoutException as e:
            logger.warning(f"LLM request to {use_model} timed out: {e!r}")
            last_error: str = f"Request to {use_model} timed out"
        except Exception as e:
            err = self._error_message(e)
            logger.error(f"LLM error: {err}")
            return LLMResponse(content=f"Error calling LLM: {err}", finish_reason="error")

        tried = {use_model}
        for fallback in self.fallback_models:
            if fallback in tried:
                continue
            tried.add(fallback)
            logger.info(f"Retrying with fallback model {fallback}")
            try:
                return await self._request({**payload, "model": fallback})
            except Exception as e:
                last_error = self._error_message(e)
                logger.warning(f"Fallback model {fallback} failed: {last_error}")

        return LLMResponse(content=f"Error calling LLM: {last_error}", finish_reason="error")

    async def _request(self, payload: dict[str, Any]) -> LLMResponse:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
            response = await client.post(
                f"{self.api_base}/chat/completions",
                json=payload,
                headers=headers,
            )
            response.raise_for_status()
            return self._parse_response(response.json())

    @staticmethod
    def _error_message(e: Exception) -> str:
        if isinstance(e, httpx.HTTPStatusError):
            try:
                detail = e.response.json().get("error", {}).get("message")
            except ValueError:
                detail = None
            return detail or f"HTTP {e.response.status_code}"
        if isinstance(e, httpx.TimeoutException):
            return "Request timed out"
        return str(e) or type(e).__name__

    def _parse_response(self, data: dict[str, Any]) -> LLMResponse:
        """Parse an OpenAI response body into an LLMResponse."""
        choices = data.get("choices") or []
        if not choices:
            return LLMResponse(content="No response from LLM")

        choice = choices[0]
        message = choice.get("message") or {}

        tool_calls = []
        for tc in message.get("tool_calls") or []:
            fn = tc.get("function") or {}
            args = fn.get("arguments")
            if isinstance(args, str):
                try:
                    args = json.loads(args) if args.strip() else {}
                except json.JSONDecodeError:
                    args = {"raw": args}
            tool_calls.append(
                ToolCallRequest(
                    id=tc.get("id", ""),
                    name=fn.get("name", ""),
                    arguments=args if args is not None else {},
                )
            )

        usage = {}
        if u := data.get("usage"):
            usage = {
                "prompt_tokens": u.get("prompt_tokens", 0),
                "completion_tokens": u.get("completion_tokens", 0),
                "total_tokens": u.get("total_tokens", 0),
            }

        return LLMResponse(
            content=message.get("content"),
            tool_calls=tool_calls,
            finish_reason=choice.get("finish_reason") or "stop",
            usage=usage,
        )


def create_provider(config) -> OpenAIProvider:
    """Create a provider from a `superbot.config.Config`."""
    return OpenAIProvider(
        api_key=config.provider.api_key,
        api_base=config.provider.api_base,
        default_model=config.provider.model,
        fallback_models=config.provider.fallback_models,
        timeout_s=config.provider.timeout_s,
    )
