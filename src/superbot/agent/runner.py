"""
The provider/tool iteration shared by the main loop and subagents.
"""

import json
import logging
from typing import Any

from superbot.agent.context import ContextBuilder
from superbot.providers.base import LLMProvider
from superbot.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


async def run_tool_loop(
    provider: LLMProvider,
    tools: ToolRegistry,
    messages: list[dict[str, Any]],
    model: str,
    max_iterations: int,
    log_prefix: str = "",
) -> tuple[str | None, list[str]]:
    """
    Call the provider until it answers without tool calls.

    Tool calls are executed one by one in the order the provider returned
    them; each gets exactly one tool-result message. `messages` is
    extended in place.

    Returns:
        (final_content, tools_used). final_content is None when
        `max_iterations` provider calls all requested tools.
    """
    tools_used: list[str] = []

    for iteration in range(1, max_iterations + 1):
        logger.debug(f"{log_prefix}iteration {iteration}/{max_iterations}")
        response = await provider.chat(
            messages=messages,
            tools=tools.get_definitions(),
            model=model,
        )

        if not response.has_tool_calls:
            return response.content, tools_used

        tool_call_dicts = [
            {
                "id": tc.id,
                "type": "function",
                "function": {
                    "name": tc.name,
                    "arguments": json.dumps(tc.arguments, ensure_ascii=False),
                },
            }
            for tc in response.tool_calls
        ]
        ContextBuilder.add_assistant_message(messages, response.content, tool_call_dicts)

        for tc in response.tool_calls:
            tools_used.append(tc.name)
            args_str = json.dumps(tc.arguments, ensure_ascii=False)
            logger.info(f"{log_prefix}Tool call: {tc.name}({args_str[:200]})")
            result = await tools.execute(tc.name, tc.arguments)
            ContextBuilder.add_tool_result(messages, tc.id, tc.name, result)

    logger.warning(f"{log_prefix}hit max iterations ({max_iterations}) without a final answer")
    return None, tools_used
