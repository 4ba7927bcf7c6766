"""
Tool registry: name → tool mapping with guarded execution.
"""

import logging
from typing import Any

from superbot.tools.base import Tool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Registry of tools available to one agent loop.

    `execute()` never raises: unknown tools, invalid parameters and tool
    exceptions all come back as error text the model can react to.
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Register a tool, replacing any tool with the same name."""
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def get_definitions(self) -> list[dict[str, Any]]:
        """All registered tools in OpenAI function-calling format."""
        return [tool.to_schema() for tool in self._tools.values()]

    async def execute(self, name: str, params: dict[str, Any]) -> str:
        """
        Validate and run a tool by name.

        Args:
            name: Tool name
            params: Arguments decoded from the model's tool call

        Returns:
            Tool output, or an error string.
        """
        tool = self._tools.get(name)
        if tool is None:
            return f"Error: Tool '{name}' not found"

        try:
            errors = tool.validate_params(params)
            if errors:
                return f"Error: Invalid parameters for tool '{name}': " + "; ".join(errors)
            return await tool.execute(**params)
        except Exception as e:
            logger.error(f"Tool {name} error: {e}")
            return f"Error executing {name}: {e}"

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
