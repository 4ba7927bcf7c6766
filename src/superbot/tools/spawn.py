"""
Tool: spawn

Starts a background subagent that reports back when done.
"""

from typing import TYPE_CHECKING, Any

from superbot.tools.base import ConversationTool

if TYPE_CHECKING:
    from superbot.agent.subagent import SubagentManager


class SpawnTool(ConversationTool):
    """Hand a task to a background subagent; it reports to the current chat."""

    def __init__(self, manager: "SubagentManager | None"):
        super().__init__(channel="cli", chat_id="direct")
        self._manager = manager

    @property
    def name(self) -> str:
        return "spawn"

    @property
    def description(self) -> str:
        return (
            "Spawn a subagent to handle a task in the background. "
            "Use this for complex or time-consuming tasks that can run independently. "
            "The subagent will complete the task and report back when done."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "task": {"type": "string", "description": "The task for the subagent to complete"},
                "label": {
                    "type": "string",
                    "description": "Optional short label for the task (for display)",
                },
            },
            "required": ["task"],
        }

    async def execute(self, task: str, label: str | None = None, **kwargs: Any) -> str:
        if self._manager is None:
            return "Error: Subagent manager not configured"

        origin_channel, origin_chat_id = self.conversation
        return await self._manager.spawn(
            task=task,
            label=label,
            origin_channel=origin_channel,
            origin_chat_id=origin_chat_id,
        )
