"""
Tool: schedule

Allows the agent to create scheduled/cron tasks that report back to the
conversation they were created from.
"""

from typing import TYPE_CHECKING, Any

from superbot.tools.base import ConversationTool

if TYPE_CHECKING:
    from superbot.cron.service import CronService


class ScheduleTool(ConversationTool):
    """Create, list and remove scheduled jobs."""

    def __init__(self, cron: "CronService"):
        super().__init__()
        self._cron = cron

    @property
    def name(self) -> str:
        return "schedule"

    @property
    def description(self) -> str:
        return (
            "Schedule a one-time or recurring task, list scheduled tasks, or remove one. "
            "When the task runs its prompt is processed by the agent and, if deliver "
            "is true, the result is sent to the current chat."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": ["add", "list", "remove"],
                    "description": "What to do",
                },
                "name": {"type": "string", "description": "Task name for identification"},
                "message": {
                    "type": "string",
                    "description": "Prompt/message to execute when task runs",
                },
                "schedule_type": {
                    "type": "string",
                    "enum": ["at", "every", "cron"],
                    "description": "Type of schedule",
                },
                "schedule_value": {
                    "type": "string",
                    "description": (
                        "ISO datetime (for 'at'), seconds (for 'every'), "
                        "or cron expression (for 'cron')"
                    ),
                },
                "deliver": {
                    "type": "boolean",
                    "description": "Whether to send result to user (default true)",
                },
            },
            "required": ["action"],
        }

    async def execute(
        self,
        action: str,
        name: str | None = None,
        message: str | None = None,
        schedule_type: str | None = None,
        schedule_value: str | None = None,
        deliver: bool = True,
        **kwargs: Any,
    ) -> str:
        if action == "list":
            jobs = self._cron.list_jobs()
            if not jobs:
                return "No scheduled tasks."
            return "\n".join(
                f"- {j.name}: {j.schedule_type} {j.schedule_value} (next: {j.next_run_at})"
                for j in jobs
            )

        if not name:
            return "Error: name is required"

        if action == "remove":
            if await self._cron.remove_job(name):
                return f"Task '{name}' removed"
            return f"Error: Task '{name}' not found"

        if not message or not schedule_type or not schedule_value:
            return "Error: message, schedule_type and schedule_value are required to add a task"

        channel, chat_id = self.conversation
        try:
            job = await self._cron.add_job(
                name=name,
                message=message,
                schedule_type=schedule_type,  # type: ignore[arg-type]
                schedule_value=schedule_value,
                deliver=deliver,
                channel=channel or None,
                chat_id=chat_id or None,
            )
        except ValueError as e:
            return f"Error: {e}"
        return f"Task '{name}' scheduled ({schedule_type}: {schedule_value}), next run at {job.next_run_at}"
