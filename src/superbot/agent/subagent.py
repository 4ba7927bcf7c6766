"""
Subagent manager for background task execution.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from superbot.agent.runner import run_tool_loop
from superbot.bus.events import SYSTEM_CHANNEL, InboundMessage
from superbot.bus.queue import MessageBus
from superbot.config.schema import ExecConfig
from superbot.providers.base import LLMProvider
from superbot.tools import (
    EditFileTool,
    ExecTool,
    ListDirTool,
    ReadFileTool,
    ToolRegistry,
    WebFetchTool,
    WebSearchTool,
    WriteFileTool,
)

logger = logging.getLogger(__name__)

NO_RESULT = "Task completed but no final response was generated."


@dataclass
class SubagentTask:
    """A running background task."""

    id: str
    label: str
    started_at: float = field(default_factory=time.time)


class SubagentManager:
    """
    Runs fire-and-forget subagents.

    Each subagent gets its own tool registry (files, shell, web; no
    message and no spawn) and a short iteration cap. When it finishes it
    publishes a `system` channel message whose chat_id is
    "<origin_channel>:<origin_chat_id>", so the main loop can summarize
    the result for the original requester.
    """

    def __init__(
        self,
        provider: LLMProvider,
        workspace: Path,
        bus: MessageBus,
        model: str | None = None,
        brave_api_key: str | None = None,
        exec_config: ExecConfig | None = None,
        max_iterations: int = 15,
    ):
        self.provider = provider
        self.workspace = Path(workspace)
        self.bus = bus
        self.model = model or provider.get_default_model()
        self.brave_api_key = brave_api_key
        self.exec_config = exec_config or ExecConfig()
        self.max_iterations = max_iterations
        self._running_tasks: dict[str, SubagentTask] = {}
        self._asyncio_tasks: dict[str, asyncio.Task[None]] = {}

    async def spawn(
        self,
        task: str,
        label: str | None = None,
        origin_channel: str = "cli",
        origin_chat_id: str = "direct",
    ) -> str:
        """
        Start a subagent and return an acknowledgement immediately.

        The work starts on the next event-loop turn, after this returns.
        """
        task_id = uuid.uuid4().hex[:8]
        display_label = label or (task[:30] + "..." if len(task) > 30 else task)
        origin = (origin_channel, origin_chat_id)

        self._running_tasks[task_id] = SubagentTask(id=task_id, label=display_label)
        bg = asyncio.create_task(self._run_subagent(task_id, task, display_label, origin))
        self._asyncio_tasks[task_id] = bg
        bg.add_done_callback(lambda _: self._cleanup(task_id))

        logger.info(f"Spawned subagent [{task_id}]: {display_label}")
        return f"Subagent [{display_label}] started (id: {task_id}). I'll notify you when it completes."

    def _cleanup(self, task_id: str) -> None:
        self._running_tasks.pop(task_id, None)
        self._asyncio_tasks.pop(task_id, None)

    def _build_tools(self) -> ToolRegistry:
        allowed_dir = self.workspace if self.exec_config.restrict_to_workspace else None
        tools = ToolRegistry()
        tools.register(ReadFileTool(workspace=self.workspace, allowed_dir=allowed_dir))
        tools.register(WriteFileTool(workspace=self.workspace, allowed_dir=allowed_dir))
        tools.register(EditFileTool(workspace=self.workspace, allowed_dir=allowed_dir))
        tools.register(ListDirTool(workspace=self.workspace, allowed_dir=allowed_dir))
        tools.register(
            ExecTool(
                working_dir=self.workspace,
                timeout=self.exec_config.timeout,
                restrict_to_workspace=self.exec_config.restrict_to_workspace,
            )
        )
        tools.register(WebSearchTool(api_key=self.brave_api_key))
        tools.register(WebFetchTool())
        return tools

    async def _run_subagent(
        self,
        task_id: str,
        task: str,
        label: str,
        origin: tuple[str, str],
    ) -> None:
        logger.info(f"Subagent [{task_id}] starting task: {label}")

        try:
            messages = [
                {"role": "system", "content": self._build_subagent_prompt(task)},
                {"role": "user", "content": task},
            ]
            result, _ = await run_tool_loop(
                self.provider,
                self._build_tools(),
                messages,
                model=self.model,
                max_iterations=self.max_iterations,
                log_prefix=f"Subagent [{task_id}] ",
            )
            logger.info(f"Subagent [{task_id}] completed successfully")
            self._announce_result(task_id, label, task, result or NO_RESULT, origin, "ok")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Subagent [{task_id}] failed")
            self._announce_result(task_id, label, task, f"Error: {e}", origin, "error")

    def _announce_result(
        self,
        task_id: str,
        label: str,
        task: str,
        result: str,
        origin: tuple[str, str],
        status: str,
    ) -> None:
        status_text = "completed successfully" if status == "ok" else "failed"
        content = f"""[Subagent '{label}' {status_text}]

Task: {task}

Result:
{result}

Summarize this naturally for the user. Keep it brief (1-2 sentences). Do not mention technical details like "subagent" or task IDs."""

        channel, chat_id = origin
        self.bus.publish_inbound(
            InboundMessage(
                channel=SYSTEM_CHANNEL,
                sender_id="subagent",
                chat_id=f"{channel}:{chat_id}",
                content=content,
                metadata={"task_id": task_id, "status": status},
            )
        )
        logger.debug(f"Subagent [{task_id}] announced result to {channel}:{chat_id}")

    def _build_subagent_prompt(self, task: str) -> str:
        return f"""# Subagent

You are a subagent spawned by the main agent to complete a specific task.

## Your Task
{task}

## Rules
1. Stay focused - complete only the assigned task, nothing else
2. Your final response will be reported back to the main agent
3. Do not initiate conversations or take on side tasks
4. Be concise but informative in your findings

## What You Can Do
- Read and write files in the workspace
- Execute shell commands
- Search the web and fetch web pages

## What You Cannot Do
- Send messages directly to users (no message tool available)
- Spawn other subagents
- Access the main agent's conversation history

## Workspace
Your workspace is at: {self.workspace}

When you have completed the task, provide a clear summary of your findings or actions."""

    @property
    def running_count(self) -> int:
        return len(self._running_tasks)

    async def cancel_all(self) -> None:
        """Cancel running subagents (used on shutdown)."""
        tasks = list(self._asyncio_tasks.values())
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
