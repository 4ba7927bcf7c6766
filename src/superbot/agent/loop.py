"""
Agent loop: the core processing engine.
"""

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from superbot.agent.context import ContextBuilder
from superbot.agent.runner import run_tool_loop
from superbot.agent.subagent import SubagentManager
from superbot.bus.events import SYSTEM_CHANNEL, InboundMessage, OutboundMessage
from superbot.bus.queue import MessageBus
from superbot.config.schema import ExecConfig
from superbot.memory.sessions import SessionManager
from superbot.providers.base import LLMProvider
from superbot.tools import (
    EditFileTool,
    ExecTool,
    ListDirTool,
    MessageTool,
    ReadFileTool,
    ScheduleTool,
    SpawnTool,
    ToolRegistry,
    WebFetchTool,
    WebSearchTool,
    WriteFileTool,
)
from superbot.tools.base import current_conversation

if TYPE_CHECKING:
    from superbot.cron.service import CronService

logger = logging.getLogger(__name__)

NO_RESPONSE = "I've completed processing but have no response to give."
BACKGROUND_DONE = "Background task completed."
APOLOGY = "Sorry, I encountered an error while processing your message."


def _split_key(key: str, default_channel: str = "cli") -> tuple[str, str]:
    """Split "channel:chat_id" on the first colon."""
    if ":" in key:
        channel, chat_id = key.split(":", 1)
        return channel, chat_id
    return default_channel, key


class AgentLoop:
    """
    Consumes inbound messages and produces replies.

    For each message:
    1. Resolve the target conversation and load its session
    2. Build the system prompt, history and the new user turn
    3. Call the provider, executing requested tools in order
    4. Persist the user turn and the final answer
    5. Publish the reply on the bus
    """

    def __init__(
        self,
        bus: MessageBus,
        provider: LLMProvider,
        workspace: Path,
        session_manager: SessionManager | None = None,
        model: str | None = None,
        max_iterations: int = 20,
        memory_window: int = 50,
        brave_api_key: str | None = None,
        exec_config: ExecConfig | None = None,
        cron_service: "CronService | None" = None,
        subagent_max_iterations: int = 15,
    ):
        self.bus = bus
        self.provider = provider
        self.workspace = Path(workspace)
        self.model = model or provider.get_default_model()
        self.max_iterations = max_iterations
        self.memory_window = memory_window
        self.brave_api_key = brave_api_key
        self.exec_config = exec_config or ExecConfig()
        self.cron_service = cron_service

        self.context = ContextBuilder(self.workspace)
        self.sessions = session_manager or SessionManager(self.workspace)
        self.tools = ToolRegistry()
        self.subagents = SubagentManager(
            provider=provider,
            workspace=self.workspace,
            bus=bus,
            model=self.model,
            brave_api_key=brave_api_key,
            exec_config=self.exec_config,
            max_iterations=subagent_max_iterations,
        )

        self._running = False
        self._register_default_tools()

    def _register_default_tools(self) -> None:
        allowed_dir = self.workspace if self.exec_config.restrict_to_workspace else None
        self.tools.register(ReadFileTool(workspace=self.workspace, allowed_dir=allowed_dir))
        self.tools.register(WriteFileTool(workspace=self.workspace, allowed_dir=allowed_dir))
        self.tools.register(EditFileTool(workspace=self.workspace, allowed_dir=allowed_dir))
        self.tools.register(ListDirTool(workspace=self.workspace, allowed_dir=allowed_dir))

        self.tools.register(
            ExecTool(
                working_dir=self.workspace,
                timeout=self.exec_config.timeout,
                restrict_to_workspace=self.exec_config.restrict_to_workspace,
            )
        )

        self.tools.register(WebSearchTool(api_key=self.brave_api_key))
        self.tools.register(WebFetchTool())

        self.tools.register(MessageTool(send_callback=self.bus.publish_outbound, workspace=self.workspace))
        self.tools.register(SpawnTool(manager=self.subagents))

        if self.cron_service is not None:
            self.tools.register(ScheduleTool(cron=self.cron_service))

    async def _run_turn(self, messages: list[dict], channel: str, chat_id: str) -> str | None:
        """Run the tool loop with message/spawn/schedule bound to this chat."""
        token = current_conversation.set((channel, chat_id))
        try:
            final_content, _ = await run_tool_loop(
                self.provider,
                self.tools,
                messages,
                model=self.model,
                max_iterations=self.max_iterations,
            )
        finally:
            current_conversation.reset(token)
        return final_content

    @property
    def running(self) -> bool:
        return self._running

    async def run(self) -> None:
        """Consume inbound messages until `stop()` is called."""
        self._running = True
        logger.info("Agent loop started")

        while self._running:
            try:
                msg = await self.bus.consume_inbound(timeout=1.0)
            except asyncio.TimeoutError:
                continue

            try:
                response = await self.process_message(msg)
            except Exception as e:
                logger.exception(f"Error processing message from {msg.channel}:{msg.chat_id}")
                if msg.channel != SYSTEM_CHANNEL:
                    self.bus.publish_outbound(
                        OutboundMessage(
                            channel=msg.channel,
                            chat_id=msg.chat_id,
                            content=f"{APOLOGY} ({e})",
                        )
                    )
                continue

            self.bus.publish_outbound(response)

        logger.info("Agent loop stopped")

    def stop(self) -> None:
        self._running = False

    async def process_message(self, msg: InboundMessage) -> OutboundMessage:
        """
        Run one full turn for an inbound message.

        Args:
            msg: Message from a channel, or a `system` announcement.

        Returns:
            The reply, addressed to the originating conversation.
        """
        if msg.channel == SYSTEM_CHANNEL:
            return await self._process_system_message(msg)

        preview = msg.content[:80] + "..." if len(msg.content) > 80 else msg.content
        logger.info(f"Processing message from {msg.channel}:{msg.sender_id}: {preview}")

        session = self.sessions.get_or_create(msg.session_key)

        if msg.metadata.get("command") == "reset":
            session.clear()
            self.sessions.save(session)
            logger.info(f"Session {msg.session_key} reset")
            return OutboundMessage(channel=msg.channel, chat_id=msg.chat_id, content="")

        messages = self.context.build_messages(
            history=session.get_history(self.memory_window),
            current_message=msg.content,
            media=msg.media or None,
        )

        final_content = await self._run_turn(messages, msg.channel, msg.chat_id)
        if final_content is None:
            final_content = NO_RESPONSE

        preview = final_content[:120] + "..." if len(final_content) > 120 else final_content
        logger.info(f"Response to {msg.channel}:{msg.sender_id}: {preview}")

        session.add_message("user", msg.content)
        session.add_message("assistant", final_content)
        self.sessions.save(session)

        return OutboundMessage(
            channel=msg.channel,
            chat_id=msg.chat_id,
            content=final_content,
            metadata=msg.metadata or {},
        )

    async def _process_system_message(self, msg: InboundMessage) -> OutboundMessage:
        """
        Handle an announcement on the `system` channel.

        The chat_id carries the original "channel:chat_id", so the reply
        lands in the conversation that started the background work.
        """
        logger.info(f"Processing system message from {msg.sender_id}")

        origin_channel, origin_chat_id = _split_key(msg.chat_id)
        session_key = f"{origin_channel}:{origin_chat_id}"
        session = self.sessions.get_or_create(session_key)

        messages = self.context.build_messages(
            history=session.get_history(self.memory_window),
            current_message=msg.content,
        )

        final_content = await self._run_turn(messages, origin_channel, origin_chat_id)
        if final_content is None:
            final_content = BACKGROUND_DONE

        session.add_message("user", f"[System: {msg.sender_id}] {msg.content}")
        session.add_message("assistant", final_content)
        self.sessions.save(session)

        return OutboundMessage(channel=origin_channel, chat_id=origin_chat_id, content=final_content)

    async def process_direct(self, content: str, session_key: str = "cli:direct") -> str:
        """
        Run one turn outside the bus (CLI, cron, heartbeat).

        Args:
            content: The message text.
            session_key: "channel:chat_id" identifying the session.

        Returns:
            The reply text. Nothing is published.
        """
        channel, chat_id = _split_key(session_key)
        msg = InboundMessage(channel=channel, sender_id="user", chat_id=chat_id, content=content)
        response = await self.process_message(msg)
        return response.content
