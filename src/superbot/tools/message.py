"""
Tool: message

Allows the agent to send messages to any channel/chat.
"""

import logging
from pathlib import Path
from typing import Any, Callable

from superbot.bus.events import OutboundMessage
from superbot.tools.base import ConversationTool

logger = logging.getLogger(__name__)


class MessageTool(ConversationTool):
    """
    Send a message through the bus.

    Defaults to the conversation currently being processed.
    """

    def __init__(
        self,
        send_callback: Callable[[OutboundMessage], None] | None = None,
        workspace: Path | None = None,
    ):
        super().__init__()
        self._send_callback = send_callback
        self._workspace = Path(workspace) if workspace else None

    def set_send_callback(self, callback: Callable[[OutboundMessage], None]) -> None:
        self._send_callback = callback

    @property
    def name(self) -> str:
        return "message"

    @property
    def description(self) -> str:
        return "Send a message to the user. Use this when you want to communicate something."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "content": {"type": "string", "description": "The message content to send"},
                "channel": {
                    "type": "string",
                    "description": "Optional: target channel (telegram, whatsapp, etc.)",
                },
                "chat_id": {"type": "string", "description": "Optional: target chat/user ID"},
                "media": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Optional list of file paths to attach",
                },
            },
            "required": ["content"],
        }

    async def execute(
        self,
        content: str,
        channel: str | None = None,
        chat_id: str | None = None,
        media: list[str] | None = None,
        **kwargs: Any,
    ) -> str:
        default_channel, default_chat_id = self.conversation
        target_channel = channel or default_channel
        target_chat_id = chat_id or default_chat_id

        if not target_channel or not target_chat_id:
            return "Error: No target channel/chat specified"

        if self._send_callback is None:
            return "Error: Message sending not configured"

        # Relative attachment paths are taken from the workspace
        resolved_media = []
        for p_str in media or []:
            p = Path(p_str).expanduser()
            if not p.is_absolute() and self._workspace is not None:
                p = self._workspace / p
            resolved_media.append(str(p))

        logger.info(f"message tool: {target_channel}:{target_chat_id} ({len(resolved_media)} attachments)")
        try:
            self._send_callback(
                OutboundMessage(
                    channel=target_channel,
                    chat_id=target_chat_id,
                    content=content,
                    media=resolved_media,
                )
            )
        except Exception as e:
            return f"Error sending message: {e}"
        return f"Message sent to {target_channel}:{target_chat_id}"
