"""
Interface every chat platform adapter implements.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from superbot.bus.events import InboundMessage, OutboundMessage
from superbot.bus.queue import MessageBus

logger = logging.getLogger(__name__)


class BaseChannel(ABC):
    """
    A chat platform adapter.

    Channels must implement:
    - `start()`: connect to the platform and listen for messages
    - `stop()`: clean shutdown
    - `send()`: deliver an outbound message to the platform

    Incoming messages go through `_handle_message`, which applies the
    allow-list before anything reaches the bus.
    """

    def __init__(self, name: str, bus: MessageBus, config: dict[str, Any]):
        self.name = name
        self.bus = bus
        self.config = config
        self._running = False

    @property
    def enabled(self) -> bool:
        return self.config.get("enabled", False)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def allowed_senders(self) -> list[str]:
        """Allowed sender IDs (empty = all allowed)."""
        return [str(s) for s in self.config.get("allow_from", [])]

    def is_allowed(self, sender_id: str) -> bool:
        """
        Check if a sender may talk to the agent.

        A sender id may be compound, "<id>|<username>"; matching either
        part is enough.
        """
        allowed = self.allowed_senders
        if not allowed:
            return True

        sender_str = str(sender_id)
        if sender_str in allowed:
            return True
        if "|" in sender_str:
            return any(part and part in allowed for part in sender_str.split("|"))
        return False

    @abstractmethod
    async def start(self) -> None:
        """Connect to the platform and listen for messages."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop the channel and release resources."""

    @abstractmethod
    async def send(self, msg: OutboundMessage) -> None:
        """Send an outbound message through this channel."""

    def _handle_message(
        self,
        sender_id: str,
        chat_id: str,
        content: str,
        media: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """
        Publish an incoming message to the bus if the sender is allowed.

        Returns:
            True if the message was published.
        """
        if not self.is_allowed(sender_id):
            logger.warning(f"Access denied for sender {sender_id} on channel {self.name}")
            return False

        self.bus.publish_inbound(
            InboundMessage(
                channel=self.name,
                sender_id=str(sender_id),
                chat_id=str(chat_id),
                content=content,
                media=media or [],
                metadata=metadata or {},
            )
        )
        return True
