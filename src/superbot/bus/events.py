"""
Envelopes passed over the message bus.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


SYSTEM_CHANNEL = "system"


@dataclass(frozen=True)
class InboundMessage:
    """Message from a channel to the agent."""

    channel: str  # telegram, whatsapp, cli, system
    sender_id: str
    chat_id: str
    content: str
    media: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def session_key(self) -> str:
        """Key for session storage: channel:chat_id"""
        return f"{self.channel}:{self.chat_id}"


@dataclass
class OutboundMessage:
    """Message from the agent to a channel."""

    channel: str
    chat_id: str
    content: str
    reply_to: str | None = None
    media: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
