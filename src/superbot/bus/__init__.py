"""Message bus for decoupling channels from agent."""

from superbot.bus.events import SYSTEM_CHANNEL, InboundMessage, OutboundMessage
from superbot.bus.queue import AsyncQueue, MessageBus

__all__ = [
    "SYSTEM_CHANNEL",
    "InboundMessage",
    "OutboundMessage",
    "AsyncQueue",
    "MessageBus",
]
