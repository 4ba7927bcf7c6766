"""
In-process queues that connect channels to the agent.

Both directions are unbounded FIFO queues. Publishing never blocks and
never drops; consuming waits up to a timeout and raises
``asyncio.TimeoutError`` when nothing arrived, which callers treat as
"idle, poll again".
"""

import asyncio
import logging
from typing import Generic, Self, TypeVar

from superbot.bus.events import InboundMessage, OutboundMessage

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AsyncQueue(Generic[T]):
    """FIFO queue with non-blocking push and awaitable pop-with-timeout."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[T] = asyncio.Queue()

    def push(self, item: T) -> None:
        """Enqueue immediately, waking the longest-waiting consumer."""
        self._queue.put_nowait(item)

    async def pop(self, timeout: float | None = None) -> T:
        """
        Wait for the next item.

        Args:
            timeout: Seconds to wait. None blocks forever.

        Raises:
            asyncio.TimeoutError: No item arrived within ``timeout``.
        """
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    @property
    def size(self) -> int:
        return self._queue.qsize()


class MessageBus:
    """
    Two independent queues:
    - inbound: user messages waiting for the agent
    - outbound: replies waiting for a channel
    """

    def __init__(self) -> None:
        self._inbound: AsyncQueue[InboundMessage] = AsyncQueue()
        self._outbound: AsyncQueue[OutboundMessage] = AsyncQueue()
        self._running = False

    def publish_inbound(self, msg: InboundMessage) -> None:
        """Publish a message from a channel to the agent."""
        logger.debug(f"Bus: inbound from {msg.channel}:{msg.chat_id}")
        self._inbound.push(msg)

    def publish_outbound(self, msg: OutboundMessage) -> None:
        """Queue a reply for delivery."""
        logger.debug(f"Bus: outbound to {msg.channel}:{msg.chat_id}")
        self._outbound.push(msg)

    async def consume_inbound(self, timeout: float | None = 1.0) -> InboundMessage:
        """
        Next message for the agent.

        Args:
            timeout: Seconds to wait. None blocks forever.
        """
        return await self._inbound.pop(timeout)

    async def consume_outbound(self, timeout: float | None = 1.0) -> OutboundMessage:
        """Next reply for the dispatcher."""
        return await self._outbound.pop(timeout)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def inbound_size(self) -> int:
        """Messages waiting for the agent."""
        return self._inbound.size

    @property
    def outbound_size(self) -> int:
        """Replies waiting for dispatch."""
        return self._outbound.size

    def start(self) -> Self:
        """Mark the bus started; returns self for chaining."""
        self._running = True
        return self

    async def stop(self) -> None:
        """Mark the bus stopped. Queued messages are kept."""
        self._running = False
