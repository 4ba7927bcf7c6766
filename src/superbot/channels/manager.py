"""
Channel manager: starts channels, dispatches replies, restarts dead channels.
"""

import asyncio
import logging
from typing import Any

from superbot.bus.events import OutboundMessage
from superbot.bus.queue import MessageBus
from superbot.channels.base import BaseChannel

logger = logging.getLogger(__name__)


class ChannelManager:
    """
    Owns every enabled channel.

    - Builds channels from their config
    - Routes outbound messages by `channel` name
    - Retries channel start with exponential backoff
    - Periodically restarts channels that stopped running
    """

    MAX_START_RETRIES = 3
    MONITOR_INTERVAL_S = 30

    def __init__(self, bus: MessageBus):
        self.bus = bus
        self.channels: dict[str, BaseChannel] = {}
        self._factories: dict[str, tuple[type[BaseChannel], dict[str, Any]]] = {}
        self._dispatcher_task: asyncio.Task[None] | None = None
        self._monitor_task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def enabled_channels(self) -> list[str]:
        return list(self.channels)

    def init_channel(self, name: str, channel_class: type[BaseChannel], config: dict[str, Any]) -> None:
        """Create a channel if its config says it's enabled."""
        if not config.get("enabled", False):
            logger.debug(f"Channel {name} disabled")
            return

        self.channels[name] = channel_class(name, self.bus, config)
        self._factories[name] = (channel_class, config)
        logger.info(f"Channel {name} enabled")

    def add_channel(self, channel: BaseChannel) -> None:
        """Register an already-built channel (no automatic restart)."""
        self.channels[channel.name] = channel

    async def _start_channel_with_retry(self, name: str, channel: BaseChannel) -> bool:
        for attempt in range(1, self.MAX_START_RETRIES + 1):
            try:
                await channel.start()
                logger.info(f"{name} channel started")
                return True
            except Exception as e:
                logger.error(f"{name} channel failed (attempt {attempt}/{self.MAX_START_RETRIES}): {e}")
                if attempt < self.MAX_START_RETRIES:
                    await asyncio.sleep(2 ** (attempt - 1))
        logger.error(f"{name} channel failed permanently after {self.MAX_START_RETRIES} attempts")
        return False

    async def start_all(self) -> None:
        """Start channels, then the outbound dispatcher and health monitor."""
        self._running = True
        if not self.channels:
            logger.warning("No channels enabled")

        for name, channel in self.channels.items():
            await self._start_channel_with_retry(name, channel)

        self._dispatcher_task = asyncio.create_task(self._dispatch_loop())
        self._monitor_task = asyncio.create_task(self._monitor_channels())

    async def _monitor_channels(self) -> None:
        while self._running:
            await asyncio.sleep(self.MONITOR_INTERVAL_S)
            for name, channel in list(self.channels.items()):
                if channel.is_running or not self._running or name not in self._factories:
                    continue
                logger.warning(f"{name} channel appears down, attempting restart")
                cls, config = self._factories[name]
                replacement = cls(name, self.bus, config)
                if await self._start_channel_with_retry(name, replacement):
                    self.channels[name] = replacement
                    logger.info(f"{name} channel reconnected")

    async def stop_all(self) -> None:
        self._running = False

        for task in (self._monitor_task, self._dispatcher_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        for name, channel in self.channels.items():
            try:
                await channel.stop()
                logger.info(f"{name} channel stopped")
            except Exception as e:
                logger.error(f"{name} channel stop failed: {e}")

    async def _dispatch_loop(self) -> None:
        """Move outbound messages from the bus to their channels."""
        while self._running:
            try:
                msg = await self.bus.consume_outbound(timeout=1.0)
            except asyncio.TimeoutError:
                continue
            await self.dispatch(msg)

    async def dispatch(self, msg: OutboundMessage) -> bool:
        """
        Deliver one outbound message.

        Returns:
            False if the channel is unknown or sending failed.
        """
        channel = self.channels.get(msg.channel)
        if channel is None:
            logger.warning(f"Unknown channel: {msg.channel}")
            return False

        try:
            await channel.send(msg)
        except Exception as e:
            logger.error(f"Error sending to {msg.channel}: {e}")
            return False
        return True

    def get_status(self) -> dict[str, dict[str, Any]]:
        """Per-channel status for the health endpoint."""
        return {
            name: {"running": channel.is_running, "type": type(channel).__name__}
            for name, channel in self.channels.items()
        }
