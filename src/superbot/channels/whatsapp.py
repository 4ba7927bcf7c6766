"""
WhatsApp channel: talks JSON over a WebSocket to the Node.js bridge.

The bridge owns the WhatsApp Web session. Events it sends:

    {"type": "message", "sender", "content", "id", "timestamp", "isGroup"}
    {"type": "status", "status"}
    {"type": "qr", "qr"}
    {"type": "error", "error"}

Replies go back as {"type": "send", "to", "text"}.
"""

import asyncio
import json
import logging
from typing import Any

import aiohttp

from superbot.bus.events import OutboundMessage
from superbot.bus.queue import MessageBus
from superbot.channels.base import BaseChannel

logger = logging.getLogger(__name__)

RECONNECT_DELAY_S = 5.0


class WhatsAppChannel(BaseChannel):
    """WhatsApp via the bridge; reconnects while the channel is running."""

    def __init__(self, name: str, bus: MessageBus, config: dict[str, Any]):
        super().__init__(name, bus, config)
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._task: asyncio.Task[None] | None = None
        self._connected = False

    @property
    def bridge_url(self) -> str:
        return self.config.get("bridge_url", "ws://localhost:3001")

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def start(self) -> None:
        self._running = True
        self._session = aiohttp.ClientSession()
        self._task = asyncio.create_task(self._connection_loop())
        logger.info(f"WhatsApp channel started (bridge {self.bridge_url})")

    async def _connection_loop(self) -> None:
        assert self._session is not None
        while self._running:
            try:
                async with self._session.ws_connect(self.bridge_url, heartbeat=30) as ws:
                    self._ws = ws
                    self._connected = True
                    logger.info("WhatsApp bridge connected")
                    async for frame in ws:
                        if frame.type == aiohttp.WSMsgType.TEXT:
                            try:
                                self._on_frame(frame.data)
                            except Exception:
                                logger.exception("WhatsApp frame handling failed")
                        elif frame.type == aiohttp.WSMsgType.ERROR:
                            logger.error(f"WhatsApp WebSocket error: {ws.exception()}")
                            break
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error(f"WhatsApp connect error: {e!r}")
            except Exception:
                logger.exception("WhatsApp connection failed")
            finally:
                self._ws = None
                self._connected = False

            if self._running:
                logger.info(f"WhatsApp bridge disconnected, reconnecting in {RECONNECT_DELAY_S:.0f}s")
                await asyncio.sleep(RECONNECT_DELAY_S)

    def _on_frame(self, raw: str) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"WhatsApp message parse error: {e}")
            return
        if isinstance(data, dict):
            self._handle_bridge_message(data)

    def _handle_bridge_message(self, data: dict[str, Any]) -> None:
        kind = data.get("type")

        if kind == "message":
            sender = str(data.get("sender", ""))
            self._handle_message(
                sender_id=sender,
                chat_id=sender,
                content=data.get("content", ""),
                metadata={
                    "message_id": data.get("id"),
                    "timestamp": data.get("timestamp"),
                    "is_group": bool(data.get("isGroup", False)),
                },
            )
        elif kind == "status":
            status = data.get("status")
            logger.info(f"WhatsApp status: {status}")
            self._connected = status == "connected"
        elif kind == "qr":
            logger.info("WhatsApp QR code received (scan it in the bridge terminal)")
        elif kind == "error":
            logger.error(f"WhatsApp bridge error: {data.get('error')}")
        else:
            logger.debug(f"Ignoring bridge event: {kind}")

    async def stop(self) -> None:
        self._running = False
        self._connected = False
        if self._ws is not None:
            await self._ws.close()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._session is not None:
            await self._session.close()
            self._session = None
        logger.info("WhatsApp channel stopped")

    async def send(self, msg: OutboundMessage) -> None:
        if self._ws is None or not self._connected:
            logger.warning("WhatsApp not connected, cannot send")
            return
        if not msg.content:
            return
        await self._ws.send_str(json.dumps({"type": "send", "to": msg.chat_id, "text": msg.content}))
