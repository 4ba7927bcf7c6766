"""
HTTP liveness endpoint for a running gateway.

Served with plain asyncio streams.
"""

import asyncio
import json
import logging
import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from superbot.agent.subagent import SubagentManager
    from superbot.bus.queue import MessageBus
    from superbot.channels.manager import ChannelManager

logger = logging.getLogger(__name__)

_REASONS = {200: "OK", 404: "Not Found"}


class HealthServer:
    """
    Answers GET /health with a JSON snapshot of the gateway.

    Response includes:
    - status: "ok", or "degraded" when an enabled channel is down
    - uptime_s: seconds since the server started
    - channels: name -> {enabled, running}
    - queues: inbound/outbound bus depths
    - subagents: number of running background tasks
    """

    def __init__(
        self,
        bus: "MessageBus | None" = None,
        channels: "ChannelManager | None" = None,
        subagents: "SubagentManager | None" = None,
        host: str = "0.0.0.0",
        port: int = 8080,
    ):
        self._bus = bus
        self._channels = channels
        self._subagents = subagents
        self._host = host
        self._port = port
        self._start_time = time.monotonic()
        self._server: asyncio.Server | None = None

    def build_health(self) -> dict[str, Any]:
        channel_status = self._channels.get_status() if self._channels else {}
        healthy = all(ch.get("running", False) for ch in channel_status.values())

        queues = {}
        if self._bus is not None:
            queues = {"inbound": self._bus.inbound_size, "outbound": self._bus.outbound_size}

        return {
            "status": "ok" if healthy else "degraded",
            "uptime_s": round(time.monotonic() - self._start_time, 1),
            "channels": channel_status,
            "queues": queues,
            "subagents": self._subagents.running_count if self._subagents else 0,
        }

    @staticmethod
    def _render(status: int, payload: dict[str, Any]) -> bytes:
        body = json.dumps(payload, indent=2).encode("utf-8")
        head = (
            f"HTTP/1.1 {status} {_REASONS[status]}\r\n"
            "Content-Type: application/json\r\n"
            f"Content-Length: {len(body)}\r\n"
            "Connection: close\r\n"
            "\r\n"
        )
        return head.encode("ascii") + body

    async def _handle_request(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        try:
            request_line = await asyncio.wait_for(reader.readline(), timeout=5)
            request = request_line.decode("utf-8", errors="replace").strip()

            # Headers are ignored
            while True:
                line = await asyncio.wait_for(reader.readline(), timeout=5)
                if line in (b"\r\n", b"\n", b""):
                    break

            if request.startswith("GET /health"):
                writer.write(self._render(200, self.build_health()))
            else:
                writer.write(self._render(404, {"error": "Not found"}))
            await writer.drain()
        except (asyncio.TimeoutError, ConnectionError) as e:
            logger.debug(f"Health request aborted: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def start(self) -> None:
        """Start serving; runs until cancelled."""
        self._start_time = time.monotonic()
        self._server = await asyncio.start_server(self._handle_request, self._host, self._port)
        logger.info(f"Health endpoint listening on http://{self._host}:{self._port}/health")
        await self._server.serve_forever()

    async def stop(self) -> None:
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
