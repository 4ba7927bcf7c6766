"""
Heartbeat service: periodic wake-up for proactive tasks.

Every interval the agent is asked to read HEARTBEAT.md and act on it.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from superbot.agent.loop import AgentLoop

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_INTERVAL_S = 30 * 60

HEARTBEAT_SESSION_KEY = "heartbeat:system"

HEARTBEAT_PROMPT = """Read HEARTBEAT.md in your workspace (if it exists).
Follow any instructions or tasks listed there.
If nothing needs attention, reply with just: HEARTBEAT_OK"""

HEARTBEAT_OK_TOKEN = "HEARTBEAT_OK"

_BARE_CHECKBOX = re.compile(r"^[-*]\s*\[[ xX]?\]\s*$")


def is_heartbeat_empty(content: str | None) -> bool:
    """
    True when HEARTBEAT.md has nothing actionable.

    Ignored lines: blanks, `#` headings, HTML comments and checkbox
    items with no text.
    """
    if not content or not content.strip():
        return True

    for line in content.split("\n"):
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or stripped.startswith("<!--"):
            continue
        if _BARE_CHECKBOX.match(stripped):
            continue
        return False

    return True


def is_heartbeat_ok(response: str | None) -> bool:
    if not response:
        return False
    normalized = response.upper().replace("_", "")
    return HEARTBEAT_OK_TOKEN.replace("_", "") in normalized


class HeartbeatService:
    """
    Periodic wake-up service.

    Every interval:
    1. Reads HEARTBEAT.md from the workspace
    2. Skips the tick if the file is missing or has nothing actionable
    3. Otherwise runs the heartbeat prompt on its own session
    4. A "HEARTBEAT_OK" reply means nothing needed doing
    """

    def __init__(
        self,
        agent: "AgentLoop",
        interval_s: int = DEFAULT_HEARTBEAT_INTERVAL_S,
        enabled: bool = True,
    ):
        self.agent = agent
        self.workspace = Path(agent.workspace)
        self.interval_s = interval_s
        self.enabled = enabled
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def heartbeat_file(self) -> Path:
        return self.workspace / "HEARTBEAT.md"

    @property
    def running(self) -> bool:
        return self._running

    def _read_heartbeat_file(self) -> str | None:
        if not self.heartbeat_file.exists():
            return None
        try:
            return self.heartbeat_file.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning(f"Heartbeat: could not read {self.heartbeat_file}: {e}")
            return None

    async def _tick(self) -> str | None:
        """Run one heartbeat check. Returns the agent's reply, if it ran."""
        if is_heartbeat_empty(self._read_heartbeat_file()):
            logger.debug("Heartbeat: no tasks (HEARTBEAT.md empty)")
            return None

        logger.info("Heartbeat: checking for tasks...")
        try:
            response = await self.agent.process_direct(
                HEARTBEAT_PROMPT,
                session_key=HEARTBEAT_SESSION_KEY,
            )
        except Exception:
            logger.exception("Heartbeat execution failed")
            return None

        if is_heartbeat_ok(response):
            logger.info("Heartbeat: OK (no action needed)")
        else:
            logger.info("Heartbeat: completed task")
        return response

    async def trigger_now(self) -> str | None:
        """Run a heartbeat immediately, regardless of schedule."""
        return await self._tick()

    async def _run_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_s)
            if not self._running:
                break
            try:
                await self._tick()
            except Exception:
                logger.exception("Heartbeat tick failed")

    async def start(self) -> None:
        if not self.enabled:
            logger.info("Heartbeat disabled")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Heartbeat started (every {self.interval_s}s)")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
