"""
Shell execution tool with safety guards.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Any

from superbot.tools.base import Tool

logger = logging.getLogger(__name__)

DENY_PATTERNS = [
    r"\brm\s+-[rf]{1,2}\b",
    r"\bdel\s+/[fq]\b",
    r"\brmdir\s+/s\b",
    r"\b(format|mkfs|diskpart)\b",
    r"\bdd\s+if=",
    r">\s*/dev/sd",
    r"\b(shutdown|reboot|poweroff)\b",
    r":\(\)\s*\{.*\};\s*:",  # fork bomb
]

MAX_OUTPUT_CHARS = 10_000


class ExecTool(Tool):
    """
    Run a shell command in the workspace.

    Commands matching a deny pattern are refused. With
    `restrict_to_workspace`, commands that traverse upward or name
    absolute paths outside the working directory are refused too.
    """

    def __init__(
        self,
        working_dir: str | Path | None = None,
        timeout: int = 60,
        restrict_to_workspace: bool = False,
    ):
        self.working_dir = str(working_dir) if working_dir else None
        self.timeout = timeout
        self.restrict_to_workspace = restrict_to_workspace

    @property
    def name(self) -> str:
        return "exec"

    @property
    def description(self) -> str:
        return "Execute a shell command and return its output. Use with caution."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "The shell command to execute"},
                "working_dir": {"type": "string", "description": "Optional working directory"},
            },
            "required": ["command"],
        }

    async def execute(self, command: str, working_dir: str | None = None, **kwargs: Any) -> str:
        cwd = working_dir or self.working_dir or str(Path.cwd())
        guard_error = self._guard_command(command, cwd)
        if guard_error:
            return guard_error

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
        except Exception as e:
            return f"Error executing command: {e}"

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning(f"exec timed out after {self.timeout}s: {command[:80]}")
            return f"Error: Command timed out after {self.timeout} seconds"

        parts = []
        if stdout:
            parts.append(stdout.decode("utf-8", errors="replace"))
        if stderr:
            err = stderr.decode("utf-8", errors="replace")
            if err.strip():
                parts.append(f"STDERR:\n{err}")
        if process.returncode != 0:
            parts.append(f"\nExit code: {process.returncode}")

        result = "\n".join(parts) if parts else "(no output)"
        if len(result) > MAX_OUTPUT_CHARS:
            extra = len(result) - MAX_OUTPUT_CHARS
            result = result[:MAX_OUTPUT_CHARS] + f"\n... (truncated, {extra} more chars)"
        return result

    def _guard_command(self, command: str, cwd: str) -> str | None:
        """Return an error string if the command is blocked, else None."""
        cmd = command.strip()
        lower = cmd.lower()

        for pattern in DENY_PATTERNS:
            if re.search(pattern, lower):
                return "Error: Command blocked by safety guard (dangerous pattern detected)"

        if self.restrict_to_workspace:
            if "../" in cmd or "..\\" in cmd:
                return "Error: Command blocked by safety guard (path traversal detected)"

            root = Path(self.working_dir or cwd).resolve()
            for raw in re.findall(r"(?:^|\s)(/[^\s\"']+|~[^\s\"']*)", cmd):
                try:
                    p = Path(raw).expanduser().resolve()
                except (OSError, RuntimeError):
                    return "Error: Command blocked by safety guard (path outside working dir)"
                if p != root and root not in p.parents:
                    return "Error: Command blocked by safety guard (path outside working dir)"

        return None
