"""
Context builder: system prompt and message list for the provider.
"""

from datetime import datetime
from pathlib import Path
from typing import Any

from superbot.agent.skills import SkillsLoader
from superbot.memory.store import MemoryStore

BOOTSTRAP_FILES = ["AGENTS.md", "SOUL.md", "USER.md", "TOOLS.md", "IDENTITY.md"]


class ContextBuilder:
    """
    Assembles the system prompt from, in order:

    1. Identity (time, workspace paths, behavioral rules)
    2. Bootstrap documents present in the workspace
    3. Memory (long-term + today's notes)
    4. Always-on skills
    5. Catalog of all skills

    Sections with nothing to say are left out entirely.
    """

    def __init__(self, workspace: Path, skills: SkillsLoader | None = None):
        self.workspace = Path(workspace)
        self.memory = MemoryStore(self.workspace)
        self.skills = skills or SkillsLoader(self.workspace)

    def build_system_prompt(self) -> str:
        parts = [self._get_identity()]

        bootstrap = self._load_bootstrap_files()
        if bootstrap:
            parts.append(bootstrap)

        memory = self.memory.get_memory_context()
        if memory:
            parts.append(f"# Memory\n\n{memory}")

        always_skills = self.skills.get_always_skills()
        if always_skills:
            content = self.skills.load_skills_for_context(always_skills)
            if content:
                parts.append(f"# Active Skills\n\n{content}")

        summary = self.skills.build_skills_summary()
        if summary:
            parts.append(
                "# Skills\n\n"
                "The following skills extend your capabilities. To use a skill, "
                "read its SKILL.md file using the read_file tool.\n"
                'Skills with available="false" need dependencies installed first.\n\n'
                f"{summary}"
            )

        return "\n\n---\n\n".join(parts)

    def _get_identity(self) -> str:
        now = datetime.now().strftime("%A, %Y-%m-%d %H:%M")
        ws = self.workspace
        return f"""# superbot 🤖

You are superbot, a helpful AI assistant. You have access to tools that allow you to:
- Read, write, and edit files
- Execute shell commands
- Search the web and fetch web pages
- Send messages to users on chat channels
- Spawn subagents for complex background tasks

## Current Time
{now}

## Workspace
Your workspace is at: {ws}
- Memory files: {ws}/memory/MEMORY.md
- Daily notes: {ws}/memory/YYYY-MM-DD.md
- Custom skills: {ws}/skills/{{skill-name}}/SKILL.md

IMPORTANT: When responding to direct questions or conversations, reply directly with your text response.
Only use the 'message' tool when you need to send a message to a specific chat channel.
For normal conversation, just respond with text - do not call the message tool.

Always be helpful, accurate, and concise. When using tools, explain what you're doing."""

    def _load_bootstrap_files(self) -> str:
        parts = []
        for filename in BOOTSTRAP_FILES:
            path = self.workspace / filename
            if path.exists():
                parts.append(f"## {filename}\n\n{path.read_text(encoding='utf-8', errors='replace')}")
        return "\n\n".join(parts)

    def build_messages(
        self,
        history: list[dict[str, Any]],
        current_message: str,
        media: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """System prompt + history + the new user turn."""
        content = current_message
        if media:
            refs = "\n".join(f"[Attached file: {p}]" for p in media)
            content = f"{content}\n\n{refs}" if content else refs

        return [
            {"role": "system", "content": self.build_system_prompt()},
            *history,
            {"role": "user", "content": content},
        ]

    @staticmethod
    def add_assistant_message(
        messages: list[dict[str, Any]],
        content: str | None,
        tool_calls: list[dict[str, Any]] | None = None,
    ) -> list[dict[str, Any]]:
        msg: dict[str, Any] = {"role": "assistant", "content": content or ""}
        if tool_calls:
            msg["tool_calls"] = tool_calls
        messages.append(msg)
        return messages

    @staticmethod
    def add_tool_result(
        messages: list[dict[str, Any]],
        tool_call_id: str,
        tool_name: str,
        result: str,
    ) -> list[dict[str, Any]]:
        messages.append(
            {"role": "tool", "tool_call_id": tool_call_id, "name": tool_name, "content": result}
        )
        return messages
