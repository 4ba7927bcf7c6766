"""
Workspace memory files.

The agent edits these with its file tools; this module only reads them
into the system prompt (and offers a few helpers for appending notes).
"""

from datetime import date, datetime
from pathlib import Path

_DAILY_GLOB = "????-??-??.md"


class MemoryStore:
    """
    Two kinds of memory under {workspace}/memory:

    - MEMORY.md: long-lived facts about the user
    - YYYY-MM-DD.md: scratch notes for a single day
    """

    def __init__(self, workspace: Path):
        self.memory_dir = Path(workspace) / "memory"
        self.memory_dir.mkdir(parents=True, exist_ok=True)
        self.long_term_path = self.memory_dir / "MEMORY.md"

    @staticmethod
    def _read(path: Path) -> str:
        return path.read_text(encoding="utf-8", errors="replace") if path.is_file() else ""

    def read_long_term(self) -> str:
        return self._read(self.long_term_path)

    def write_long_term(self, content: str) -> None:
        self.long_term_path.write_text(content, encoding="utf-8")

    def get_today_path(self, day: date | None = None) -> Path:
        return self.memory_dir / f"{(day or date.today()).isoformat()}.md"

    def read_today(self) -> str:
        return self._read(self.get_today_path())

    def append_today(self, content: str) -> None:
        """Add a note to today's file, creating it with a date heading."""
        path = self.get_today_path()
        current = self._read(path)
        if current:
            text = f"{current}\n{content}"
        else:
            text = f"# {date.today().isoformat()}\n\n{content}"
        path.write_text(text, encoding="utf-8")

    def get_memory_context(self) -> str:
        """Markdown block for the system prompt; empty if nothing is stored."""
        sections = [
            ("Long-term Memory", self.read_long_term()),
            ("Today's Notes", self.read_today()),
        ]
        return "\n\n".join(f"## {title}\n\n{body}" for title, body in sections if body.strip())

    def list_recent_files(self, days: int = 7) -> list[tuple[str, Path]]:
        """(date, path) for the newest `days` daily files."""
        dated = []
        for path in self.memory_dir.glob(_DAILY_GLOB):
            try:
                datetime.strptime(path.stem, "%Y-%m-%d")
            except ValueError:
                continue
            dated.append((path.stem, path))
        return sorted(dated, reverse=True)[:days]
