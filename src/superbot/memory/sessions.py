"""
Persistent conversation sessions, one JSONL file per session key.

File layout: a metadata record first, then one record per message.
Files are fully rewritten on every save.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

logger = logging.getLogger(__name__)


def session_filename(key: str) -> str:
    """Reversible file name for a key: "telegram:42" -> "telegram%3A42.jsonl"."""
    return f"{quote(key, safe='')}.jsonl"


@dataclass
class Session:
    """Ordered message history for one conversation."""

    key: str
    messages: list[dict[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    def add_message(self, role: str, content: str) -> None:
        self.messages.append(
            {"role": role, "content": content, "timestamp": datetime.now().isoformat()}
        )
        self.updated_at = datetime.now()

    def get_history(self, max_messages: int = 50) -> list[dict[str, Any]]:
        """
        Trailing window of messages in LLM format.

        Oldest messages are dropped first when the session is longer
        than `max_messages`.
        """
        recent = self.messages[-max_messages:] if max_messages > 0 else []
        return [{"role": m["role"], "content": m["content"]} for m in recent]

    def clear(self) -> None:
        self.messages = []
        self.updated_at = datetime.now()


class SessionManager:
    """
    Load, cache and persist sessions under {workspace}/sessions/.

    Sessions survive restarts so users don't lose conversation context.
    """

    def __init__(self, workspace: Path):
        self.sessions_dir = Path(workspace) / "sessions"
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self._cache: dict[str, Session] = {}

    def _get_session_path(self, key: str) -> Path:
        return self.sessions_dir / session_filename(key)

    def get_or_create(self, key: str) -> Session:
        """Get a cached session, load it from disk, or create a new one."""
        if key in self._cache:
            return self._cache[key]

        session = self._load(key) or Session(key=key)
        self._cache[key] = session
        return session

    def _load(self, key: str) -> Session | None:
        path = self._get_session_path(key)
        if not path.exists():
            return None

        try:
            session = Session(key=key)
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    data = json.loads(line)
                    if data.get("_type") == "metadata":
                        session.metadata = data.get("metadata", {})
                        if data.get("created_at"):
                            session.created_at = datetime.fromisoformat(data["created_at"])
                        if data.get("updated_at"):
                            session.updated_at = datetime.fromisoformat(data["updated_at"])
                    else:
                        session.messages.append(data)
            return session
        except (json.JSONDecodeError, OSError, ValueError) as e:
            logger.warning(f"Failed to load session {key}: {e}")
            return None

    def save(self, session: Session) -> None:
        """Write the whole session to disk."""
        path = self._get_session_path(session.key)
        with open(path, "w", encoding="utf-8") as f:
            f.write(
                json.dumps(
                    {
                        "_type": "metadata",
                        "key": session.key,
                        "created_at": session.created_at.isoformat(),
                        "updated_at": session.updated_at.isoformat(),
                        "metadata": session.metadata,
                    }
                )
                + "\n"
            )
            for msg in session.messages:
                f.write(json.dumps(msg, ensure_ascii=False) + "\n")

        self._cache[session.key] = session

    def invalidate(self, key: str) -> None:
        """Drop a session from the in-memory cache."""
        self._cache.pop(key, None)

    def delete(self, key: str) -> bool:
        """Delete a session from cache and disk."""
        self._cache.pop(key, None)
        path = self._get_session_path(key)
        if path.exists():
            path.unlink()
            return True
        return False

    def list_sessions(self) -> list[dict[str, Any]]:
        """List stored sessions, most recently updated first."""
        sessions = []
        for path in self.sessions_dir.glob("*.jsonl"):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    first = f.readline()
                data = json.loads(first) if first.strip() else {}
            except (OSError, ValueError):
                continue
            if data.get("_type") != "metadata":
                continue
            sessions.append(
                {
                    "key": data.get("key") or unquote(path.stem),
                    "created_at": data.get("created_at"),
                    "updated_at": data.get("updated_at"),
                    "path": str(path),
                }
            )
        return sorted(sessions, key=lambda s: s.get("updated_at") or "", reverse=True)
