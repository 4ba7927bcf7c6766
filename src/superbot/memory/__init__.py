"""Memory files and conversation sessions."""

from superbot.memory.sessions import Session, SessionManager
from superbot.memory.store import MemoryStore

__all__ = ["MemoryStore", "Session", "SessionManager"]
