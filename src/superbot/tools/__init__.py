"""Agent tools."""

from superbot.tools.base import ConversationTool, Tool
from superbot.tools.filesystem import EditFileTool, ListDirTool, ReadFileTool, WriteFileTool
from superbot.tools.message import MessageTool
from superbot.tools.registry import ToolRegistry
from superbot.tools.schedule import ScheduleTool
from superbot.tools.shell import ExecTool
from superbot.tools.spawn import SpawnTool
from superbot.tools.web import WebFetchTool, WebSearchTool

__all__ = [
    "Tool",
    "ConversationTool",
    "ToolRegistry",
    "ReadFileTool",
    "WriteFileTool",
    "EditFileTool",
    "ListDirTool",
    "ExecTool",
    "WebSearchTool",
    "WebFetchTool",
    "MessageTool",
    "SpawnTool",
    "ScheduleTool",
]
