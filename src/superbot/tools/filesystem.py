"""
Filesystem tools: read_file, write_file, edit_file, list_dir.
"""

from pathlib import Path
from typing import Any

from superbot.tools.base import Tool


def _resolve_path(path: str, workspace: Path | None, allowed_dir: Path | None) -> Path:
    """
    Resolve a tool path against the workspace.

    Relative paths are taken from the workspace; `~` is expanded.

    Raises:
        PermissionError: The path escapes `allowed_dir`.
    """
    p = Path(path).expanduser()
    if not p.is_absolute() and workspace is not None:
        p = workspace / p
    resolved = p.resolve()
    if allowed_dir is not None:
        root = allowed_dir.resolve()
        if resolved != root and root not in resolved.parents:
            raise PermissionError(f"Path {path} is outside allowed directory {root}")
    return resolved


class _FileTool(Tool):
    def __init__(self, workspace: Path | None = None, allowed_dir: Path | None = None):
        self._workspace = Path(workspace) if workspace else None
        self._allowed_dir = Path(allowed_dir) if allowed_dir else None

    def _resolve(self, path: str) -> Path:
        return _resolve_path(path, self._workspace, self._allowed_dir)


class ReadFileTool(_FileTool):
    """Read the contents of a file."""

    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return (
            "Read the complete contents of a file. ALWAYS use this tool for "
            "reading files instead of guessing or assuming file contents."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The file path to read"},
            },
            "required": ["path"],
        }

    async def execute(self, path: str, **kwargs: Any) -> str:
        try:
            file_path = self._resolve(path)
            if not file_path.exists():
                return f"Error: File not found: {path}"
            if not file_path.is_file():
                return f"Error: Not a file: {path}"
            return file_path.read_text(encoding="utf-8")
        except PermissionError as e:
            return f"Error: {e}"
        except Exception as e:
            return f"Error reading file: {e}"


class WriteFileTool(_FileTool):
    """Write a file, creating parent directories."""

    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return (
            "Write content to a file. Creates parent directories if needed. "
            "ALWAYS use this tool for writing or creating files."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The file path to write to"},
                "content": {"type": "string", "description": "The content to write"},
            },
            "required": ["path", "content"],
        }

    async def execute(self, path: str, content: str, **kwargs: Any) -> str:
        try:
            file_path = self._resolve(path)
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(content, encoding="utf-8")
            return f"Successfully wrote {len(content)} bytes to {path}"
        except PermissionError as e:
            return f"Error: {e}"
        except Exception as e:
            return f"Error writing file: {e}"


class EditFileTool(_FileTool):
    """Replace one exact occurrence of text in a file."""

    @property
    def name(self) -> str:
        return "edit_file"

    @property
    def description(self) -> str:
        return (
            "Edit a file by replacing old_text with new_text. The old_text must "
            "exist exactly once in the file. ALWAYS use this tool for file modifications."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The file path to edit"},
                "old_text": {"type": "string", "description": "The exact text to find and replace"},
                "new_text": {"type": "string", "description": "The text to replace with"},
            },
            "required": ["path", "old_text", "new_text"],
        }

    async def execute(self, path: str, old_text: str, new_text: str, **kwargs: Any) -> str:
        try:
            file_path = self._resolve(path)
            if not file_path.exists():
                return f"Error: File not found: {path}"

            content = file_path.read_text(encoding="utf-8")
            if old_text not in content:
                return "Error: old_text not found in file. Make sure it matches exactly."

            count = content.count(old_text)
            if count > 1:
                return (
                    f"Warning: old_text appears {count} times. "
                    "Please provide more context to make it unique."
                )

            file_path.write_text(content.replace(old_text, new_text, 1), encoding="utf-8")
            return f"Successfully edited {path}"
        except PermissionError as e:
            return f"Error: {e}"
        except Exception as e:
            return f"Error editing file: {e}"


class ListDirTool(_FileTool):
    """List directory entries."""

    @property
    def name(self) -> str:
        return "list_dir"

    @property
    def description(self) -> str:
        return (
            "List the contents of a directory. ALWAYS use this tool when asked to "
            "show folder contents. Do not guess directory contents."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "The directory path to list"},
            },
            "required": ["path"],
        }

    async def execute(self, path: str, **kwargs: Any) -> str:
        try:
            dir_path = self._resolve(path)
            if not dir_path.exists():
                return f"Error: Directory not found: {path}"
            if not dir_path.is_dir():
                return f"Error: Not a directory: {path}"

            items = sorted(dir_path.iterdir(), key=lambda p: p.name)
            if not items:
                return f"Directory {path} is empty"

            return "\n".join(
                f"{'📁' if item.is_dir() else '📄'} {item.name}" for item in items
            )
        except PermissionError as e:
            return f"Error: {e}"
        except Exception as e:
            return f"Error listing directory: {e}"
