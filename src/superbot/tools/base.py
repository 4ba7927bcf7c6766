"""
Abstract base class for agent tools.
"""

from abc import ABC, abstractmethod
from contextvars import ContextVar
from typing import Any

# (channel, chat_id) of the turn running in the current task. Each asyncio
# task sees its own value, so overlapping turns cannot redirect each other.
current_conversation: ContextVar[tuple[str, str] | None] = ContextVar("current_conversation", default=None)


class Tool(ABC):
    """
    Capability the model may invoke mid-turn.

    Tools must implement:
    - `name`: unique key used in function calls
    - `description`: what the tool does, shown to the model
    - `parameters`: JSON schema (type object, properties, required)
    - `execute()`: run the tool and return text for the model
    """

    _TYPE_MAP: dict[str, type | tuple[type, ...]] = {
        "string": str,
        "integer": int,
        "number": (int, float),
        "boolean": bool,
        "array": list,
        "object": dict,
    }

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        pass

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        pass

    @abstractmethod
    async def execute(self, **kwargs: Any) -> str:
        """Run the tool with validated keyword arguments."""
        pass

    def validate_params(self, params: dict[str, Any]) -> list[str]:
        """
        Validate parameters against the tool's JSON schema.

        Returns:
            List of error messages (empty if valid).
        """
        schema = self.parameters or {}
        return self._validate(params, {**schema, "type": "object"}, "")

    def _validate(self, val: Any, schema: dict[str, Any], path: str) -> list[str]:
        errors: list[str] = []
        t = schema.get("type")
        label = path or "parameter"

        if t in self._TYPE_MAP:
            expected = self._TYPE_MAP[t]
            # bool is a subclass of int in Python
            if t in ("integer", "number") and isinstance(val, bool):
                return [f"{label} should be {t}"]
            if not isinstance(val, expected):
                return [f"{label} should be {t}"]

        if "enum" in schema and val not in schema["enum"]:
            errors.append(f"{label} must be one of {schema['enum']}")

        if t in ("integer", "number"):
            if "minimum" in schema and val < schema["minimum"]:
                errors.append(f"{label} must be >= {schema['minimum']}")
            if "maximum" in schema and val > schema["maximum"]:
                errors.append(f"{label} must be <= {schema['maximum']}")

        if t == "string":
            if "minLength" in schema and len(val) < schema["minLength"]:
                errors.append(f"{label} must be at least {schema['minLength']} chars")
            if "maxLength" in schema and len(val) > schema["maxLength"]:
                errors.append(f"{label} must be at most {schema['maxLength']} chars")

        if t == "object":
            for key in schema.get("required", []):
                if key not in val:
                    errors.append(f"missing required {path + '.' + key if path else key}")
            for key, prop in schema.get("properties", {}).items():
                if key in val:
                    errors.extend(
                        self._validate(val[key], prop, f"{path}.{key}" if path else key)
                    )

        if t == "array" and "items" in schema:
            for i, item in enumerate(val):
                errors.extend(self._validate(item, schema["items"], f"{label}[{i}]"))

        return errors

    def to_schema(self) -> dict[str, Any]:
        """Convert tool to OpenAI function schema format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ConversationTool(Tool):
    """
    Tool whose default target is the conversation being answered.

    Inside an agent turn the target comes from `current_conversation`.
    Outside one, it falls back to whatever `set_context()` last stored.
    """

    def __init__(self, channel: str = "", chat_id: str = ""):
        self._channel = channel
        self._chat_id = chat_id

    def set_context(self, channel: str, chat_id: str) -> None:
        self._channel = channel
        self._chat_id = chat_id

    @property
    def conversation(self) -> tuple[str, str]:
        return current_conversation.get() or (self._channel, self._chat_id)
