"""Pydantic schemas for tool descriptors and tool call results."""

import enum
import json
from typing import Any

from pydantic import Field

from shopchat.schemas.common import BaseSchema


def _empty_object_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}}


class ToolDescriptor(BaseSchema):
    """A tool advertised by a tool server's ``tools/list``."""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=_empty_object_schema)

    @classmethod
    def from_wire(cls, raw: dict[str, Any]) -> "ToolDescriptor":
        """Normalize a wire descriptor that uses ``inputSchema`` or ``input_schema``."""
        schema = raw.get("inputSchema") or raw.get("input_schema") or _empty_object_schema()
        return cls(
            name=raw["name"],
            description=raw.get("description") or "",
            input_schema=schema,
        )

    def to_llm_tool(self) -> dict[str, Any]:
        """Render as a function tool for ``bind_tools``."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }


class ToolErrorType(str, enum.Enum):
    """Tool failure kinds surfaced to the turn engine."""

    AUTH_REQUIRED = "auth_required"
    INTERNAL_ERROR = "internal_error"


class ToolError(BaseSchema):
    """Error half of a tool result."""

    type: ToolErrorType
    data: str


class ToolResult(BaseSchema):
    """Outcome of one tool call: either ``content`` or ``error``."""

    content: list[dict[str, Any]] | None = None
    error: ToolError | None = None

    @classmethod
    def success(cls, raw: Any) -> "ToolResult":
        """Wrap an unwrapped JSON-RPC result as a success envelope.

        Content that is not a list of blocks is passed on as JSON text.
        """
        if isinstance(raw, dict):
            content = raw.get("content")
            if isinstance(content, list) and all(isinstance(block, dict) for block in content):
                return cls(content=content)
        return cls(content=[{"type": "text", "text": raw if isinstance(raw, str) else json.dumps(raw)}])

    @classmethod
    def auth_required(cls, data: str) -> "ToolResult":
        return cls(error=ToolError(type=ToolErrorType.AUTH_REQUIRED, data=data))

    @classmethod
    def internal_error(cls, data: str) -> "ToolResult":
        return cls(error=ToolError(type=ToolErrorType.INTERNAL_ERROR, data=data))

    @property
    def is_auth_required(self) -> bool:
        return self.error is not None and self.error.type == ToolErrorType.AUTH_REQUIRED
