from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Protocol

from steward.context import RunContext


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    args: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": json.dumps(self.args, default=str)}


@dataclass(frozen=True)
class ToolResult:
    tool_call_id: str
    name: str
    status: str
    content: str
    started_at: str = ""
    ended_at: str = ""


class ToolService(Protocol):
    def execute_tools(self, context: RunContext, tool_calls: list[ToolCall]) -> list[ToolResult]:
        ...


def parse_tool_call(raw: Any) -> ToolCall | None:
    """Validate a tool call as returned by a chat-completions style API.

    Accepts both the nested ``{"id", "function": {"name", "arguments"}}``
    shape and the flat ``{"id", "name", "arguments"}`` shape. ``arguments``
    may be a JSON string or an object.
    """
    if not isinstance(raw, dict):
        return None
    call_id = raw.get("id")
    function = raw.get("function") if isinstance(raw.get("function"), dict) else raw
    name = function.get("name")
    arguments = function.get("arguments", function.get("args", {}))
    if not isinstance(call_id, str) or not call_id.strip():
        return None
    if not isinstance(name, str) or not name.strip():
        return None
    if isinstance(arguments, str):
        if not arguments.strip():
            arguments = {}
        else:
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError:
                return None
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        return None
    return ToolCall(id=call_id, name=name, args=arguments)

