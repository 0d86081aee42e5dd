from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from steward.config import Paths, ToolSettings


Validator = Callable[[dict[str, Any]], str | None]
Handler = Callable[[dict[str, Any]], str]


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameters: dict[str, Any]
    handle: Handler
    validate_args: Validator | None = None

    def to_function_schema(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}

    def register(self, definition: ToolDefinition) -> None:
        self._tools[definition.name] = definition

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def list_tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def function_schemas(self) -> list[dict[str, Any]]:
        return [tool.to_function_schema() for tool in self.list_tools()]

    def describe_tools(self) -> str:
        lines: list[str] = []
        for tool in self.list_tools():
            args = ", ".join(tool.parameters.get("properties", {}).keys()) or "none"
            lines.append(f"- {tool.name}: {tool.description} (args: {args})")
        return "\n".join(lines)


def _resolve_root(root: Path, target: str) -> Path:
    candidate = Path(target)
    if not candidate.is_absolute():
        candidate = root / candidate
    resolved = candidate.resolve()
    root_resolved = root.resolve()
    if resolved == root_resolved or root_resolved in resolved.parents:
        return resolved
    raise ValueError("path is outside the allowed root")


def _validate_path_arg(args: dict[str, Any]) -> str | None:
    value = args.get("path")
    if not isinstance(value, str) or not value.strip():
        return "path must be a non-empty string"
    return None


def _validate_optional_path_arg(args: dict[str, Any]) -> str | None:
    if "path" in args:
        return _validate_path_arg(args)
    return None


_PATH_SCHEMA = {
    "type": "object",
    "properties": {"path": {"type": "string", "description": "Path relative to the tool root"}},
    "required": ["path"],
}


def build_default_registry(paths: Paths, settings: ToolSettings) -> ToolRegistry:
    registry = ToolRegistry()
    fs_root = Path(settings.fs_root) if settings.fs_root else paths.data_dir

    def fs_read(args: dict[str, Any]) -> str:
        path = _resolve_root(fs_root, args["path"])
        if path.stat().st_size > settings.fs_max_bytes:
            raise ValueError("file exceeds max read size")
        return path.read_text(encoding="utf-8", errors="replace")

    def fs_list(args: dict[str, Any]) -> str:
        path = _resolve_root(fs_root, args.get("path", str(fs_root)))
        if not path.is_dir():
            raise ValueError("path is not a directory")
        return "\n".join(sorted(os.listdir(path)))

    def fs_stat(args: dict[str, Any]) -> str:
        path = _resolve_root(fs_root, args["path"])
        stat = path.stat()
        return f"size={stat.st_size} mtime={stat.st_mtime} dir={path.is_dir()}"

    def clock_now(_: dict[str, Any]) -> str:
        return datetime.now(timezone.utc).isoformat()

    registry.register(
        ToolDefinition(
            name="fs_read",
            description="Read a UTF-8 text file",
            parameters=_PATH_SCHEMA,
            handle=fs_read,
            validate_args=_validate_path_arg,
        )
    )
    registry.register(
        ToolDefinition(
            name="fs_list",
            description="List a directory (defaults to the tool root)",
            parameters={
                "type": "object",
                "properties": {"path": {"type": "string"}},
            },
            handle=fs_list,
            validate_args=_validate_optional_path_arg,
        )
    )
    registry.register(
        ToolDefinition(
            name="fs_stat",
            description="Show size and modification time of a path",
            parameters=_PATH_SCHEMA,
            handle=fs_stat,
            validate_args=_validate_path_arg,
        )
    )
    registry.register(
        ToolDefinition(
            name="clock_now",
            description="Current UTC time in ISO-8601",
            parameters={"type": "object", "properties": {}},
            handle=clock_now,
        )
    )
    return registry
