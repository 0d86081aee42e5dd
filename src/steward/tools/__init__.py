from steward.tools.executor import ToolExecutor
from steward.tools.protocol import ToolCall, ToolResult, ToolService, parse_tool_call
from steward.tools.registry import ToolDefinition, ToolRegistry, build_default_registry

__all__ = [
    "ToolCall",
    "ToolResult",
    "ToolService",
    "ToolExecutor",
    "ToolDefinition",
    "ToolRegistry",
    "build_default_registry",
    "parse_tool_call",
]
