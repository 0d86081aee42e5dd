from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from steward.config import ToolSettings
from steward.context import RunContext
from steward.tools.protocol import ToolCall, ToolResult
from steward.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class ToolExecutor:
    """Runs a batch of tool calls and returns exactly one result per call.

    Results come back in request order. Problems with an individual call
    (unknown tool, bad args, handler error, exhausted budget) become a
    non-ok result for that call rather than an exception.
    """

    def __init__(self, registry: ToolRegistry, settings: ToolSettings | None = None) -> None:
        self.registry = registry
        self.settings = settings or ToolSettings()

    def execute_tools(self, context: RunContext, tool_calls: list[ToolCall]) -> list[ToolResult]:
        results: list[ToolResult] = []
        start_time = time.monotonic()
        executed = 0
        for call in tool_calls:
            if executed >= self.settings.max_tool_calls_per_turn:
                results.append(self._skipped(call, "tool budget exceeded"))
                continue
            if time.monotonic() - start_time > self.settings.max_tool_seconds:
                results.append(self._skipped(call, "tool time budget exceeded"))
                continue
            executed += 1
            results.append(self._run_one(context, call))
        return results

    def _run_one(self, context: RunContext, call: ToolCall) -> ToolResult:
        definition = self.registry.get(call.name)
        if definition is None:
            return ToolResult(
                tool_call_id=call.id,
                name=call.name,
                status="error",
                content=f"unknown tool: {call.name}",
            )
        if definition.validate_args is not None:
            error = definition.validate_args(call.args)
            if error:
                return ToolResult(
                    tool_call_id=call.id,
                    name=call.name,
                    status="error",
                    content=f"invalid args: {error}",
                )
        started_at = _utcnow()
        try:
            content = definition.handle(call.args)
            status = "ok"
        except Exception as exc:  # noqa: BLE001
            logger.info("Tool %s failed in run %s: %s", call.name, context.run_id, exc)
            content = f"{exc}"
            status = "error"
        return ToolResult(
            tool_call_id=call.id,
            name=call.name,
            status=status,
            content=content,
            started_at=started_at,
            ended_at=_utcnow(),
        )

    def _skipped(self, call: ToolCall, reason: str) -> ToolResult:
        return ToolResult(tool_call_id=call.id, name=call.name, status="skipped", content=reason)
