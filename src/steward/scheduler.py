from __future__ import annotations

from typing import Callable

from steward.models import NodeType, TaskNode, now_ms


def _trigger_time(node: TaskNode) -> int | None:
    value = node.metadata.get("trigger_time")
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value:
        return None
    return int(value)


class TemporalScheduler:
    """Time triggers for tasks, read from ``metadata["trigger_time"]`` (epoch ms)."""

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        self._clock = clock

    def is_due(self, node: TaskNode) -> bool:
        if node.type != NodeType.TASK:
            return False
        trigger = _trigger_time(node)
        if trigger is None:
            return False
        return self._clock() >= trigger

    def is_scheduled(self, node: TaskNode) -> bool:
        return node.type == NodeType.TASK and _trigger_time(node) is not None

    def get_time_until_due(self, node: TaskNode) -> int | None:
        if node.type != NodeType.TASK:
            return None
        trigger = _trigger_time(node)
        if trigger is None:
            return None
        return max(0, trigger - self._clock())

    def filter_due_tasks(self, nodes: list[TaskNode]) -> list[TaskNode]:
        return [node for node in nodes if self.is_due(node)]

    def sort_by_due_time(self, nodes: list[TaskNode]) -> list[TaskNode]:
        scheduled = [node for node in nodes if self.is_scheduled(node)]
        return sorted(scheduled, key=lambda node: _trigger_time(node) or 0)
