from __future__ import annotations

import uuid
from typing import Iterator

from steward.models import Goal, GoalStatus, NodeType, TaskNode, TaskStatus
from steward.scheduler import TemporalScheduler


class GoalTree:
    """An ordered tree of goal and task nodes rooted at one goal.

    A failed task counts as resolved by the first fallback inserted for it
    (``metadata["fallback_for"]``), recursively.
    """

    def __init__(self, root: TaskNode) -> None:
        if root.type != NodeType.GOAL:
            raise ValueError("goal tree root must be a goal node")
        self.root = root

    @classmethod
    def from_descriptions(
        cls,
        goal: str,
        tasks: list[str],
        dependencies: list[list[int]] | None = None,
    ) -> GoalTree:
        root = TaskNode(id=str(uuid.uuid4()), type=NodeType.GOAL, description=goal)
        children: list[TaskNode] = []
        for index, description in enumerate(tasks):
            metadata: dict[str, object] = {}
            if dependencies and index < len(dependencies) and dependencies[index]:
                metadata["dependencies"] = [children[dep].id for dep in dependencies[index]]
            children.append(
                TaskNode(
                    id=str(uuid.uuid4()),
                    type=NodeType.TASK,
                    description=description,
                    parent_id=root.id,
                    metadata=metadata,
                )
            )
        root.children = children
        return cls(root)

    def iter_nodes(self) -> Iterator[TaskNode]:
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def iter_tasks(self) -> Iterator[TaskNode]:
        for node in self.iter_nodes():
            if node.type == NodeType.TASK:
                yield node

    def find(self, node_id: str) -> TaskNode | None:
        for node in self.iter_nodes():
            if node.id == node_id:
                return node
        return None

    def next_pending_task(self, scheduler: TemporalScheduler | None = None) -> TaskNode | None:
        for task in self.iter_tasks():
            if task.task_status != TaskStatus.PENDING:
                continue
            if not self._dependencies_met(task):
                continue
            if scheduler is not None and scheduler.is_scheduled(task) and not scheduler.is_due(task):
                continue
            return task
        return None

    def insert_fallback(self, failed: TaskNode, fallback: TaskNode) -> None:
        parent = self.find(failed.parent_id) if failed.parent_id else None
        if parent is None:
            parent = self._parent_of(failed.id) or self.root
        fallback.parent_id = parent.id
        fallback.metadata = {**fallback.metadata, "fallback_for": failed.id}
        if "dependencies" in failed.metadata and "dependencies" not in fallback.metadata:
            fallback.metadata["dependencies"] = list(failed.metadata["dependencies"])
        siblings = parent.children
        position = next(
            (index for index, node in enumerate(siblings) if node.id == failed.id), len(siblings) - 1
        )
        siblings.insert(position + 1, fallback)

    def refresh_status(self) -> GoalStatus:
        return self._refresh(self.root)

    def to_goals(self) -> list[Goal]:
        return [_to_goal(child) for child in self.root.children]

    def _refresh(self, node: TaskNode) -> GoalStatus:
        if node.type == NodeType.TASK:
            return node.task_status
        outcomes: list[GoalStatus] = []
        for child in node.children:
            if child.type == NodeType.TASK:
                if child.metadata.get("fallback_for"):
                    continue
                outcomes.append(self._effective_status(child))
            else:
                outcomes.append(self._refresh(child))
        if any(status == GoalStatus.FAILED for status in outcomes):
            status = GoalStatus.FAILED
        elif outcomes and all(status == GoalStatus.COMPLETED for status in outcomes):
            status = GoalStatus.COMPLETED
        elif any(status != GoalStatus.PENDING for status in outcomes):
            status = GoalStatus.ACTIVE
        else:
            status = GoalStatus.PENDING
        node.task_status = status
        return status

    def _effective_status(self, task: TaskNode) -> GoalStatus:
        if task.task_status != TaskStatus.FAILED:
            return task.task_status
        fallback = self._fallback_for(task.id)
        if fallback is None:
            return GoalStatus.FAILED
        status = self._effective_status(fallback)
        # A failed task whose fallback has not run yet is still in progress.
        return GoalStatus.ACTIVE if status == GoalStatus.PENDING else status

    def _dependencies_met(self, task: TaskNode) -> bool:
        for dependency_id in task.metadata.get("dependencies", []):
            dependency = self.find(dependency_id)
            if dependency is None:
                continue
            if self._effective_status(dependency) != GoalStatus.COMPLETED:
                return False
        return True

    def _fallback_for(self, task_id: str) -> TaskNode | None:
        for node in self.iter_tasks():
            if node.metadata.get("fallback_for") == task_id:
                return node
        return None

    def _parent_of(self, node_id: str) -> TaskNode | None:
        for node in self.iter_nodes():
            if any(child.id == node_id for child in node.children):
                return node
        return None


def _to_goal(node: TaskNode) -> Goal:
    return Goal(
        id=node.id,
        description=node.description,
        status=node.task_status,
        sub_goals=[_to_goal(child) for child in node.children],
    )
