from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class GoalStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


# Tasks share the goal lifecycle.
TaskStatus = GoalStatus


class NodeType(str, Enum):
    GOAL = "goal"
    TASK = "task"


class ActionType(str, Enum):
    RESPOND = "respond"
    DECOMPOSE = "decompose"
    CALL_TOOL = "call_tool"
    TERMINATE = "terminate"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Goal:
    id: str
    description: str
    status: GoalStatus = GoalStatus.PENDING
    sub_goals: list[Goal] = field(default_factory=list)


@dataclass
class TaskNode:
    """A node of the goal tree.

    Leaf nodes with ``type == NodeType.TASK`` are the executable units. The
    ``metadata`` bag is opaque to the tree; the executor mirrors step state
    into ``metadata["steps"]`` and the scheduler reads
    ``metadata["trigger_time"]``.
    """

    id: str
    type: NodeType
    description: str
    task_status: TaskStatus = TaskStatus.PENDING
    progress: int = 0
    result: Any = None
    error: str | None = None
    updated_at: int = field(default_factory=now_ms)
    metadata: dict[str, Any] = field(default_factory=dict)
    children: list[TaskNode] = field(default_factory=list)
    parent_id: str | None = None

    def touch(self) -> None:
        self.updated_at = now_ms()


@dataclass(frozen=True)
class TaskStep:
    id: str
    order: int
    description: str
    completed: bool = False
    result: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order": self.order,
            "description": self.description,
            "completed": self.completed,
            "result": self.result,
        }

    @staticmethod
    def from_dict(payload: dict[str, Any]) -> TaskStep:
        return TaskStep(
            id=str(payload["id"]),
            order=int(payload.get("order", 0)),
            description=str(payload.get("description", "")),
            completed=bool(payload.get("completed", False)),
            result=payload.get("result"),
        )


@dataclass
class WorkingMemory:
    goals: list[Goal] = field(default_factory=list)
    memories: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class StateUpdates:
    goals: list[Goal] | None = None
    memories: list[str] | None = None

    def is_empty(self) -> bool:
        return self.goals is None and self.memories is None


@dataclass(frozen=True)
class Proposal:
    source: str
    confidence: float
    priority: int
    reasoning: str
    payload: dict[str, Any]


@dataclass(frozen=True)
class DecisionAction:
    type: ActionType
    payload: dict[str, Any]


@dataclass(frozen=True)
class Decision:
    actions: list[DecisionAction]
    state_updates: StateUpdates = field(default_factory=StateUpdates)
    proposals: list[Proposal] = field(default_factory=list)


@dataclass(frozen=True)
class BrainGoal:
    id: str
    description: str
    brain_part_id: str
