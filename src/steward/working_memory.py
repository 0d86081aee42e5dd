from __future__ import annotations

import logging

from steward.models import Goal, GoalStatus, StateUpdates, WorkingMemory

logger = logging.getLogger(__name__)

SEED_MEMORY_LIMIT = 10


class WorkingMemoryManager:
    """Holds the goals and memory strings shared by every phase of one run.

    Updates replace a list wholesale; nothing is merged, so the effect of an
    update is fully determined by its patch.
    """

    def __init__(self, memory: WorkingMemory) -> None:
        self.memory = memory

    def get_state(self) -> WorkingMemory:
        return self.memory

    def update(self, updates: StateUpdates) -> None:
        changes: list[str] = []
        if updates.goals is not None:
            before = len(self.memory.goals)
            self.memory.goals = list(updates.goals)
            changes.append(f"goals: {_signed(len(self.memory.goals) - before)}")
        if updates.memories is not None:
            before = len(self.memory.memories)
            self.memory.memories = list(updates.memories)
            changes.append(
                f"memories: {_signed(len(self.memory.memories) - before)} (replaced)"
            )
        if changes:
            logger.info("Working memory updated: %s", ", ".join(changes))

    def render_for_prompt(self) -> str:
        memories = self.memory.memories
        if memories:
            lines = ["Working Memory (available context):"]
            lines.extend(f"{index}. {item}" for index, item in enumerate(memories, start=1))
        else:
            lines = ["Working Memory: (empty)"]
        open_goals = [goal for goal in self.memory.goals if goal.status != GoalStatus.COMPLETED]
        if open_goals:
            lines.append("Active goals:")
            for goal in open_goals:
                lines.extend(_render_goal(goal, depth=0))
        return "\n".join(lines)

    @staticmethod
    def initialize(
        relevant_memories_text: str | None = None, limit: int = SEED_MEMORY_LIMIT
    ) -> WorkingMemory:
        memories: list[str] = []
        if relevant_memories_text:
            lines = [line for line in relevant_memories_text.split("\n") if line.strip()]
            memories.extend(lines[:limit])
        return WorkingMemory(goals=[], memories=memories)


def _signed(delta: int) -> str:
    return f"+{delta}" if delta > 0 else str(delta)


def _render_goal(goal: Goal, depth: int) -> list[str]:
    indent = "  " * depth
    lines = [f"{indent}- [{goal.status.value}] {goal.description}"]
    for sub_goal in goal.sub_goals:
        lines.extend(_render_goal(sub_goal, depth + 1))
    return lines
