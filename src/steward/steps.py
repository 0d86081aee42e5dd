from __future__ import annotations

import re
from dataclasses import replace
from typing import Any

from steward.models import TaskNode, TaskStep

_ENUMERATED_ITEM = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+(.+)$")
_CLAUSE_BREAK = re.compile(r";|\.\s+|,?\s+and then\s+|,?\s+then\s+", re.IGNORECASE)
_PHASES = ("Prepare", "Carry out", "Verify")


class StepNotFoundError(LookupError):
    def __init__(self, step_id: str) -> None:
        super().__init__(f"step not found: {step_id}")
        self.step_id = step_id


class StepSequenceManager:
    """Derives a task's atomic steps and accounts for their completion."""

    def create_steps(self, task: TaskNode) -> list[TaskStep]:
        description = (task.description or "").strip()
        if not description:
            return []
        clauses = _split_clauses(description)
        if len(clauses) <= 1:
            # An atomic description still gets a prepare/do/verify cycle.
            subject = clauses[0] if clauses else description
            clauses = [f"{phase}: {subject}" for phase in _PHASES]
        return [
            TaskStep(id=f"{task.id}-step-{index}", order=index, description=clause)
            for index, clause in enumerate(clauses, start=1)
        ]

    def get_current_step(self, steps: list[TaskStep]) -> TaskStep | None:
        for step in steps:
            if not step.completed:
                return step
        return None

    def complete_step(self, steps: list[TaskStep], step_id: str, result: Any = None) -> TaskStep:
        for index, step in enumerate(steps):
            if step.id != step_id:
                continue
            if step.completed:
                return step
            completed = replace(step, completed=True, result=result)
            steps[index] = completed
            return completed
        raise StepNotFoundError(step_id)

    def calculate_progress(self, steps: list[TaskStep]) -> int:
        if not steps:
            return 0
        completed = sum(1 for step in steps if step.completed)
        return (100 * completed) // len(steps)

    def are_all_steps_completed(self, steps: list[TaskStep]) -> bool:
        # An empty sequence has nothing to finish yet, so it is not "done".
        return bool(steps) and all(step.completed for step in steps)


def _split_clauses(description: str) -> list[str]:
    lines = [line.strip() for line in description.splitlines() if line.strip()]
    items: list[str] = []
    for line in lines:
        match = _ENUMERATED_ITEM.match(line)
        if match:
            items.append(match.group(1).strip())
    if len(items) >= 2:
        return items
    clauses: list[str] = []
    for line in lines:
        for part in _CLAUSE_BREAK.split(line):
            cleaned = part.strip().rstrip(".").strip()
            if cleaned:
                clauses.append(cleaned)
    return clauses
