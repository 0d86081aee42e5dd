from __future__ import annotations

"""
Tactical execution of a single task.

The executor owns the canonical TaskNode while it is active. Callers only
ever receive copies from the getters, so every mutation goes through the
guarded methods below. Guards that see a stale or foreign task ignore the
call instead of raising.
"""

import copy
import logging
import time
from typing import Any, Callable

from steward.models import NodeType, TaskNode, TaskStatus, TaskStep
from steward.steps import StepSequenceManager

logger = logging.getLogger(__name__)

TASK_TIMEOUT_MS = 60 * 60 * 1000


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class TacticalExecutor:
    def __init__(
        self,
        step_manager: StepSequenceManager | None = None,
        timeout_ms: int = TASK_TIMEOUT_MS,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        self.step_manager = step_manager or StepSequenceManager()
        self.timeout_ms = timeout_ms
        self._clock = clock
        self._current_task: TaskNode | None = None
        self._start_time: float | None = None
        self._steps: list[TaskStep] = []

    def start_execution(self, task: TaskNode) -> bool:
        if task.type != NodeType.TASK:
            logger.warning("Refusing to execute %s node %s", task.type.value, task.id)
            return False
        if self._current_task is not None and self._current_task.id != task.id:
            logger.warning("Task %s is active; refusing to start %s", self._current_task.id, task.id)
            return False
        self._current_task = task
        self._start_time = self._clock()
        task.task_status = TaskStatus.ACTIVE
        task.progress = 0
        task.touch()
        persisted = _load_persisted_steps(task.metadata.get("steps"))
        if persisted:
            self._steps = persisted
        else:
            self._steps = self.step_manager.create_steps(task)
        self._mirror_steps()
        logger.info("Started task %s with %d step(s)", task.id, len(self._steps))
        return True

    def set_steps(self, steps: list[TaskStep]) -> None:
        self._steps = list(steps)
        self._mirror_steps()

    def update_progress(self, task: TaskNode, progress: int) -> None:
        current = self._owned(task)
        if current is None:
            return
        clamped = max(0, min(100, int(progress)))
        current.progress = max(current.progress, clamped)
        current.touch()

    def complete_current_step(self, result: Any = None) -> bool:
        if self._current_task is None:
            return False
        step = self.step_manager.get_current_step(self._steps)
        if step is None:
            return False
        self.step_manager.complete_step(self._steps, step.id, result)
        self._mirror_steps()
        self.update_progress(
            self._current_task, self.step_manager.calculate_progress(self._steps)
        )
        return True

    def complete_execution(self, task: TaskNode, result: Any = None) -> TaskNode | None:
        current = self._owned(task)
        if current is None:
            return None
        current.task_status = TaskStatus.COMPLETED
        current.progress = 100
        current.result = result
        current.touch()
        logger.info("Completed task %s", current.id)
        self.clear()
        return current

    def fail_execution(self, task: TaskNode, error: str) -> TaskNode | None:
        current = self._owned(task)
        if current is None:
            return None
        current.task_status = TaskStatus.FAILED
        current.error = error
        current.touch()
        logger.info("Failed task %s: %s", current.id, error)
        self.clear()
        return current

    def get_current_task(self) -> TaskNode | None:
        return copy.deepcopy(self._current_task)

    def get_current_step(self) -> TaskStep | None:
        return copy.deepcopy(self.step_manager.get_current_step(self._steps))

    def get_steps(self) -> list[TaskStep]:
        return copy.deepcopy(self._steps)

    def are_all_steps_completed(self) -> bool:
        return self.step_manager.are_all_steps_completed(self._steps)

    def is_task_active(self, task_id: str) -> bool:
        return self._current_task is not None and self._current_task.id == task_id

    def has_timed_out(self) -> bool:
        elapsed = self.get_execution_time()
        return elapsed is not None and elapsed > self.timeout_ms

    def get_execution_time(self) -> int | None:
        if self._start_time is None:
            return None
        return int(self._clock() - self._start_time)

    def clear(self) -> None:
        self._current_task = None
        self._start_time = None
        self._steps = []

    def _owned(self, task: TaskNode) -> TaskNode | None:
        current = self._current_task
        if current is None or task.id != current.id or task.type != NodeType.TASK:
            logger.debug("Ignoring update for inactive task %s", task.id)
            return None
        return current

    def _mirror_steps(self) -> None:
        if self._current_task is None:
            return
        self._current_task.metadata = {
            **self._current_task.metadata,
            "steps": [step.to_dict() for step in self._steps],
        }


def _load_persisted_steps(raw: Any) -> list[TaskStep]:
    if not isinstance(raw, list):
        return []
    steps: list[TaskStep] = []
    for entry in raw:
        if isinstance(entry, TaskStep):
            steps.append(entry)
        elif isinstance(entry, dict) and "id" in entry:
            steps.append(TaskStep.from_dict(entry))
    return steps
