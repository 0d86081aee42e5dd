from __future__ import annotations

import logging
from dataclasses import dataclass, field

from steward.agent_loop import MAX_ITERATIONS, AgentLoop, AgentLoopResult, LoopState
from steward.brain_parts import BrainPartRegistry
from steward.context import RunContext
from steward.contingency import ContingencyManager
from steward.conversations import ConversationLog
from steward.goal_tree import GoalTree
from steward.llm import ModelService
from steward.models import BrainGoal, GoalStatus, StateUpdates, TaskNode, TaskStatus
from steward.scheduler import TemporalScheduler
from steward.tactical import TacticalExecutor
from steward.tools.protocol import ToolService
from steward.working_memory import WorkingMemoryManager

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "timeout"


class ExecutorBusyError(RuntimeError):
    def __init__(self, active_task_id: str) -> None:
        super().__init__(f"executor is busy with task {active_task_id}")
        self.active_task_id = active_task_id


@dataclass(frozen=True)
class TaskRunOutcome:
    task: TaskNode
    started: bool
    loop_results: list[AgentLoopResult] = field(default_factory=list)
    error: str | None = None
    fallback_task: TaskNode | None = None

    @property
    def status(self) -> TaskStatus:
        return self.task.task_status

    @property
    def tool_calls_made(self) -> int:
        return sum(result.tool_calls_made for result in self.loop_results)


@dataclass(frozen=True)
class TreeRunOutcome:
    status: GoalStatus
    outcomes: list[TaskRunOutcome]


class TaskOrchestrator:
    """Runs goal-tree tasks through the executor, one step per agent loop.

    Deadline checks happen before every model call; collaborator failures,
    timeouts and exhausted loops all fail the task and go to the
    contingency manager, whose fallback (if any) re-enters the tree.
    """

    def __init__(
        self,
        executor: TacticalExecutor,
        contingency: ContingencyManager,
        model: ModelService,
        tool_service: ToolService,
        conversation_log: ConversationLog,
        brain_parts: BrainPartRegistry | None = None,
        scheduler: TemporalScheduler | None = None,
        execution_role: str = "execution",
        max_iterations: int = MAX_ITERATIONS,
        max_tasks: int = 50,
    ) -> None:
        self.executor = executor
        self.contingency = contingency
        self.model = model
        self.tool_service = tool_service
        self.conversation_log = conversation_log
        self.brain_parts = brain_parts or BrainPartRegistry()
        self.scheduler = scheduler or TemporalScheduler()
        self.max_iterations = max_iterations
        self.max_tasks = max_tasks
        role = self.brain_parts.get(execution_role)
        if role is None:
            raise ValueError(f"unknown execution role: {execution_role}")
        self.role = role

    def run_task(
        self, task: TaskNode, context: RunContext, memory: WorkingMemoryManager
    ) -> TaskRunOutcome:
        active = self.executor.get_current_task()
        if active is not None:
            raise ExecutorBusyError(active.id)
        if not self.executor.start_execution(task):
            return TaskRunOutcome(task=task, started=False)

        loop_results: list[AgentLoopResult] = []
        error: str | None = None
        try:
            error = self._run_steps(task, context, memory, loop_results)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Task %s raised %s", task.id, exc.__class__.__name__)
            error = str(exc) or exc.__class__.__name__

        if error is None:
            final = "\n".join(result.result for result in loop_results)
            self.executor.complete_execution(task, final)
            return TaskRunOutcome(task=task, started=True, loop_results=loop_results)

        self.executor.fail_execution(task, error)
        fallback = self.contingency.handle_failure(task, error)
        return TaskRunOutcome(
            task=task,
            started=True,
            loop_results=loop_results,
            error=error,
            fallback_task=fallback,
        )

    def run_tree(
        self, tree: GoalTree, context: RunContext, memory: WorkingMemoryManager
    ) -> TreeRunOutcome:
        outcomes: list[TaskRunOutcome] = []
        for _ in range(self.max_tasks):
            task = tree.next_pending_task(self.scheduler)
            if task is None:
                break
            memory.update(StateUpdates(goals=tree.to_goals()))
            outcome = self.run_task(task, context, memory)
            outcomes.append(outcome)
            if outcome.fallback_task is not None:
                tree.insert_fallback(task, outcome.fallback_task)
        status = tree.refresh_status()
        memory.update(StateUpdates(goals=tree.to_goals()))
        logger.info(
            "Goal %s finished as %s after %d task run(s)", tree.root.id, status.value, len(outcomes)
        )
        return TreeRunOutcome(status=status, outcomes=outcomes)

    def _run_steps(
        self,
        task: TaskNode,
        context: RunContext,
        memory: WorkingMemoryManager,
        loop_results: list[AgentLoopResult],
    ) -> str | None:
        total = len(self.executor.get_steps())
        while True:
            if self.executor.has_timed_out():
                return TIMEOUT_ERROR
            step = self.executor.get_current_step()
            if step is None:
                return None
            loop = AgentLoop(
                conversation_log=self.conversation_log,
                context=context,
                brain_part=self.role,
                goal=BrainGoal(id=step.id, description=step.description, brain_part_id=self.role.id),
                working_memory_manager=memory,
                model=self.model,
                tool_service=self.tool_service,
                history_text=f"Task: {task.description}\nStep {step.order} of {total}",
                max_iterations=self.max_iterations,
                should_continue=lambda: not self.executor.has_timed_out(),
            )
            result = loop.run()
            loop_results.append(result)
            if result.state == LoopState.CANCELLED:
                return TIMEOUT_ERROR
            if not result.completed:
                return result.result
            self.executor.complete_current_step(result.result)
