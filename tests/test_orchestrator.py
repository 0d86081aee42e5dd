import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from steward.context import RunContext
from steward.contingency import ContingencyManager, FallbackDecision
from steward.conversations import InMemoryConversationLog
from steward.goal_tree import GoalTree
from steward.llm import ModelResponse
from steward.models import GoalStatus, NodeType, TaskNode, TaskStatus, WorkingMemory
from steward.orchestrator import ExecutorBusyError, TaskOrchestrator
from steward.tactical import TASK_TIMEOUT_MS, TacticalExecutor
from steward.tools.protocol import ToolCall, ToolResult
from steward.working_memory import WorkingMemoryManager


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _ScriptedModel:
    """Replays outcomes in order, then keeps returning ``default``."""

    def __init__(self, outcomes=None, default: str = "done", on_call=None) -> None:
        self.outcomes = list(outcomes or [])
        self.default = default
        self.on_call = on_call
        self.calls = 0

    def call(self, *, messages, temperature=None, available_tools=None):
        self.calls += 1
        if self.on_call is not None:
            self.on_call()
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return ModelResponse(content=self.default)


class _EchoTools:
    def execute_tools(self, context, tool_calls):
        return [
            ToolResult(tool_call_id=call.id, name=call.name, status="ok", content="ok")
            for call in tool_calls
        ]


class _OneFallbackPolicy:
    def __init__(self, description: str | None) -> None:
        self.description = description
        self.failures: list[tuple[str, str]] = []

    def decide(self, task, error):
        self.failures.append((task.description, error))
        if self.description is None or task.metadata.get("fallback_for"):
            return FallbackDecision(False, None, "no alternative")
        fallback = TaskNode(id=f"{task.id}-fallback", type=NodeType.TASK, description=self.description)
        return FallbackDecision(True, fallback, "alternative")


def _task(description: str = "Write report", task_id: str = "t1") -> TaskNode:
    return TaskNode(id=task_id, type=NodeType.TASK, description=description)


class TaskOrchestratorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = _FakeClock()
        self.executor = TacticalExecutor(clock=self.clock)
        self.log = InMemoryConversationLog()
        self.context = RunContext(conversation_id="c1")
        self.memory = WorkingMemoryManager(WorkingMemory())

    def _orchestrator(self, model, policy) -> TaskOrchestrator:
        return TaskOrchestrator(
            executor=self.executor,
            contingency=ContingencyManager(policy),
            model=model,
            tool_service=_EchoTools(),
            conversation_log=self.log,
        )

    def test_runs_each_step_and_completes(self) -> None:
        task = _task()
        outcome = self._orchestrator(_ScriptedModel(), _OneFallbackPolicy(None)).run_task(
            task, self.context, self.memory
        )
        self.assertTrue(outcome.started)
        self.assertIsNone(outcome.error)
        self.assertEqual(len(outcome.loop_results), 3)
        self.assertEqual(task.task_status, TaskStatus.COMPLETED)
        self.assertEqual(task.progress, 100)
        self.assertEqual(task.result, "done\ndone\ndone")
        self.assertTrue(all(step["completed"] for step in task.metadata["steps"]))
        self.assertIsNone(self.executor.get_current_task())

    def test_timeout_fails_task_and_creates_fallback(self) -> None:
        def advance() -> None:
            self.clock.now += TASK_TIMEOUT_MS + 1

        model = _ScriptedModel(
            [ModelResponse(content="", tool_calls=[ToolCall(id="call_0", name="fs_read", args={})])],
            on_call=advance,
        )
        policy = _OneFallbackPolicy("Write summary instead")
        task = _task()
        outcome = self._orchestrator(model, policy).run_task(task, self.context, self.memory)

        self.assertEqual(outcome.error, "timeout")
        self.assertEqual(task.task_status, TaskStatus.FAILED)
        self.assertEqual(task.error, "timeout")
        self.assertEqual(model.calls, 1)
        self.assertEqual(outcome.tool_calls_made, 1)
        self.assertEqual(policy.failures, [("Write report", "timeout")])
        self.assertEqual(outcome.fallback_task.description, "Write summary instead")
        self.assertIsNone(self.executor.get_current_task())

    def test_model_error_becomes_task_failure(self) -> None:
        model = _ScriptedModel([RuntimeError("model down")])
        task = _task()
        outcome = self._orchestrator(model, _OneFallbackPolicy(None)).run_task(
            task, self.context, self.memory
        )
        self.assertEqual(outcome.error, "model down")
        self.assertEqual(outcome.status, TaskStatus.FAILED)
        self.assertIsNone(outcome.fallback_task)

    def test_busy_executor_is_rejected(self) -> None:
        self.executor.start_execution(_task(task_id="running"))
        orchestrator = self._orchestrator(_ScriptedModel(), _OneFallbackPolicy(None))
        with self.assertRaises(ExecutorBusyError) as ctx:
            orchestrator.run_task(_task(), self.context, self.memory)
        self.assertEqual(ctx.exception.active_task_id, "running")

    def test_goal_node_is_not_started(self) -> None:
        goal = TaskNode(id="g1", type=NodeType.GOAL, description="Ship")
        outcome = self._orchestrator(_ScriptedModel(), _OneFallbackPolicy(None)).run_task(
            goal, self.context, self.memory
        )
        self.assertFalse(outcome.started)
        self.assertEqual(goal.task_status, GoalStatus.PENDING)

    def test_unknown_execution_role(self) -> None:
        with self.assertRaises(ValueError):
            TaskOrchestrator(
                executor=self.executor,
                contingency=ContingencyManager(_OneFallbackPolicy(None)),
                model=_ScriptedModel(),
                tool_service=_EchoTools(),
                conversation_log=self.log,
                execution_role="juggling",
            )

    def test_run_tree_inserts_fallback_and_completes_goal(self) -> None:
        tree = GoalTree.from_descriptions("Publish weekly update", ["Fetch data", "Write report"])
        fetch, write = tree.root.children
        model = _ScriptedModel([RuntimeError("api down")])
        outcome = self._orchestrator(model, _OneFallbackPolicy("Use cached data")).run_tree(
            tree, self.context, self.memory
        )

        self.assertEqual(
            [item.task.description for item in outcome.outcomes],
            ["Fetch data", "Use cached data", "Write report"],
        )
        self.assertEqual(
            [child.id for child in tree.root.children], [fetch.id, f"{fetch.id}-fallback", write.id]
        )
        self.assertEqual(fetch.task_status, TaskStatus.FAILED)
        self.assertEqual(outcome.status, GoalStatus.COMPLETED)
        goals = self.memory.get_state().goals
        self.assertEqual(len(goals), 3)
        self.assertEqual(goals[0].status, GoalStatus.FAILED)
        self.assertEqual(goals[2].status, GoalStatus.COMPLETED)

    def test_run_tree_fails_without_fallback(self) -> None:
        tree = GoalTree.from_descriptions("Publish weekly update", ["Fetch data", "Write report"], [[], [0]])
        model = _ScriptedModel([RuntimeError("api down")])
        outcome = self._orchestrator(model, _OneFallbackPolicy(None)).run_tree(
            tree, self.context, self.memory
        )
        self.assertEqual(len(outcome.outcomes), 1)
        self.assertEqual(outcome.status, GoalStatus.FAILED)
        self.assertEqual(tree.root.children[1].task_status, TaskStatus.PENDING)


if __name__ == "__main__":
    unittest.main()
