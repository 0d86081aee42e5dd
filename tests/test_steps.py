import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from steward.models import NodeType, TaskNode, TaskStep
from steward.steps import StepNotFoundError, StepSequenceManager


def _task(description: str, task_id: str = "t1") -> TaskNode:
    return TaskNode(id=task_id, type=NodeType.TASK, description=description)


class StepSequenceManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.manager = StepSequenceManager()

    def test_atomic_description_expands_to_three_phases(self) -> None:
        steps = self.manager.create_steps(_task("Write report"))
        self.assertEqual(
            [step.description for step in steps],
            ["Prepare: Write report", "Carry out: Write report", "Verify: Write report"],
        )
        self.assertEqual([step.order for step in steps], [1, 2, 3])
        self.assertEqual(steps[0].id, "t1-step-1")
        self.assertFalse(any(step.completed for step in steps))

    def test_enumerated_lines_become_steps(self) -> None:
        steps = self.manager.create_steps(_task("Plan:\n1. Fetch data\n2. Build chart\n- Send it"))
        self.assertEqual(
            [step.description for step in steps], ["Fetch data", "Build chart", "Send it"]
        )

    def test_clauses_split_on_separators(self) -> None:
        steps = self.manager.create_steps(_task("Fetch data; clean it then plot"))
        self.assertEqual([step.description for step in steps], ["Fetch data", "clean it", "plot"])

    def test_empty_description_has_no_steps(self) -> None:
        self.assertEqual(self.manager.create_steps(_task("   ")), [])

    def test_progress_is_floored(self) -> None:
        steps = self.manager.create_steps(_task("Write report"))
        self.manager.complete_step(steps, steps[0].id, "outline")
        self.assertEqual(self.manager.calculate_progress(steps), 33)
        self.assertEqual(self.manager.calculate_progress([]), 0)

    def test_complete_step_updates_list_in_place(self) -> None:
        steps = self.manager.create_steps(_task("Write report"))
        completed = self.manager.complete_step(steps, steps[1].id, "draft")
        self.assertTrue(completed.completed)
        self.assertEqual(steps[1].result, "draft")
        self.assertEqual(self.manager.get_current_step(steps).id, steps[0].id)

    def test_completing_twice_keeps_first_result(self) -> None:
        steps = [TaskStep(id="s1", order=1, description="a")]
        self.manager.complete_step(steps, "s1", "first")
        self.manager.complete_step(steps, "s1", "second")
        self.assertEqual(steps[0].result, "first")

    def test_unknown_step_raises(self) -> None:
        steps = self.manager.create_steps(_task("Write report"))
        with self.assertRaises(StepNotFoundError) as ctx:
            self.manager.complete_step(steps, "missing", None)
        self.assertEqual(ctx.exception.step_id, "missing")

    def test_all_completed(self) -> None:
        self.assertFalse(self.manager.are_all_steps_completed([]))
        steps = self.manager.create_steps(_task("Write report"))
        for step in list(steps):
            self.manager.complete_step(steps, step.id)
        self.assertTrue(self.manager.are_all_steps_completed(steps))
        self.assertIsNone(self.manager.get_current_step(steps))


if __name__ == "__main__":
    unittest.main()
