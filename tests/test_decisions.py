import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from steward.decisions import build_decision_prompt, parse_decision, parse_proposal, rank_proposals
from steward.models import ActionType, GoalStatus, Proposal


class DecisionParsingTests(unittest.TestCase):
    def test_parses_fenced_decision(self) -> None:
        text = """Here is my decision:
```json
{
  "actions": [{"type": "call_tool", "brain_part": "research", "goal": "Find flight prices"}],
  "state_updates": {
    "memories": ["user flies from Oslo", "  "],
    "goals": ["Book flight", {"description": "Book hotel", "status": "active"}]
  },
  "proposals": [{"source": "planning", "confidence": 0.7, "priority": 6, "reasoning": "plan first"}]
}
```"""
        decision, error = parse_decision(text)
        self.assertIsNone(error)
        self.assertEqual(decision.actions[0].type, ActionType.CALL_TOOL)
        self.assertEqual(decision.actions[0].payload["goal"], "Find flight prices")
        self.assertEqual(decision.state_updates.memories, ["user flies from Oslo"])
        self.assertEqual(
            [goal.description for goal in decision.state_updates.goals], ["Book flight", "Book hotel"]
        )
        self.assertEqual(decision.state_updates.goals[1].status, GoalStatus.ACTIVE)
        self.assertEqual(decision.proposals[0].source, "planning")

    def test_missing_state_updates_is_empty(self) -> None:
        decision, error = parse_decision('{"actions": [{"type": "respond", "message": "Hi"}]}')
        self.assertIsNone(error)
        self.assertTrue(decision.state_updates.is_empty())
        self.assertEqual(decision.proposals, [])

    def test_invalid_decisions(self) -> None:
        cases = {
            "not json at all": "no json object found",
            '{"actions": {}}': "actions must be list",
            '{"actions": [{"type": "dance"}]}': "action 0: unknown type: dance",
            '{"actions": [{"type": "call_tool", "brain_part": "planning"}]}': "action 0: goal required",
            '{"actions": [{"type": "decompose", "subgoals": [1]}]}': "action 0: subgoals must be list of strings",
            '{"actions": [], "state_updates": {"memories": "x"}}': "memories must be list of strings",
            '{"actions": [], "proposals": [{"confidence": 1}]}': "proposal 0: proposal source required",
        }
        for text, expected in cases.items():
            with self.subTest(text=text):
                decision, error = parse_decision(text)
                self.assertIsNone(decision)
                self.assertEqual(error, expected)

    def test_proposal_ranges_are_clamped(self) -> None:
        proposal, error = parse_proposal({"source": "creativity", "confidence": 3, "priority": -4})
        self.assertIsNone(error)
        self.assertEqual(proposal.confidence, 1.0)
        self.assertEqual(proposal.priority, 0)
        _, error = parse_proposal({"source": "creativity", "confidence": True})
        self.assertEqual(error, "proposal confidence must be number")

    def test_rank_by_priority_then_confidence(self) -> None:
        proposals = [
            Proposal("memory", 0.9, 3, "", {}),
            Proposal("planning", 0.4, 8, "", {}),
            Proposal("research", 0.8, 8, "", {}),
        ]
        self.assertEqual(
            [item.source for item in rank_proposals(proposals)], ["research", "planning", "memory"]
        )

    def test_prompt_lists_context(self) -> None:
        prompt = build_decision_prompt(
            "Plan my trip", "- planning: Planning Module", "Working Memory: (empty)", "Last Brain Part Execution: none yet"
        )
        self.assertIn("Plan my trip", prompt)
        self.assertIn("- planning: Planning Module", prompt)
        self.assertIn("Last Brain Part Execution: none yet", prompt)


if __name__ == "__main__":
    unittest.main()
