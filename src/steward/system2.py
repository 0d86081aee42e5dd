from __future__ import annotations

"""
Central decision cycle.

System2 owns working memory for a whole user request. Every cycle it asks the
model for a Decision, applies the state updates, then acts: it answers,
stops, rewrites the goal list or hands a goal to one brain part through an
AgentLoop. The summary of the most recent activation is fed into the next
decision prompt.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from steward.agent_loop import MAX_ITERATIONS, AgentLoop, AgentLoopResult
from steward.brain_parts import BrainPart, BrainPartRegistry
from steward.context import RunContext
from steward.conversations import ConversationLog
from steward.decisions import build_decision_prompt, parse_decision, rank_proposals
from steward.llm import ModelService, ask_model
from steward.models import ActionType, BrainGoal, Decision, Goal, StateUpdates
from steward.tools.protocol import ToolService
from steward.working_memory import SEED_MEMORY_LIMIT, WorkingMemoryManager

logger = logging.getLogger(__name__)

MAX_CYCLES = 100
RESULT_PREVIEW_CHARS = 300
FALLBACK_ROLE = "planning"
FALLBACK_GOAL = "Continue working on the user's request"
MAX_CYCLES_MESSAGE = "System2 reached maximum cycles. Task may be incomplete."


@dataclass(frozen=True)
class System2Result:
    run_id: str
    response: str
    cycles: int
    history: list[str] = field(default_factory=list)


class System2:
    def __init__(
        self,
        conversation_log: ConversationLog,
        context: RunContext,
        model: ModelService,
        tool_service: ToolService,
        brain_parts: BrainPartRegistry | None = None,
        max_cycles: int = MAX_CYCLES,
        max_iterations: int = MAX_ITERATIONS,
        seed_limit: int = SEED_MEMORY_LIMIT,
    ) -> None:
        self.conversation_log = conversation_log
        self.context = context
        self.model = model
        self.tool_service = tool_service
        self.brain_parts = brain_parts or BrainPartRegistry()
        self.max_cycles = max_cycles
        self.max_iterations = max_iterations
        self.seed_limit = seed_limit
        self.memory = WorkingMemoryManager(WorkingMemoryManager.initialize())

    def run(self) -> System2Result:
        seed = WorkingMemoryManager.initialize(self.context.relevant_memories_text, self.seed_limit)
        seed.memories.insert(0, f"User request: {self.context.message}")
        self.memory = WorkingMemoryManager(seed)
        self._log("system", f"[System2] Started: {self.context.message}")
        logger.info("System2 run %s started", self.context.run_id)

        history: list[str] = []
        last_execution = ""
        for cycle in range(1, self.max_cycles + 1):
            decision = self._decide(last_execution)
            if decision is not None and not decision.state_updates.is_empty():
                self.memory.update(self._bounded(decision.state_updates))

            activated = False
            for action in decision.actions if decision is not None else []:
                if action.type in (ActionType.TERMINATE, ActionType.RESPOND):
                    response = _final_message(action.type, action.payload)
                    self._log("assistant", response)
                    logger.info("System2 finished after %d cycle(s)", cycle)
                    return System2Result(
                        run_id=self.context.run_id, response=response, cycles=cycle, history=history
                    )
                if action.type == ActionType.DECOMPOSE:
                    self._set_goals(action.payload["subgoals"])
                    activated = True
                elif action.type == ActionType.CALL_TOOL:
                    last_execution = self._activate(
                        action.payload["brain_part"], action.payload["goal"], last_execution, history, cycle
                    )
                    activated = True

            if not activated:
                part_id, goal = self._fallback_activation(decision)
                last_execution = self._activate(part_id, goal, last_execution, history, cycle)

        self._log("assistant", MAX_CYCLES_MESSAGE)
        logger.warning("System2 run %s hit the %d cycle cap", self.context.run_id, self.max_cycles)
        return System2Result(
            run_id=self.context.run_id,
            response=MAX_CYCLES_MESSAGE,
            cycles=self.max_cycles,
            history=history,
        )

    def _decide(self, last_execution: str) -> Decision | None:
        prompt = build_decision_prompt(
            self.context.message,
            self.brain_parts.describe(),
            self.memory.render_for_prompt(),
            last_execution or "Last Brain Part Execution: none yet",
        )
        reply = ask_model(self.model, self.context.system_prompt, prompt, self.context.temperature)
        decision, error = parse_decision(reply)
        if decision is None:
            logger.warning("Decision unusable (%s)", error)
        return decision

    def _fallback_activation(self, decision: Decision | None) -> tuple[str, str]:
        if decision is not None and decision.proposals:
            top = rank_proposals(decision.proposals)[0]
            goal = top.payload.get("goal")
            if not isinstance(goal, str) or not goal.strip():
                goal = top.reasoning or FALLBACK_GOAL
            return top.source, goal
        return FALLBACK_ROLE, FALLBACK_GOAL

    def _activate(
        self, part_id: str, goal: str, last_execution: str, history: list[str], cycle: int
    ) -> str:
        part = self.brain_parts.get(part_id)
        if part is None:
            logger.warning("Unknown brain part requested: %s", part_id)
            summary = f"Last Brain Part Execution:\n- Brain part {part_id} is not available"
            history.append(f"cycle {cycle}: {part_id} unavailable")
            self._log("system", f"[System2] Brain part {part_id} is not available")
            return summary
        result = self._run_loop(part, goal, last_execution)
        history.append(
            f"cycle {cycle}: {part.id} {'completed' if result.completed else 'incomplete'}"
        )
        summary = _summarize(part, goal, result)
        self._log("system", f"[System2] {summary}")
        return summary

    def _run_loop(self, part: BrainPart, goal: str, last_execution: str) -> AgentLoopResult:
        loop = AgentLoop(
            conversation_log=self.conversation_log,
            context=self.context,
            brain_part=part,
            goal=BrainGoal(id=str(uuid.uuid4()), description=goal, brain_part_id=part.id),
            working_memory_manager=self.memory,
            model=self.model,
            tool_service=self.tool_service,
            history_text=last_execution,
            max_iterations=self.max_iterations,
        )
        return loop.run()

    def _set_goals(self, subgoals: list[str]) -> None:
        goals = [
            Goal(id=str(uuid.uuid4()), description=item.strip()) for item in subgoals if item.strip()
        ]
        self.memory.update(StateUpdates(goals=goals))

    def _bounded(self, updates: StateUpdates) -> StateUpdates:
        if updates.memories is None:
            return updates
        return StateUpdates(goals=updates.goals, memories=updates.memories[: self.seed_limit])

    def _log(self, role: str, content: str) -> None:
        self.conversation_log.add_message(
            self.context.conversation_id, role, content, {"run_id": self.context.run_id}
        )


def _final_message(action_type: ActionType, payload: dict[str, Any]) -> str:
    if action_type == ActionType.RESPOND:
        return payload["message"]
    reason = payload.get("reason")
    return reason if isinstance(reason, str) and reason.strip() else "Task terminated."


def _summarize(part: BrainPart, goal: str, result: AgentLoopResult) -> str:
    preview = result.result
    if len(preview) > RESULT_PREVIEW_CHARS:
        preview = preview[:RESULT_PREVIEW_CHARS] + "..."
    return "\n".join(
        [
            "Last Brain Part Execution:",
            f"- Brain part: {part.name}",
            f"- Goal: {goal}",
            f"- Completed: {'yes' if result.completed else 'no'}",
            f"- Tool calls: {result.tool_calls_made}",
            f"- Result: {preview}",
        ]
    )
