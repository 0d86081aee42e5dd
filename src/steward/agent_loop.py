from __future__ import annotations

"""
Bounded reasoning/acting loop.

An AgentLoop drives one brain part against one goal. Each iteration asks the
model for its next turn; a turn without tool calls ends the loop, a turn with
tool calls runs them as one batch and feeds the results back. The loop is a
small state machine:

    REASONING -> DONE             model proposed no tool calls
    REASONING -> ACTING_ON_TOOLS  model proposed tool calls
    ACTING_ON_TOOLS -> REASONING  every tool result has been logged
    any -> EXHAUSTED              iteration cap reached
    REASONING -> CANCELLED        should_continue() returned False

Collaborator exceptions propagate untouched; retry policy lives with the
caller.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from steward.brain_parts import BrainPart
from steward.context import RunContext
from steward.conversations import ConversationLog, to_model_messages
from steward.llm import ModelService
from steward.models import BrainGoal
from steward.tools.protocol import ToolCall, ToolResult, ToolService
from steward.working_memory import WorkingMemoryManager

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 50


class LoopState(str, Enum):
    REASONING = "reasoning"
    ACTING_ON_TOOLS = "acting_on_tools"
    DONE = "done"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class LoopTransition:
    iteration: int
    source: LoopState
    target: LoopState
    reason: str


@dataclass(frozen=True)
class AgentLoopResult:
    completed: bool
    result: str
    tool_calls_made: int
    iterations: int
    state: LoopState
    transitions: list[LoopTransition] = field(default_factory=list)


class ToolContractError(RuntimeError):
    """The tool service did not return one result per requested call."""


class AgentLoop:
    def __init__(
        self,
        conversation_log: ConversationLog,
        context: RunContext,
        brain_part: BrainPart,
        goal: BrainGoal,
        working_memory_manager: WorkingMemoryManager,
        model: ModelService,
        tool_service: ToolService,
        history_text: str = "",
        max_iterations: int = MAX_ITERATIONS,
        should_continue: Callable[[], bool] | None = None,
    ) -> None:
        self.conversation_log = conversation_log
        self.context = context
        self.brain_part = brain_part
        self.goal = goal
        self.working_memory_manager = working_memory_manager
        self.model = model
        self.tool_service = tool_service
        self.history_text = history_text
        self.max_iterations = max_iterations
        self.should_continue = should_continue
        self._state = LoopState.REASONING
        self._transitions: list[LoopTransition] = []

    @property
    def state(self) -> LoopState:
        return self._state

    def run(self) -> AgentLoopResult:
        name = self.brain_part.name
        tool_calls_made = 0
        iteration = 0
        logger.info("Starting %s (%s) - goal: %s", name, self.brain_part.id, self.goal.description)
        self._log("system", f"[Brain Part: {name}] Goal: {self.goal.description}")

        while iteration < self.max_iterations:
            if self.should_continue is not None and not self.should_continue():
                self._move(iteration, LoopState.CANCELLED, "deadline reached")
                logger.info("%s cancelled after %d iteration(s)", name, iteration)
                return self._result(
                    False, f"{name} stopped before finishing: deadline reached", tool_calls_made, iteration
                )

            iteration += 1
            logger.debug("%s iteration %d/%d", name, iteration, self.max_iterations)
            response = self.model.call(
                messages=self._build_messages(),
                temperature=self.context.temperature,
                available_tools=self._available_tools(),
            )

            if not response.tool_calls:
                message = response.content or (
                    f'Goal "{self.goal.description}" completed by {name}'
                )
                self._log("assistant", message)
                self._move(iteration, LoopState.DONE, "no tool calls proposed")
                logger.info("%s completed after %d iteration(s)", name, iteration)
                return self._result(True, message, tool_calls_made, iteration)

            calls = response.tool_calls
            self._move(iteration, LoopState.ACTING_ON_TOOLS, f"{len(calls)} tool call(s) proposed")
            logger.info("%s calling tools: %s", name, ", ".join(call.name for call in calls))
            self._log(
                "assistant",
                response.content or "",
                {"tool_calls": [call.to_dict() for call in calls]},
            )
            results = self.tool_service.execute_tools(self.context, calls)
            for result in _in_request_order(calls, results):
                self._log(
                    "tool",
                    result.content,
                    {"tool_call_id": result.tool_call_id, "tool_name": result.name, "status": result.status},
                )
            tool_calls_made += len(calls)
            self._move(iteration, LoopState.REASONING, "tool results recorded")

        self._move(iteration, LoopState.EXHAUSTED, "iteration cap reached")
        logger.info("%s reached maximum iterations (%d)", name, self.max_iterations)
        return self._result(
            False, f"Reached maximum iterations ({self.max_iterations})", tool_calls_made, iteration
        )

    def _build_messages(self) -> list[dict[str, Any]]:
        prompt_parts = [
            self.context.system_prompt,
            self.brain_part.prompt_for(self.goal.description, self.history_text),
            self.working_memory_manager.render_for_prompt(),
        ]
        system_prompt = "\n\n".join(part for part in prompt_parts if part)
        transcript = self.conversation_log.get_conversation(self.context.conversation_id)
        return [{"role": "system", "content": system_prompt}, *to_model_messages(transcript)]

    def _available_tools(self) -> list[dict[str, Any]]:
        return list(self.context.available_tools)

    def _log(self, role: str, content: str, meta: dict[str, Any] | None = None) -> None:
        payload = {"run_id": self.context.run_id, "brain_part": self.brain_part.id}
        if meta:
            payload.update(meta)
        self.conversation_log.add_message(self.context.conversation_id, role, content, payload)

    def _move(self, iteration: int, target: LoopState, reason: str) -> None:
        self._transitions.append(
            LoopTransition(iteration=iteration, source=self._state, target=target, reason=reason)
        )
        self._state = target

    def _result(self, completed: bool, result: str, tool_calls_made: int, iterations: int) -> AgentLoopResult:
        return AgentLoopResult(
            completed=completed,
            result=result,
            tool_calls_made=tool_calls_made,
            iterations=iterations,
            state=self._state,
            transitions=list(self._transitions),
        )


def _in_request_order(calls: list[ToolCall], results: list[ToolResult]) -> list[ToolResult]:
    if len(results) != len(calls):
        raise ToolContractError(
            f"expected {len(calls)} tool result(s), got {len(results)}"
        )
    by_id = {result.tool_call_id: result for result in results}
    call_ids = [call.id for call in calls]
    if len(set(call_ids)) == len(call_ids) and all(call_id in by_id for call_id in call_ids):
        return [by_id[call_id] for call_id in call_ids]
    return list(results)
