from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Protocol

from steward.llm import ModelService, ask_model
from steward.models import NodeType, TaskNode
from steward.parsing import extract_json_object

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FallbackDecision:
    should_create_fallback: bool
    fallback_task: TaskNode | None = None
    reason: str = ""


class FallbackPolicy(Protocol):
    def decide(self, task: TaskNode, error: str) -> FallbackDecision:
        ...


class ContingencyManager:
    """Asks a fallback policy whether a failed task should be replaced.

    The manager applies no heuristic of its own; whatever the policy decides
    is returned as-is.
    """

    def __init__(self, policy: FallbackPolicy) -> None:
        self.policy = policy

    def handle_failure(self, task: TaskNode, error_message: str) -> TaskNode | None:
        decision = self.policy.decide(task, error_message)
        if not decision.should_create_fallback or decision.fallback_task is None:
            logger.info("No fallback for task %s: %s", task.id, decision.reason or "declined")
            return None
        logger.info("Fallback %s created for task %s", decision.fallback_task.id, task.id)
        return decision.fallback_task


def build_fallback_prompt(task: TaskNode, error: str) -> str:
    return "\n".join(
        [
            "You are the contingency planner. Return STRICT JSON ONLY.",
            "A task failed. Decide whether a different task could still achieve its intent.",
            "Only propose a fallback that avoids the cause of the failure; never repeat the same task.",
            "Required JSON schema:",
            "{",
            '  "should_create_fallback": true/false,',
            '  "description": "the alternative task (when true)",',
            '  "reason": "short justification"',
            "}",
            "Failed task:",
            task.description,
            "Error:",
            error or "- None",
        ]
    )


def parse_fallback_reply(text: str) -> tuple[tuple[bool, str, str] | None, str | None]:
    payload, error = extract_json_object(text)
    if payload is None:
        return None, error
    should_create = payload.get("should_create_fallback")
    description = payload.get("description", "")
    reason = payload.get("reason", "")
    if not isinstance(should_create, bool):
        return None, "should_create_fallback must be boolean"
    if description is None:
        description = ""
    if not isinstance(description, str):
        return None, "description must be string"
    if not isinstance(reason, str):
        return None, "reason must be string"
    if should_create and not description.strip():
        return None, "description required when should_create_fallback is true"
    return (should_create, description.strip(), reason.strip()), None


class ModelFallbackPolicy:
    def __init__(self, model: ModelService, max_depth: int = 2, temperature: float = 0.2) -> None:
        self.model = model
        self.max_depth = max_depth
        self.temperature = temperature

    def decide(self, task: TaskNode, error: str) -> FallbackDecision:
        depth = int(task.metadata.get("fallback_depth", 0))
        if depth >= self.max_depth:
            return FallbackDecision(False, None, f"fallback depth {depth} reached")
        reply = ask_model(self.model, "", build_fallback_prompt(task, error), self.temperature)
        parsed, parse_error = parse_fallback_reply(reply)
        if parsed is None:
            return FallbackDecision(False, None, f"unparseable fallback reply: {parse_error}")
        should_create, description, reason = parsed
        if not should_create:
            return FallbackDecision(False, None, reason)
        fallback = TaskNode(
            id=str(uuid.uuid4()),
            type=NodeType.TASK,
            description=description,
            parent_id=task.parent_id,
            metadata={
                "fallback_for": task.id,
                "fallback_depth": depth + 1,
                "fallback_reason": reason,
            },
        )
        return FallbackDecision(True, fallback, reason)
