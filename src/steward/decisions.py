from __future__ import annotations

import uuid
from typing import Any

from steward.models import (
    ActionType,
    Decision,
    DecisionAction,
    Goal,
    GoalStatus,
    Proposal,
    StateUpdates,
)
from steward.parsing import extract_json_object


def build_decision_prompt(
    user_request: str,
    brain_parts_text: str,
    working_memory_text: str,
    history_text: str,
) -> str:
    return "\n".join(
        [
            "You are the Self, the central decision maker of an autonomous personal agent.",
            "Decide what happens next. Return STRICT JSON ONLY.",
            "Available brain parts:",
            brain_parts_text,
            working_memory_text,
            history_text,
            "Action types:",
            '- "call_tool": activate a brain part; payload {"brain_part": "<id>", "goal": "..."}',
            '- "decompose": split the request into sub-goals; payload {"subgoals": ["...", "..."]}',
            '- "respond": answer the user and finish; payload {"message": "..."}',
            '- "terminate": stop without further work; payload {"reason": "..."}',
            "Also decide what working memory should contain after this cycle (at most 10 items).",
            "Required JSON schema:",
            "{",
            '  "actions": [{"type": "call_tool", "brain_part": "planning", "goal": "..."}],',
            '  "state_updates": {"memories": ["..."]},',
            '  "proposals": [{"source": "<brain part id>", "confidence": 0.0-1.0, "priority": 0-10,',
            '                 "reasoning": "...", "payload": {"goal": "..."}}]',
            "}",
            "User request:",
            user_request,
        ]
    )


def parse_proposal(raw: Any) -> tuple[Proposal | None, str | None]:
    if not isinstance(raw, dict):
        return None, "proposal must be object"
    source = raw.get("source")
    if not isinstance(source, str) or not source.strip():
        return None, "proposal source required"
    confidence = raw.get("confidence", 0.5)
    priority = raw.get("priority", 5)
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        return None, "proposal confidence must be number"
    if isinstance(priority, bool) or not isinstance(priority, (int, float)):
        return None, "proposal priority must be number"
    reasoning = raw.get("reasoning", "")
    if not isinstance(reasoning, str):
        return None, "proposal reasoning must be string"
    payload = raw.get("payload", {})
    if not isinstance(payload, dict):
        return None, "proposal payload must be object"
    return (
        Proposal(
            source=source.strip(),
            confidence=min(1.0, max(0.0, float(confidence))),
            priority=min(10, max(0, int(priority))),
            reasoning=reasoning.strip(),
            payload=payload,
        ),
        None,
    )


def rank_proposals(proposals: list[Proposal]) -> list[Proposal]:
    return sorted(proposals, key=lambda item: (-item.priority, -item.confidence))


def parse_decision(text: str) -> tuple[Decision | None, str | None]:
    payload, error = extract_json_object(text)
    if payload is None:
        return None, error
    actions_raw = payload.get("actions", [])
    if not isinstance(actions_raw, list):
        return None, "actions must be list"
    actions: list[DecisionAction] = []
    for idx, entry in enumerate(actions_raw):
        action, action_error = _parse_action(entry)
        if action is None:
            return None, f"action {idx}: {action_error}"
        actions.append(action)
    state_updates, updates_error = _parse_state_updates(payload.get("state_updates"))
    if state_updates is None:
        return None, updates_error
    proposals_raw = payload.get("proposals", [])
    if not isinstance(proposals_raw, list):
        return None, "proposals must be list"
    proposals: list[Proposal] = []
    for idx, entry in enumerate(proposals_raw):
        proposal, proposal_error = parse_proposal(entry)
        if proposal is None:
            return None, f"proposal {idx}: {proposal_error}"
        proposals.append(proposal)
    return Decision(actions=actions, state_updates=state_updates, proposals=proposals), None


def _parse_action(raw: Any) -> tuple[DecisionAction | None, str | None]:
    if not isinstance(raw, dict):
        return None, "must be object"
    type_raw = raw.get("type")
    try:
        action_type = ActionType(type_raw)
    except ValueError:
        return None, f"unknown type: {type_raw}"
    payload = {key: value for key, value in raw.items() if key != "type"}
    if action_type == ActionType.CALL_TOOL:
        if not isinstance(payload.get("brain_part"), str) or not payload["brain_part"].strip():
            return None, "brain_part required"
        if not isinstance(payload.get("goal"), str) or not payload["goal"].strip():
            return None, "goal required"
    elif action_type == ActionType.RESPOND:
        if not isinstance(payload.get("message"), str):
            return None, "message required"
    elif action_type == ActionType.DECOMPOSE:
        subgoals = payload.get("subgoals")
        if not isinstance(subgoals, list) or any(not isinstance(item, str) for item in subgoals):
            return None, "subgoals must be list of strings"
    elif action_type == ActionType.TERMINATE:
        reason = payload.get("reason")
        if reason is not None and not isinstance(reason, str):
            return None, "reason must be string"
    return DecisionAction(type=action_type, payload=payload), None


def _parse_state_updates(raw: Any) -> tuple[StateUpdates | None, str | None]:
    if raw is None:
        return StateUpdates(), None
    if not isinstance(raw, dict):
        return None, "state_updates must be object"
    memories = raw.get("memories")
    if memories is not None:
        if not isinstance(memories, list) or any(not isinstance(item, str) for item in memories):
            return None, "memories must be list of strings"
        memories = [item.strip() for item in memories if item.strip()]
    goals_raw = raw.get("goals")
    goals: list[Goal] | None = None
    if goals_raw is not None:
        if not isinstance(goals_raw, list):
            return None, "goals must be list"
        goals = []
        for entry in goals_raw:
            goal = _parse_goal(entry)
            if goal is None:
                return None, "invalid goal entry"
            goals.append(goal)
    return StateUpdates(goals=goals, memories=memories), None


def _parse_goal(raw: Any) -> Goal | None:
    if isinstance(raw, str):
        return Goal(id=str(uuid.uuid4()), description=raw.strip()) if raw.strip() else None
    if not isinstance(raw, dict):
        return None
    description = raw.get("description")
    if not isinstance(description, str) or not description.strip():
        return None
    try:
        status = GoalStatus(raw.get("status", GoalStatus.PENDING.value))
    except ValueError:
        return None
    goal_id = raw.get("id")
    return Goal(
        id=goal_id if isinstance(goal_id, str) and goal_id else str(uuid.uuid4()),
        description=description.strip(),
        status=status,
    )
