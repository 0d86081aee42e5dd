from __future__ import annotations

import logging
from dataclasses import dataclass

from steward.goal_tree import GoalTree
from steward.llm import ModelService, ask_model
from steward.parsing import extract_json_object

logger = logging.getLogger(__name__)

MAX_TASKS = 12


@dataclass(frozen=True)
class TaskSpec:
    title: str
    description: str
    dependencies: list[int]


def build_decomposition_prompt(goal: str, tool_descriptions: str, memory_context: str) -> str:
    return "\n".join(
        [
            "You are an execution planner. Return STRICT JSON ONLY. No reasoning.",
            "Decompose the goal into specific, actionable, verifiable tasks.",
            f"Prefer 3-{MAX_TASKS} tasks; if the goal is tiny, allow 1-3 tasks.",
            "Include dependencies as indexes of earlier tasks.",
            "Required JSON schema:",
            "{",
            '  "tasks": [',
            '    {"title": "...", "description": "...", "dependencies": [0, 1]}',
            "  ]",
            "}",
            "Available tools:",
            tool_descriptions or "- None",
            "Memory context:",
            memory_context or "- None",
            "Goal:",
            goal,
        ]
    )


def parse_decomposition(text: str) -> tuple[list[TaskSpec] | None, str | None]:
    payload, error = extract_json_object(text)
    if payload is None:
        return None, error
    tasks_raw = payload.get("tasks")
    if not isinstance(tasks_raw, list):
        return None, "tasks must be list"
    tasks: list[TaskSpec] = []
    for idx, entry in enumerate(tasks_raw):
        if not isinstance(entry, dict):
            return None, f"task {idx} must be object"
        title = entry.get("title")
        description = entry.get("description")
        dependencies = entry.get("dependencies", [])
        if not isinstance(title, str) or not title.strip():
            return None, f"task {idx} title missing"
        if not isinstance(description, str):
            return None, f"task {idx} description missing"
        if not isinstance(dependencies, list) or any(
            isinstance(d, bool) or not isinstance(d, int) for d in dependencies
        ):
            return None, f"task {idx} dependencies invalid"
        if any(d >= idx or d < 0 for d in dependencies):
            return None, f"task {idx} dependencies must reference earlier tasks"
        tasks.append(
            TaskSpec(
                title=title.strip(),
                description=description.strip(),
                dependencies=dependencies,
            )
        )
    if not tasks:
        return None, "tasks must not be empty"
    if len(tasks) > MAX_TASKS:
        return None, "too many tasks"
    return tasks, None


def tree_from_specs(goal: str, specs: list[TaskSpec]) -> GoalTree:
    descriptions = [
        f"{spec.title}: {spec.description}" if spec.description else spec.title for spec in specs
    ]
    return GoalTree.from_descriptions(goal, descriptions, [spec.dependencies for spec in specs])


def decompose_goal(
    model: ModelService,
    goal: str,
    tool_descriptions: str = "",
    memory_context: str = "",
    temperature: float = 0.2,
) -> GoalTree:
    reply = ask_model(
        model, "", build_decomposition_prompt(goal, tool_descriptions, memory_context), temperature
    )
    specs, error = parse_decomposition(reply)
    if specs is None:
        logger.warning("Decomposition unusable (%s); running goal as a single task", error)
        return GoalTree.from_descriptions(goal, [goal])
    return tree_from_specs(goal, specs)
