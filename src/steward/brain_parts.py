from __future__ import annotations

from dataclasses import dataclass

AGENT_PREAMBLE = (
    "You are the {name}, one part of an autonomous personal agent. "
    "You work alongside the other modules and act on your own using the tools provided."
)


@dataclass(frozen=True)
class BrainPart:
    id: str
    name: str
    role: str
    completion: str

    def prompt_for(self, goal: str, history_text: str = "") -> str:
        parts = [
            AGENT_PREAMBLE.format(name=self.name),
            f"Your role: {self.role}",
            f'Your goal: "{goal}"',
        ]
        if history_text:
            parts.append(history_text)
        parts.append(f"You are done when {self.completion} Reply without tool calls to finish.")
        return "\n\n".join(parts)


DEFAULT_BRAIN_PARTS: tuple[BrainPart, ...] = (
    BrainPart(
        id="planning",
        name="Planning Module",
        role="break complex goals into ordered, actionable steps.",
        completion="a clear, executable plan exists.",
    ),
    BrainPart(
        id="execution",
        name="Execution Module",
        role="carry out a concrete task using the available tools.",
        completion="the task has been executed and its results are available.",
    ),
    BrainPart(
        id="reflection",
        name="Reflection Module",
        role="analyze past actions and their outcomes.",
        completion="you have stated what worked, what failed and what to change.",
    ),
    BrainPart(
        id="criticism",
        name="Criticism Module",
        role="evaluate work or plans against the user's request.",
        completion="you have listed concrete problems or confirmed the work is sound.",
    ),
    BrainPart(
        id="memory",
        name="Memory Module",
        role="decide which facts are worth keeping for later.",
        completion="the relevant facts are summarized.",
    ),
    BrainPart(
        id="creativity",
        name="Creativity Module",
        role="propose novel approaches when the obvious ones fail.",
        completion="you have proposed at least one new approach.",
    ),
    BrainPart(
        id="attention",
        name="Attention Module",
        role="identify what matters most right now.",
        completion="the single most important next focus is named.",
    ),
    BrainPart(
        id="interaction",
        name="Interaction Module",
        role="communicate with the user or external systems.",
        completion="the message has been composed or delivered.",
    ),
    BrainPart(
        id="error-handling",
        name="Error Handling Module",
        role="diagnose errors and obstacles and find a way around them.",
        completion="the error is understood and a workaround is known.",
    ),
    BrainPart(
        id="research",
        name="Research Module",
        role="find information, documentation and alternative solutions.",
        completion="you have gathered the information the goal needs.",
    ),
)


class BrainPartRegistry:
    def __init__(self, parts: tuple[BrainPart, ...] | list[BrainPart] = DEFAULT_BRAIN_PARTS) -> None:
        self._parts: dict[str, BrainPart] = {part.id: part for part in parts}

    def get(self, part_id: str) -> BrainPart | None:
        return self._parts.get(part_id)

    def register(self, part: BrainPart) -> None:
        self._parts[part.id] = part

    def list_parts(self) -> list[BrainPart]:
        return list(self._parts.values())

    def describe(self) -> str:
        return "\n".join(f"- {part.id}: {part.name} ({part.role})" for part in self.list_parts())
