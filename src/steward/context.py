from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class RunContext:
    """Per-run values threaded through the loop and its collaborators."""

    conversation_id: str
    message: str = ""
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    system_prompt: str = ""
    temperature: float | None = None
    available_tools: list[dict[str, Any]] = field(default_factory=list)
    relevant_memories_text: str = ""
