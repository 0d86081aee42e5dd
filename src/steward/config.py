import json
from dataclasses import dataclass
from pathlib import Path
from typing import Literal


@dataclass(frozen=True)
class Paths:
    base_dir: Path

    @property
    def data_dir(self) -> Path:
        return self.base_dir

    @property
    def db_path(self) -> Path:
        return self.data_dir / "steward.db"

    @property
    def config_path(self) -> Path:
        return self.data_dir / "config.json"


LLMProvider = Literal["openai", "ollama"]


@dataclass(frozen=True)
class LLMSettings:
    provider: LLMProvider
    model: str
    base_url: str
    api_key: str | None = None
    timeout_s: float = 60.0


@dataclass(frozen=True)
class ExecutionSettings:
    max_iterations: int = 50
    max_cycles: int = 100
    task_timeout_ms: int = 60 * 60 * 1000
    seed_memory_limit: int = 10
    max_tasks_per_tree: int = 50
    max_fallback_depth: int = 2
    temperature: float | None = None


@dataclass(frozen=True)
class ToolSettings:
    fs_root: str | None = None
    fs_max_bytes: int = 1_000_000
    max_tool_calls_per_turn: int = 8
    max_tool_seconds: float = 60.0


@dataclass(frozen=True)
class AppConfig:
    llm: LLMSettings
    execution: ExecutionSettings
    tools: ToolSettings


def load_paths(base_dir: Path | None = None) -> Paths:
    resolved = base_dir or (Path.home() / ".steward")
    return Paths(base_dir=resolved)


def load_config(path: Path) -> AppConfig:
    payload = json.loads(path.read_text())
    llm = payload.get("llm", {})
    execution = payload.get("execution", {})
    tools = payload.get("tools", {})
    temperature = execution.get("temperature")
    return AppConfig(
        llm=LLMSettings(
            provider=llm["provider"],
            model=llm["model"],
            base_url=llm["base_url"],
            api_key=llm.get("api_key"),
            timeout_s=float(llm.get("timeout_s", 60.0)),
        ),
        execution=ExecutionSettings(
            max_iterations=int(execution.get("max_iterations", 50)),
            max_cycles=int(execution.get("max_cycles", 100)),
            task_timeout_ms=int(execution.get("task_timeout_ms", 60 * 60 * 1000)),
            seed_memory_limit=int(execution.get("seed_memory_limit", 10)),
            max_tasks_per_tree=int(execution.get("max_tasks_per_tree", 50)),
            max_fallback_depth=int(execution.get("max_fallback_depth", 2)),
            temperature=float(temperature) if temperature is not None else None,
        ),
        tools=ToolSettings(
            fs_root=tools.get("fs_root") or str(Path.home()),
            fs_max_bytes=int(tools.get("fs_max_bytes", 1_000_000)),
            max_tool_calls_per_turn=int(tools.get("max_tool_calls_per_turn", 8)),
            max_tool_seconds=float(tools.get("max_tool_seconds", 60.0)),
        ),
    )


def save_config(path: Path, config: AppConfig) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "llm": {
            "provider": config.llm.provider,
            "model": config.llm.model,
            "base_url": config.llm.base_url,
            "api_key": config.llm.api_key,
            "timeout_s": config.llm.timeout_s,
        },
        "execution": {
            "max_iterations": config.execution.max_iterations,
            "max_cycles": config.execution.max_cycles,
            "task_timeout_ms": config.execution.task_timeout_ms,
            "seed_memory_limit": config.execution.seed_memory_limit,
            "max_tasks_per_tree": config.execution.max_tasks_per_tree,
            "max_fallback_depth": config.execution.max_fallback_depth,
            "temperature": config.execution.temperature,
        },
        "tools": {
            "fs_root": config.tools.fs_root,
            "fs_max_bytes": config.tools.fs_max_bytes,
            "max_tool_calls_per_turn": config.tools.max_tool_calls_per_turn,
            "max_tool_seconds": config.tools.max_tool_seconds,
        },
    }
    path.write_text(json.dumps(payload, indent=2))
