from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional
from uuid import uuid4

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from steward.brain_parts import BrainPartRegistry
from steward.config import (
    AppConfig,
    ExecutionSettings,
    LLMSettings,
    Paths,
    ToolSettings,
    load_config,
    load_paths,
    save_config,
)
from steward.context import RunContext
from steward.contingency import ContingencyManager, ModelFallbackPolicy
from steward.conversations import ConversationStore
from steward.decomposition import decompose_goal
from steward.llm import ModelService, OllamaChatClient, OpenAIChatClient
from steward.orchestrator import TaskOrchestrator
from steward.system2 import System2
from steward.tactical import TacticalExecutor
from steward.tools import ToolExecutor, build_default_registry
from steward.working_memory import WorkingMemoryManager

app = typer.Typer(help="Steward personal automation agent")
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _init_store(db_path: Path) -> ConversationStore:
    store = ConversationStore(db_path)
    store.initialize()
    return store


def _load_or_raise_config(paths: Paths) -> AppConfig:
    if not paths.config_path.exists():
        typer.echo("Config not found. Run `steward setup` to configure the model.")
        raise typer.Exit(code=1)
    return load_config(paths.config_path)


def _build_llm_client(settings: LLMSettings) -> ModelService:
    if settings.provider == "openai":
        if not settings.api_key:
            typer.echo("OpenAI API key is required.")
            raise typer.Exit(code=1)
        return OpenAIChatClient(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            timeout_s=settings.timeout_s,
        )
    if settings.provider == "ollama":
        return OllamaChatClient(base_url=settings.base_url, model=settings.model, timeout_s=settings.timeout_s)
    typer.echo(f"Unsupported LLM provider: {settings.provider}")
    raise typer.Exit(code=1)


def _read_memories(path: Optional[Path]) -> str:
    if path is None:
        return ""
    if not path.exists():
        typer.echo(f"Memories file not found: {path}")
        raise typer.Exit(code=1)
    return path.read_text(encoding="utf-8")


@app.command()
def run(
    message: str = typer.Argument(..., help="Request for the agent."),
    conversation: Optional[str] = typer.Option(None, help="Conversation id to continue."),
    memories: Optional[Path] = typer.Option(None, help="Text file with one relevant memory per line."),
) -> None:
    """Handle one request with the central decision cycle."""
    paths = load_paths()
    config = _load_or_raise_config(paths)
    store = _init_store(paths.db_path)
    model = _build_llm_client(config.llm)
    registry = build_default_registry(paths, config.tools)
    context = RunContext(
        conversation_id=conversation or str(uuid4()),
        message=message,
        temperature=config.execution.temperature,
        available_tools=registry.function_schemas(),
        relevant_memories_text=_read_memories(memories),
    )
    store.add_message(context.conversation_id, "user", message, {"run_id": context.run_id})
    system2 = System2(
        conversation_log=store,
        context=context,
        model=model,
        tool_service=ToolExecutor(registry, config.tools),
        brain_parts=BrainPartRegistry(),
        max_cycles=config.execution.max_cycles,
        max_iterations=config.execution.max_iterations,
        seed_limit=config.execution.seed_memory_limit,
    )
    result = system2.run()
    console.print(escape(result.response))
    console.print(
        f"[dim]conversation {context.conversation_id} - {result.cycles} cycle(s)[/dim]"
    )


@app.command()
def task(
    goal: str = typer.Argument(..., help="Goal to decompose and execute."),
    conversation: Optional[str] = typer.Option(None, help="Conversation id to log into."),
) -> None:
    """Decompose a goal into tasks and run them with fallbacks."""
    paths = load_paths()
    config = _load_or_raise_config(paths)
    store = _init_store(paths.db_path)
    model = _build_llm_client(config.llm)
    registry = build_default_registry(paths, config.tools)
    execution = config.execution
    context = RunContext(
        conversation_id=conversation or str(uuid4()),
        message=goal,
        temperature=execution.temperature,
        available_tools=registry.function_schemas(),
    )
    store.add_message(context.conversation_id, "user", goal, {"run_id": context.run_id})
    tree = decompose_goal(model, goal, registry.describe_tools())
    orchestrator = TaskOrchestrator(
        executor=TacticalExecutor(timeout_ms=execution.task_timeout_ms),
        contingency=ContingencyManager(ModelFallbackPolicy(model, max_depth=execution.max_fallback_depth)),
        model=model,
        tool_service=ToolExecutor(registry, config.tools),
        conversation_log=store,
        max_iterations=execution.max_iterations,
        max_tasks=execution.max_tasks_per_tree,
    )
    memory = WorkingMemoryManager(WorkingMemoryManager.initialize(limit=execution.seed_memory_limit))
    outcome = orchestrator.run_tree(tree, context, memory)

    table = Table(title=f"Goal: {escape(goal)}")
    table.add_column("Task")
    table.add_column("Status")
    table.add_column("Tool calls", justify="right")
    table.add_column("Error")
    for item in outcome.outcomes:
        table.add_row(
            escape(item.task.description),
            item.status.value,
            str(item.tool_calls_made),
            escape(item.error or ""),
        )
    console.print(table)
    console.print(f"Goal status: [bold]{outcome.status.value}[/bold]")
    if outcome.status.value == "failed":
        raise typer.Exit(code=1)


@app.command()
def history(
    conversation: Optional[str] = typer.Argument(None, help="Conversation id to show."),
    limit: int = typer.Option(20, help="Number of conversations to list."),
) -> None:
    """List recent conversations or print one transcript."""
    paths = load_paths()
    store = _init_store(paths.db_path)
    if conversation is None:
        rows = store.list_conversations(limit)
        typer.echo(json.dumps([dict(row) for row in rows], indent=2))
        return
    for message in store.get_conversation(conversation):
        console.print(f"[bold]{message.role}[/bold] [dim]{message.timestamp}[/dim]")
        console.print(escape(message.content))


@app.command()
def setup() -> None:
    """Write the model configuration."""
    paths = load_paths()
    typer.echo("Setting up Steward configuration.")
    provider = typer.prompt("LLM provider (openai/ollama)", default="ollama")
    if provider not in {"openai", "ollama"}:
        typer.echo("Provider must be 'openai' or 'ollama'.")
        raise typer.Exit(code=1)
    model = typer.prompt("LLM model", default="gpt-4o-mini" if provider == "openai" else "llama3")
    base_url = typer.prompt(
        "LLM base URL", default="https://api.openai.com/v1" if provider == "openai" else "http://localhost:11434"
    )
    api_key = None
    if provider == "openai":
        api_key = typer.prompt("OpenAI API key", hide_input=True)
    fs_root = typer.prompt("Directory the file tools may read", default=str(Path.home()))

    config = AppConfig(
        llm=LLMSettings(provider=provider, model=model, base_url=base_url, api_key=api_key),
        execution=ExecutionSettings(),
        tools=ToolSettings(fs_root=fs_root),
    )
    save_config(paths.config_path, config)
    typer.echo(f"Config saved to {paths.config_path}")


if __name__ == "__main__":
    app()
