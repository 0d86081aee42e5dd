import sys
import tempfile
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from steward.config import ToolSettings, load_paths
from steward.context import RunContext
from steward.tools import (
    ToolCall,
    ToolDefinition,
    ToolExecutor,
    ToolRegistry,
    build_default_registry,
    parse_tool_call,
)


def _raise(_: dict) -> str:
    raise RuntimeError("disk on fire")


def _registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(
        ToolDefinition(
            name="echo",
            description="Echo text",
            parameters={"type": "object", "properties": {"text": {"type": "string"}}},
            handle=lambda args: args["text"],
            validate_args=lambda args: None if isinstance(args.get("text"), str) else "text required",
        )
    )
    registry.register(
        ToolDefinition(name="explode", description="Always fails", parameters={}, handle=_raise)
    )
    return registry


class ToolExecutorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.context = RunContext(conversation_id="c1")

    def test_one_result_per_call_in_order(self) -> None:
        executor = ToolExecutor(_registry())
        calls = [
            ToolCall(id="1", name="echo", args={"text": "hi"}),
            ToolCall(id="2", name="missing", args={}),
            ToolCall(id="3", name="echo", args={}),
            ToolCall(id="4", name="explode", args={}),
        ]
        with self.assertLogs("steward.tools.executor", level="INFO"):
            results = executor.execute_tools(self.context, calls)
        self.assertEqual([r.tool_call_id for r in results], ["1", "2", "3", "4"])
        self.assertEqual([r.status for r in results], ["ok", "error", "error", "error"])
        self.assertEqual(results[0].content, "hi")
        self.assertEqual(results[1].content, "unknown tool: missing")
        self.assertEqual(results[2].content, "invalid args: text required")
        self.assertEqual(results[3].content, "disk on fire")

    def test_calls_over_budget_are_skipped(self) -> None:
        executor = ToolExecutor(_registry(), ToolSettings(max_tool_calls_per_turn=1))
        results = executor.execute_tools(
            self.context,
            [ToolCall(id="1", name="echo", args={"text": "a"}), ToolCall(id="2", name="echo", args={"text": "b"})],
        )
        self.assertEqual([r.status for r in results], ["ok", "skipped"])

    def test_function_schemas(self) -> None:
        schemas = _registry().function_schemas()
        self.assertEqual(schemas[0]["type"], "function")
        self.assertEqual(schemas[0]["function"]["name"], "echo")
        self.assertIn("- echo: Echo text (args: text)", _registry().describe_tools())


class DefaultRegistryTests(unittest.TestCase):
    def test_fs_tools_stay_inside_root(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "notes.md").write_text("remember the milk", encoding="utf-8")
            registry = build_default_registry(load_paths(root), ToolSettings(fs_root=str(root)))
            executor = ToolExecutor(registry)
            results = executor.execute_tools(
                RunContext(conversation_id="c1"),
                [
                    ToolCall(id="1", name="fs_read", args={"path": "notes.md"}),
                    ToolCall(id="2", name="fs_list", args={}),
                    ToolCall(id="3", name="fs_read", args={"path": "../outside.txt"}),
                    ToolCall(id="4", name="clock_now", args={}),
                ],
            )
        self.assertEqual(results[0].content, "remember the milk")
        self.assertEqual(results[1].content, "notes.md")
        self.assertEqual(results[2].status, "error")
        self.assertIn("outside the allowed root", results[2].content)
        self.assertEqual(results[3].status, "ok")

    def test_default_tool_names_are_valid_function_names(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            registry = build_default_registry(load_paths(Path(tmp)), ToolSettings(fs_root=tmp))
        names = [schema["function"]["name"] for schema in registry.function_schemas()]
        self.assertEqual(names, ["fs_read", "fs_list", "fs_stat", "clock_now"])
        for name in names:
            self.assertRegex(name, r"^[a-zA-Z0-9_-]{1,64}$")

    def test_parse_tool_call_shapes(self) -> None:
        nested = parse_tool_call({"id": "a", "function": {"name": "fs_read", "arguments": '{"path": "x"}'}})
        flat = parse_tool_call({"id": "b", "name": "clock_now", "arguments": ""})
        self.assertEqual(nested.args, {"path": "x"})
        self.assertEqual(flat.args, {})
        self.assertIsNone(parse_tool_call({"id": "c", "name": "fs_read", "arguments": "[1]"}))
        self.assertIsNone(parse_tool_call({"name": "fs_read"}))
        self.assertEqual(nested.to_dict()["arguments"], '{"path": "x"}')


if __name__ == "__main__":
    unittest.main()
