"""Tests for the tool sandbox and the built-in tools."""

import asyncio
import json
import time
from pathlib import Path

import pytest

from modelbridge.models.context import ToolDefinition
from modelbridge.models.events import ToolExecuted, ToolFailed, ToolRegistered
from modelbridge.models.requests import FunctionCall, FunctionDefinition, ToolCall
from modelbridge.services.tool_service import ToolService
from modelbridge.tools import ToolExecutionContext, ToolExecutionStatus, ToolRegistry
from modelbridge.tools.implementations import (
    DivisionByZeroError,
    ExpressionError,
    FileInfoTool,
    PathRejectedError,
    PathValidator,
    UnbalancedParenthesesError,
    evaluate,
)

from .test_discovery import make_model


def tool_call(name: str, arguments) -> ToolCall:
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return ToolCall(id="call_1", function=FunctionCall(name=name, arguments=arguments))


class TestArithmeticEvaluator:
    """Tests for the recursive-descent evaluator."""

    @pytest.mark.parametrize(
        "expression, expected",
        [
            ("2+3*4", 14),
            ("(2+3)*4", 20),
            ("10 - 4 - 3", 3),
            ("8 / 4 / 2", 1),
            ("-3 + 5", 2),
            ("-(2 + 3)", -5),
            ("+4 * -2", -8),
            ("1.5 * 2", 3),
            (".5 + .5", 1),
        ],
    )
    def test_evaluates(self, expression: str, expected: float) -> None:
        assert evaluate(expression) == pytest.approx(expected)

    def test_strips_disallowed_characters(self) -> None:
        """Letters and other symbols are removed before parsing."""
        assert evaluate("2 + 2; import os") == 4

    def test_division_by_zero(self) -> None:
        with pytest.raises(DivisionByZeroError) as exc_info:
            evaluate("1/0")
        assert "division by zero" in exc_info.value.message.lower()

    def test_unbalanced_parentheses(self) -> None:
        with pytest.raises(UnbalancedParenthesesError) as exc_info:
            evaluate("(1+2")
        assert "unbalanced parentheses" in exc_info.value.message.lower()

        with pytest.raises(UnbalancedParenthesesError):
            evaluate("1+2)")

    @pytest.mark.parametrize(
        "expression, error_code",
        [
            ("", "EMPTY_EXPRESSION"),
            ("abc", "EMPTY_EXPRESSION"),
            ("1 2", "TRAILING_INPUT"),
            ("1..2", "TRAILING_INPUT"),
            ("2 *", "SYNTAX_ERROR"),
            ("()", "SYNTAX_ERROR"),
        ],
    )
    def test_rejects_malformed_input(self, expression: str, error_code: str) -> None:
        with pytest.raises(ExpressionError) as exc_info:
            evaluate(expression)
        assert exc_info.value.error_code == error_code

    def test_nesting_limit(self) -> None:
        with pytest.raises(ExpressionError) as exc_info:
            evaluate("(" * 200 + "1" + ")" * 200)
        assert exc_info.value.error_code == "NESTING_TOO_DEEP"


class TestPathValidator:
    """Tests for the path containment rules."""

    @pytest.mark.parametrize(
        "path",
        ["../secret", "/etc/passwd", "a%2e%2e/b", "C:\\x", "C:x", "~/notes", "a/../../b", "dir\\file", "a%u002e", "a\x00b"],
    )
    def test_rejects_unsafe_paths(self, tmp_path: Path, path: str) -> None:
        with pytest.raises(PathRejectedError):
            PathValidator(str(tmp_path)).validate(path)

    def test_accepts_nested_relative_path(self, tmp_path: Path) -> None:
        resolved = PathValidator(str(tmp_path)).validate("subdir/file.txt")
        assert resolved == tmp_path.resolve() / "subdir" / "file.txt"

    def test_defaults_to_working_directory(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        assert PathValidator().validate("subdir/file.txt") == tmp_path.resolve() / "subdir" / "file.txt"

    def test_rejects_symlink_escape(self, tmp_path: Path) -> None:
        base = tmp_path / "base"
        base.mkdir()
        (base / "link").symlink_to(tmp_path)

        with pytest.raises(PathRejectedError):
            PathValidator(str(base)).validate("link/outside.txt")


class TestFileInfoTool:
    """Tests for the file_info tool."""

    @pytest.fixture
    def tool(self, tmp_path: Path) -> FileInfoTool:
        (tmp_path / "notes.txt").write_text("hello")
        (tmp_path / "subdir").mkdir()
        return FileInfoTool(base_directory=str(tmp_path))

    async def test_stat(self, tool: FileInfoTool) -> None:
        result = await tool.execute({"path": "notes.txt", "operation": "stat"})

        assert result["size"] == 5
        assert result["is_file"] is True
        assert result["is_directory"] is False
        assert "created" in result and "modified" in result

    async def test_exists(self, tool: FileInfoTool) -> None:
        assert (await tool.execute({"path": "notes.txt", "operation": "exists"}))["exists"] is True
        assert (await tool.execute({"path": "missing.txt", "operation": "exists"}))["exists"] is False

    async def test_list_is_capped(self, tmp_path: Path) -> None:
        for index in range(105):
            (tmp_path / f"file_{index:03d}.txt").write_text("")
        tool = FileInfoTool(base_directory=str(tmp_path))

        result = await tool.execute({"path": ".", "operation": "list"})

        assert len(result["entries"]) == 100
        assert result["total_entries"] == 105
        assert result["truncated"] is True


class TestToolRegistry:
    """Tests for registration, execution and accounting."""

    async def test_executes_calculator(self, registry: ToolRegistry, event_log: list) -> None:
        result = await registry.execute(tool_call("calculator", {"expression": "2+3*4"}))

        assert result.success
        assert result.result["result"] == 14
        assert registry.get_entry("calculator").usage_count == 1
        assert registry.get_entry("calculator").last_used is not None
        assert any(isinstance(event, ToolExecuted) for event in event_log)

    async def test_unknown_tool(self, registry: ToolRegistry) -> None:
        result = await registry.execute(tool_call("nope", {}))

        assert not result.success
        assert result.error_code == "TOOL_NOT_FOUND"

    async def test_disabled_tool(self, registry: ToolRegistry) -> None:
        assert registry.set_tool_enabled("calculator", False)

        result = await registry.execute(tool_call("calculator", {"expression": "1"}))

        assert result.error_code == "TOOL_DISABLED"
        assert not registry.set_tool_enabled("nope", False)

    async def test_unknown_tool_reported_before_bad_arguments(self, registry: ToolRegistry) -> None:
        result = await registry.execute(tool_call("nope", "{not json"))

        assert result.error_code == "TOOL_NOT_FOUND"

    async def test_disabled_tool_reported_before_bad_arguments(self, registry: ToolRegistry) -> None:
        registry.set_tool_enabled("calculator", False)

        result = await registry.execute(tool_call("calculator", "{not json"))

        assert result.error_code == "TOOL_DISABLED"

    async def test_invalid_json_arguments(self, registry: ToolRegistry) -> None:
        result = await registry.execute(tool_call("calculator", "{not json"))

        assert result.error_code == "INVALID_ARGUMENTS"
        assert result.error_message.startswith("Invalid JSON arguments")

    async def test_missing_required_parameter(self, registry: ToolRegistry) -> None:
        result = await registry.execute(tool_call("calculator", {}))

        assert result.error_message == "Parameter validation failed: Missing required parameter: expression"
        assert registry.get_entry("calculator").error_count == 1

    async def test_tool_error_is_reported_not_raised(self, registry: ToolRegistry, event_log: list) -> None:
        result = await registry.execute(tool_call("calculator", {"expression": "1/0"}))

        assert result.status == ToolExecutionStatus.ERROR
        assert result.error_code == "DIVISION_BY_ZERO"
        assert any(isinstance(event, ToolFailed) for event in event_log)

    async def test_path_rejection_through_registry(self, registry: ToolRegistry) -> None:
        result = await registry.execute(tool_call("file_info", {"path": "../secret"}))

        assert not result.success
        assert result.error_code == "PATH_REJECTED"

    async def test_timeout_cancels_handler(self, event_bus) -> None:
        registry = ToolRegistry(event_bus=event_bus, timeout=0.05)
        cancelled = asyncio.Event()

        async def slow(parameters, context):
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        registry.register("slow", ToolDefinition(name="slow", description="Sleeps"), slow)

        result = await registry.execute_tool("slow", {})

        assert result.status == ToolExecutionStatus.TIMEOUT
        assert result.error_message == "Tool execution timeout"
        assert cancelled.is_set()

    async def test_timeout_applies_to_blocking_sync_handler(self, event_bus) -> None:
        registry = ToolRegistry(event_bus=event_bus, timeout=0.1)
        registry.register(
            "blocking",
            ToolDefinition(name="blocking", description="Blocks"),
            lambda parameters, context: time.sleep(0.5) or "done",
        )

        started = time.monotonic()
        result = await registry.execute_tool("blocking", {})

        assert result.status == ToolExecutionStatus.TIMEOUT
        assert result.error_code == "TOOL_TIMEOUT"
        assert time.monotonic() - started < 0.4

    async def test_sync_handler_does_not_block_event_loop(self, event_bus) -> None:
        registry = ToolRegistry(event_bus=event_bus, timeout=5)
        registry.register(
            "blocking",
            ToolDefinition(name="blocking", description="Blocks"),
            lambda parameters, context: time.sleep(0.2) or "done",
        )
        ticks = []

        async def ticker():
            for _ in range(3):
                ticks.append(time.monotonic())
                await asyncio.sleep(0.01)

        result, _ = await asyncio.gather(registry.execute_tool("blocking", {}), ticker())

        assert result.result == "done"
        assert len(ticks) == 3
        assert ticks[-1] - ticks[0] < 0.15

    async def test_sync_handler(self, registry: ToolRegistry) -> None:
        registry.register(
            "echo",
            ToolDefinition(name="echo", description="Echo", parameters={"type": "object", "properties": {}}),
            lambda parameters, context: {"echo": parameters, "request_id": context.request_id},
        )

        result = await registry.execute_tool("echo", {"a": 1}, ToolExecutionContext(request_id="req-1"))

        assert result.result == {"echo": {"a": 1}, "request_id": "req-1"}

    def test_duplicate_registration(self, registry: ToolRegistry, event_log: list) -> None:
        definition = ToolDefinition(name="calculator", description="Again")
        assert not registry.register("calculator", definition, lambda p, c: None)
        assert sorted(registry.list_tools()) == ["calculator", "datetime", "file_info"]
        assert len([event for event in event_log if isinstance(event, ToolRegistered)]) == 3

    def test_available_tools_depend_on_model(self, registry: ToolRegistry) -> None:
        assert registry.get_available_tools(make_model("plain")) == []
        assert len(registry.get_available_tools(make_model("tools", supports_tools=True))) == 3

    def test_convert_functions_drops_unregistered(self, registry: ToolRegistry) -> None:
        declarations = registry.convert_functions_to_tools([
            FunctionDefinition(name="calculator", parameters={"type": "object"}),
            FunctionDefinition(name="get_weather", description="Weather"),
        ])

        assert [declaration.name for declaration in declarations] == ["calculator"]
        assert declarations[0].input_schema == {"type": "object"}
        assert declarations[0].description

    async def test_tool_stats(self, registry: ToolRegistry) -> None:
        await registry.execute(tool_call("calculator", {"expression": "1+1"}))
        await registry.execute(tool_call("calculator", {"expression": "1/0"}))

        stats = registry.get_tool_stats()

        assert stats["total_tools"] == 3
        assert stats["total_usage"] == 1
        assert stats["total_errors"] == 1
        assert stats["tools"]["calculator"]["category"] == "math"


class TestDateTimeTool:
    """Tests for the datetime tool."""

    async def test_formats(self, registry: ToolRegistry) -> None:
        iso = await registry.execute_tool("datetime", {"format": "iso"})
        timestamp = await registry.execute_tool("datetime", {"format": "timestamp"})

        assert "T" in iso.result["datetime"]
        assert isinstance(timestamp.result["datetime"], int)

    async def test_unknown_timezone(self, registry: ToolRegistry) -> None:
        result = await registry.execute_tool("datetime", {"timezone": "Mars/Olympus"})

        assert result.error_code == "INVALID_TIMEZONE"


class TestToolService:
    """Tests for ToolService."""

    async def test_payload_shapes(self, registry: ToolRegistry) -> None:
        service = ToolService(registry)

        ok = await service.execute_tool_call(tool_call("calculator", {"expression": "(2+3)*4"}), "req-1")
        failed = await service.execute_tool_call(tool_call("calculator", {"expression": "(1+2"}), "req-2")

        assert ok == {"success": True, "result": {"expression": "(2+3)*4", "result": 20, "precision": 10}}
        assert failed["success"] is False
        assert "Unbalanced parentheses" in failed["error"]

    def test_prepare_tools(self, registry: ToolRegistry) -> None:
        service = ToolService(registry)
        functions = [FunctionDefinition(name="calculator")]

        assert service.prepare_tools(make_model("plain"), functions) == []
        assert service.prepare_tools(make_model("tools", supports_tools=True), []) == []
        assert len(service.prepare_tools(make_model("tools", supports_tools=True), functions)) == 1

    def test_list_tools(self, registry: ToolRegistry) -> None:
        tools = ToolService(registry).list_tools()

        assert {tool["id"] for tool in tools} == {"calculator", "datetime", "file_info"}
        assert all(tool["is_enabled"] for tool in tools)
