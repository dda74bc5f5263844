"""Tool registry for managing and executing tools."""

import asyncio
import inspect
import json
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..logging.config import get_logger
from ..models.capabilities import ModelCapabilities
from ..models.context import ToolDefinition, ToolMetadata, ToolRegistryEntry
from ..models.events import ToolExecuted, ToolFailed, ToolRegistered
from ..models.interfaces import ToolDeclaration
from ..models.requests import FunctionDefinition, ToolCall
from ..services.events import EventBus
from .base import BaseTool, ToolExecutionError, ToolExecutionStatus, ToolResult, validate_parameters
from .context import ToolExecutionContext


DEFAULT_TOOL_TIMEOUT = 30.0


class ToolRegistry:
    """Registry of named tools with validation, a hard timeout, and usage accounting.

    Tools are never removed once registered, only disabled.
    """

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        timeout: float = DEFAULT_TOOL_TIMEOUT,
        logger: Optional[logging.Logger] = None
    ):
        self._entries: Dict[str, ToolRegistryEntry] = {}
        self.event_bus = event_bus or EventBus()
        self.timeout = timeout
        self.logger = logger or get_logger("tools")

    def register(
        self,
        tool_id: str,
        definition: ToolDefinition,
        handler: Callable[..., Any],
        metadata: Optional[ToolMetadata] = None
    ) -> bool:
        """Register a tool handler.

        Args:
            tool_id: Unique tool identifier, normally the definition name
            definition: Name, description and parameter schema
            handler: Callable taking ``(parameters, context)``, sync or async
            metadata: Category, version and authorship information

        Returns:
            True if registration was successful, False if the id is taken
        """
        if tool_id in self._entries:
            self.logger.warning(f"Tool {tool_id} is already registered", extra={"tool_id": tool_id})
            return False

        self._entries[tool_id] = ToolRegistryEntry(
            id=tool_id,
            definition=definition,
            handler=handler,
            metadata=metadata or ToolMetadata(description=definition.description),
        )
        self.logger.info(f"Registered tool: {tool_id}", extra={"tool_id": tool_id})
        self.event_bus.publish(ToolRegistered(tool_id=tool_id))
        return True

    def register_tool(self, tool: BaseTool) -> bool:
        """Register a :class:`BaseTool` instance under its name."""
        return self.register(tool.name, tool.get_definition(), tool.execute, tool.metadata)

    def get_entry(self, tool_id: str) -> Optional[ToolRegistryEntry]:
        return self._entries.get(tool_id)

    def get_tool_definition(self, tool_id: str) -> Optional[ToolDefinition]:
        entry = self._entries.get(tool_id)
        return entry.definition if entry else None

    def list_tools(self) -> List[str]:
        return list(self._entries.keys())

    def list_entries(self) -> List[ToolRegistryEntry]:
        return list(self._entries.values())

    def set_tool_enabled(self, tool_id: str, enabled: bool) -> bool:
        """Enable or disable a tool. Returns False for unknown ids."""
        entry = self._entries.get(tool_id)
        if not entry:
            return False

        entry.is_enabled = enabled
        self.logger.info(
            f"Tool {tool_id} {'enabled' if enabled else 'disabled'}",
            extra={"tool_id": tool_id, "enabled": enabled}
        )
        return True

    def is_available(self, tool_id: str) -> bool:
        entry = self._entries.get(tool_id)
        return bool(entry and entry.is_enabled)

    def get_available_tools(self, model: Optional[ModelCapabilities] = None) -> List[ToolDefinition]:
        """Definitions of enabled tools, or none when ``model`` cannot call tools."""
        if model is not None and not model.supports_tools:
            return []
        return [entry.definition for entry in self._entries.values() if entry.is_enabled]

    def convert_functions_to_tools(self, functions: List[FunctionDefinition]) -> List[ToolDeclaration]:
        """Turn requested functions into tool declarations.

        Functions without an enabled handler are dropped with a warning.
        """
        declarations = []
        for function in functions:
            if not self.is_available(function.name):
                self.logger.warning(
                    f"Function {function.name} has no enabled handler, not offering it to the model",
                    extra={"tool_id": function.name}
                )
                continue

            declarations.append(ToolDeclaration(
                name=function.name,
                description=function.description or self._entries[function.name].definition.description,
                input_schema=function.parameters or self._entries[function.name].definition.parameters,
            ))
        return declarations

    async def execute(
        self,
        tool_call: ToolCall,
        context: Optional[ToolExecutionContext] = None
    ) -> ToolResult:
        """Execute a model-emitted tool call.

        Unknown and disabled tools are reported before the arguments are
        decoded. Never raises for tool failures; they come back as an
        unsuccessful :class:`ToolResult`.
        """
        tool_id = tool_call.function.name
        raw_arguments = tool_call.function.arguments

        entry, failure = self._lookup(tool_id)
        if failure is not None:
            return failure

        try:
            parameters = json.loads(raw_arguments) if raw_arguments and raw_arguments.strip() else {}
        except json.JSONDecodeError as e:
            return self._fail(tool_id, f"Invalid JSON arguments: {e.msg}", "INVALID_ARGUMENTS", 0.0)

        if not isinstance(parameters, dict):
            return self._fail(tool_id, "Invalid JSON arguments: expected an object", "INVALID_ARGUMENTS", 0.0)

        return await self._run(entry, parameters, context)

    async def execute_tool(
        self,
        tool_id: str,
        parameters: Dict[str, Any],
        context: Optional[ToolExecutionContext] = None
    ) -> ToolResult:
        """Execute a tool with already-decoded parameters.

        Args:
            tool_id: Registered tool id
            parameters: Parameters for tool execution
            context: Execution context of the calling request

        Returns:
            ToolResult containing execution result or error
        """
        entry, failure = self._lookup(tool_id)
        if failure is not None:
            return failure
        return await self._run(entry, parameters, context)

    def _lookup(self, tool_id: str) -> Tuple[Optional[ToolRegistryEntry], Optional[ToolResult]]:
        entry = self._entries.get(tool_id)
        if not entry:
            return None, self._fail(tool_id, f"Tool {tool_id} not found", "TOOL_NOT_FOUND", 0.0)

        if not entry.is_enabled:
            return entry, self._fail(tool_id, f"Tool {tool_id} is disabled", "TOOL_DISABLED", 0.0)

        return entry, None

    async def _run(
        self,
        entry: ToolRegistryEntry,
        parameters: Dict[str, Any],
        context: Optional[ToolExecutionContext]
    ) -> ToolResult:
        tool_id = entry.id

        try:
            validated_parameters = validate_parameters(entry.definition.parameters, parameters)
        except ToolExecutionError as e:
            return self._fail(tool_id, f"Parameter validation failed: {e.message}", e.error_code, 0.0)

        start_time = time.time()

        async def invoke() -> Any:
            if inspect.iscoroutinefunction(entry.handler):
                return await entry.handler(validated_parameters, context)

            # Sync handlers run on a worker thread so the timeout can still fire
            outcome = await asyncio.to_thread(entry.handler, validated_parameters, context)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            return outcome

        try:
            # wait_for cancels async handlers; a timed-out worker thread runs to completion unobserved
            result = await asyncio.wait_for(invoke(), timeout=self.timeout)
        except asyncio.TimeoutError:
            return self._fail(
                tool_id, "Tool execution timeout", "TOOL_TIMEOUT", time.time() - start_time,
                status=ToolExecutionStatus.TIMEOUT
            )
        except ToolExecutionError as e:
            return self._fail(tool_id, e.message, e.error_code, time.time() - start_time)
        except Exception as e:
            self.logger.error(
                f"Unexpected error in tool {tool_id}: {e}",
                extra={"tool_id": tool_id, "exception_type": type(e).__name__},
                exc_info=e
            )
            return self._fail(
                tool_id, f"Unexpected error during tool execution: {str(e)}", "TOOL_EXECUTION_ERROR",
                time.time() - start_time
            )

        execution_time = time.time() - start_time
        entry.usage_count += 1
        entry.last_used = datetime.utcnow()

        self.logger.info(
            f"Tool {tool_id} executed",
            extra={
                "tool_id": tool_id,
                "request_id": context.request_id if context else None,
                "duration_ms": round(execution_time * 1000, 2),
            }
        )
        self.event_bus.publish(ToolExecuted(tool_id=tool_id, execution_time=execution_time, result=result))

        return ToolResult(
            status=ToolExecutionStatus.SUCCESS,
            result=result,
            execution_time=execution_time,
        )

    def _fail(
        self,
        tool_id: str,
        message: str,
        error_code: str,
        execution_time: float,
        status: ToolExecutionStatus = ToolExecutionStatus.ERROR
    ) -> ToolResult:
        entry = self._entries.get(tool_id)
        if entry:
            entry.error_count += 1
            entry.last_used = datetime.utcnow()

        self.logger.warning(
            f"Tool {tool_id} failed: {message}",
            extra={"tool_id": tool_id, "error_code": error_code}
        )
        self.event_bus.publish(ToolFailed(tool_id=tool_id, error=message, execution_time=execution_time))

        return ToolResult(
            status=status,
            error_message=message,
            error_code=error_code,
            execution_time=execution_time,
        )

    def get_tool_stats(self) -> Dict[str, Any]:
        """Get usage statistics for every registered tool."""
        return {
            "total_tools": len(self._entries),
            "enabled_tools": sum(1 for entry in self._entries.values() if entry.is_enabled),
            "total_usage": sum(entry.usage_count for entry in self._entries.values()),
            "total_errors": sum(entry.error_count for entry in self._entries.values()),
            "tools": {
                tool_id: {
                    "is_enabled": entry.is_enabled,
                    "usage_count": entry.usage_count,
                    "error_count": entry.error_count,
                    "last_used": entry.last_used.isoformat() if entry.last_used else None,
                    "category": entry.metadata.category,
                }
                for tool_id, entry in self._entries.items()
            },
        }
