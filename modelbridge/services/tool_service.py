"""Tool service implementation."""

from typing import Any, Dict, List, Optional

from ..models.capabilities import ModelCapabilities
from ..models.interfaces import ToolDeclaration
from ..models.requests import FunctionDefinition, ToolCall
from ..tools import ToolExecutionContext, ToolFactory, ToolRegistry


class ToolService:
    """Service facade over the tool registry for the HTTP layer and the pipeline."""

    def __init__(self, tool_registry: Optional[ToolRegistry] = None):
        """Initialize the tool service.

        Args:
            tool_registry: Tool registry to use, creates default if None
        """
        self.registry = tool_registry or ToolFactory.create_default_registry()

    async def execute_tool_call(
        self,
        tool_call: ToolCall,
        request_id: str,
        model_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Execute a model-emitted tool call.

        Returns:
            ``{"success": True, "result": ...}`` or ``{"success": False, "error": ...}``.
            Tool failures are reported in the payload, never raised.
        """
        context = ToolExecutionContext(
            request_id=request_id,
            model_id=model_id,
            user_id=user_id,
            tool_call_id=tool_call.id,
        )
        result = await self.registry.execute(tool_call, context)
        return result.to_payload()

    def prepare_tools(
        self,
        model: ModelCapabilities,
        functions: List[FunctionDefinition]
    ) -> List[ToolDeclaration]:
        """Tool declarations to attach to a provider request.

        Empty unless the model can call tools and the client asked for any.
        """
        if not functions or not model.supports_tools:
            return []
        return self.registry.convert_functions_to_tools(functions)

    def list_tools(self) -> List[Dict[str, Any]]:
        """Definitions, metadata and counters of every registered tool."""
        return [
            {
                "id": entry.id,
                "definition": entry.definition.model_dump(),
                "metadata": entry.metadata.model_dump(),
                "is_enabled": entry.is_enabled,
                "usage_count": entry.usage_count,
                "error_count": entry.error_count,
                "last_used": entry.last_used.isoformat() if entry.last_used else None,
            }
            for entry in self.registry.list_entries()
        ]

    def get_registry_stats(self) -> Dict[str, Any]:
        return self.registry.get_tool_stats()
