"""Factory for creating and configuring tools."""

import logging
from typing import Optional

from ..services.events import EventBus
from .implementations.calculator import CalculatorTool
from .implementations.datetime_tool import DateTimeTool
from .implementations.file_info import FileInfoTool
from .registry import DEFAULT_TOOL_TIMEOUT, ToolRegistry


class ToolFactory:
    """Factory for creating and configuring tools."""

    @staticmethod
    def create_default_registry(
        event_bus: Optional[EventBus] = None,
        timeout: float = DEFAULT_TOOL_TIMEOUT,
        base_directory: Optional[str] = None,
        logger: Optional[logging.Logger] = None
    ) -> ToolRegistry:
        """Create a tool registry with the built-in tools.

        Args:
            event_bus: Channel for tool events
            timeout: Per-call execution timeout in seconds
            base_directory: Directory the file_info tool is confined to,
                the working directory when None
            logger: Logger for the registry

        Returns:
            Configured ToolRegistry with calculator, datetime and file_info
        """
        registry = ToolRegistry(event_bus=event_bus, timeout=timeout, logger=logger)

        registry.register_tool(CalculatorTool())
        registry.register_tool(DateTimeTool())
        registry.register_tool(FileInfoTool(base_directory=base_directory))

        return registry
