"""Current date and time tool."""

from datetime import datetime
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ...models.context import ToolMetadata
from ..base import BaseTool, ToolExecutionError
from ..context import ToolExecutionContext


class DateTimeTool(BaseTool):
    """Reports the current time as ISO 8601, a locale string, or a Unix timestamp."""

    def __init__(self):
        parameters_schema = {
            "type": "object",
            "properties": {
                "format": {
                    "type": "string",
                    "enum": ["iso", "locale", "timestamp"],
                    "description": "Date format (iso, locale, timestamp)",
                    "default": "iso"
                },
                "timezone": {
                    "type": "string",
                    "description": "IANA timezone name, e.g. Europe/Berlin (default: local time)"
                }
            },
            "required": []
        }

        super().__init__(
            name="datetime",
            description="Get current date and time information",
            parameters_schema=parameters_schema,
            metadata=ToolMetadata(
                category="utility",
                description="Get current date and time in various formats",
                version="1.0.0",
            ),
        )

    async def execute(self, parameters: Dict[str, Any], context: Optional[ToolExecutionContext] = None) -> Dict[str, Any]:
        output_format = parameters.get("format", "iso")
        timezone = parameters.get("timezone")

        if timezone:
            try:
                now = datetime.now(ZoneInfo(timezone))
            except (ZoneInfoNotFoundError, ValueError):
                raise ToolExecutionError(
                    f"Unknown timezone: {timezone}",
                    error_code="INVALID_TIMEZONE",
                    details={"timezone": timezone}
                )
        else:
            now = datetime.now().astimezone()

        if output_format == "timestamp":
            value: Any = int(now.timestamp() * 1000)
        elif output_format == "locale":
            value = now.strftime("%c")
        else:
            value = now.isoformat()

        return {
            "datetime": value,
            "format": output_format,
            "timezone": timezone or "local",
        }
