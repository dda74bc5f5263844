"""Read-only file information tool confined to the working directory."""

import asyncio
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from ...models.context import ToolMetadata
from ..base import BaseTool, ToolExecutionError
from ..context import ToolExecutionContext


class PathRejectedError(ToolExecutionError):
    """Raised when a path argument fails validation."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            f"Path rejected: {reason}",
            error_code="PATH_REJECTED",
            details={"path": path, "reason": reason}
        )
        self.reason = reason


class PathValidator:
    """Resolves untrusted relative paths inside a base directory.

    A candidate is rejected outright if it contains a parent-directory
    component, starts with ``~``, contains a null byte, any percent-encoded
    octet, a backslash, or is absolute or drive-qualified. What is left is
    resolved against the base directory and must pass two containment
    checks: the resolved path starts with the base directory, and the path
    relative to the base does not start with ``..``.
    """

    # Percent-encoded octets in every spelling: %2e, %2E, %u002e
    PERCENT_ENCODED = re.compile(r"%(?:[0-9a-fA-F]{2}|[uU][0-9a-fA-F]{4})")
    DRIVE_LETTER = re.compile(r"^[A-Za-z]:")

    def __init__(self, base_directory: Optional[str] = None):
        self._base_directory = base_directory

    @property
    def base_directory(self) -> Path:
        """The containment root; the process working directory unless fixed."""
        base = self._base_directory if self._base_directory is not None else os.getcwd()
        return Path(base).resolve()

    def validate(self, path: str) -> Path:
        """Return the resolved absolute path for ``path``.

        Raises:
            PathRejectedError: If any rule fails.
        """
        if not isinstance(path, str) or not path.strip():
            raise PathRejectedError(str(path), "path is empty")

        if "\x00" in path:
            raise PathRejectedError(path, "null byte")
        if self.PERCENT_ENCODED.search(path):
            raise PathRejectedError(path, "percent-encoded characters")
        if "\\" in path:
            raise PathRejectedError(path, "backslash")
        if path.startswith("~"):
            raise PathRejectedError(path, "home directory shorthand")
        if self.DRIVE_LETTER.match(path):
            raise PathRejectedError(path, "drive letter")
        if os.path.isabs(path) or path.startswith("/"):
            raise PathRejectedError(path, "absolute path")
        if ".." in path.split("/"):
            raise PathRejectedError(path, "parent directory traversal")

        base = self.base_directory
        resolved = (base / path).resolve()

        base_str = str(base)
        resolved_str = str(resolved)
        if resolved_str != base_str and not resolved_str.startswith(base_str.rstrip(os.sep) + os.sep):
            raise PathRejectedError(path, "resolves outside the working directory")

        relative = os.path.relpath(resolved_str, base_str)
        if relative == ".." or relative.startswith(".." + os.sep):
            raise PathRejectedError(path, "resolves outside the working directory")

        return resolved


class FileInfoTool(BaseTool):
    """Tool for read-only file metadata inside the working directory."""

    MAX_LIST_ENTRIES = 100

    def __init__(self, base_directory: Optional[str] = None):
        """Initialize the file info tool.

        Args:
            base_directory: Directory paths are confined to. Defaults to the
                process working directory at call time.
        """
        self.validator = PathValidator(base_directory)

        parameters_schema = {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "File or directory path relative to the working directory"
                },
                "operation": {
                    "type": "string",
                    "enum": ["stat", "list", "exists"],
                    "description": "Operation to perform (default: stat)",
                    "default": "stat"
                }
            },
            "required": ["path"]
        }

        super().__init__(
            name="file_info",
            description="Get information about files and directories (read-only, relative paths only).",
            parameters_schema=parameters_schema,
            metadata=ToolMetadata(
                category="filesystem",
                description="Read-only file system information",
                version="1.0.0",
            ),
        )

    async def execute(self, parameters: Dict[str, Any], context: Optional[ToolExecutionContext] = None) -> Dict[str, Any]:
        path = parameters["path"]
        operation = parameters.get("operation", "stat")

        resolved = self.validator.validate(path)
        relative = os.path.relpath(resolved, self.validator.base_directory)

        if operation == "exists":
            exists = await asyncio.to_thread(resolved.exists)
            return {"path": relative, "exists": exists}

        if operation == "stat":
            return await asyncio.to_thread(self._stat, resolved, relative)

        if operation == "list":
            return await asyncio.to_thread(self._list, resolved, relative)

        raise ToolExecutionError(
            f"Unsupported operation: {operation}",
            error_code="UNSUPPORTED_OPERATION",
            details={"operation": operation}
        )

    @staticmethod
    def _stat(resolved: Path, relative: str) -> Dict[str, Any]:
        try:
            stats = resolved.stat()
        except FileNotFoundError:
            raise ToolExecutionError(f"Path does not exist: {relative}", error_code="FILE_NOT_FOUND")
        except OSError as e:
            raise ToolExecutionError(f"Cannot stat {relative}: {e.strerror}", error_code="FILE_ERROR")

        return {
            "path": relative,
            "size": stats.st_size,
            "is_file": resolved.is_file(),
            "is_directory": resolved.is_dir(),
            "created": datetime.fromtimestamp(stats.st_ctime).isoformat(),
            "modified": datetime.fromtimestamp(stats.st_mtime).isoformat(),
        }

    def _list(self, resolved: Path, relative: str) -> Dict[str, Any]:
        if not resolved.is_dir():
            raise ToolExecutionError(f"Not a directory: {relative}", error_code="NOT_A_DIRECTORY")

        try:
            names = sorted(os.listdir(resolved))
        except OSError as e:
            raise ToolExecutionError(f"Cannot list {relative}: {e.strerror}", error_code="FILE_ERROR")

        entries = []
        for name in names[:self.MAX_LIST_ENTRIES]:
            entry_path = resolved / name
            entries.append({
                "name": name,
                "is_file": entry_path.is_file(),
                "is_directory": entry_path.is_dir(),
            })

        return {
            "path": relative,
            "entries": entries,
            "total_entries": len(names),
            "truncated": len(names) > self.MAX_LIST_ENTRIES,
        }
