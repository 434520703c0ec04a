"""Error definitions for MCP tools.

This module defines structured error types with stable codes that can
be surfaced to MCP clients. Codes match the ``code`` attribute carried
by core exceptions.
"""

from dataclasses import dataclass
from typing import Any

VALIDATION_ERROR = "validation"
CONFIGURATION_ERROR = "configuration_error"
BUILD_NOT_FOUND = "build_not_found"
DISPATCH_FAILED = "dispatch_failed"
WORKFLOW_ERROR = "workflow_error"
STORAGE_ERROR = "storage_error"
INTERNAL_ERROR = "internal_error"


@dataclass
class MCPError:
    """Structured error response for MCP tools.

    Attributes:
        code: Stable error code for programmatic handling.
        message: Human-readable error message.
        details: Optional additional error details.
    """

    code: str
    message: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result


def make_error(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> MCPError:
    """Create an MCPError instance."""
    return MCPError(code=code, message=message, details=details)


def from_exception(exc: Exception) -> MCPError:
    """Map a core exception to an MCPError using its ``code`` attribute.

    Exceptions without a code map to ``internal_error``.
    """
    code = getattr(exc, "code", None) or INTERNAL_ERROR
    details: dict[str, Any] | None = None
    field = getattr(exc, "field", None)
    if field is not None:
        details = {"field": field}
    status_code = getattr(exc, "status_code", None)
    if status_code is not None:
        details = {**(details or {}), "status_code": status_code}
    return make_error(code, str(exc), details)


def validation_error(message: str, details: dict[str, Any] | None = None) -> MCPError:
    """Create a validation error."""
    return make_error(VALIDATION_ERROR, message, details)


def build_not_found(build_id: str) -> MCPError:
    """Create a build not found error."""
    return make_error(
        BUILD_NOT_FOUND,
        f"Build not found: {build_id}",
        details={"build_id": build_id},
    )


__all__ = [
    "BUILD_NOT_FOUND",
    "CONFIGURATION_ERROR",
    "DISPATCH_FAILED",
    "INTERNAL_ERROR",
    "MCPError",
    "STORAGE_ERROR",
    "VALIDATION_ERROR",
    "WORKFLOW_ERROR",
    "build_not_found",
    "from_exception",
    "make_error",
    "validation_error",
]
