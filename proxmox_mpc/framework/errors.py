"""
Error taxonomy for standardized error handling across the MCP server.

Components raise these typed exceptions; the protocol dispatcher maps them to
JSON-RPC error codes. Conditions that are expected during normal operation
(tool parameter validation, missing sessions in the session store) are
returned as values and never raised past their component.

Key features:
- JSON-RPC error code enum (standard band plus the -32000..-32003 server band)
- Severity levels (fatal, transient, user_error)
- Pydantic model for structured error details
- Boundary translation function
"""

from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# Error Codes and Severity
# ============================================================================


class RPCErrorCode(IntEnum):
    """JSON-RPC error codes used on the wire."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Server-specific band
    SERVER_ERROR = -32000
    RESOURCE_NOT_FOUND = -32001
    TOOL_EXECUTION_FAILED = -32002
    SESSION_NOT_FOUND = -32003


class ErrorSeverity(str, Enum):
    """Error severity for automatic retry and alerting."""

    FATAL = "fatal"  # Unrecoverable, requires intervention
    TRANSIENT = "transient"  # Temporary, retryable
    USER_ERROR = "user_error"  # Caller mistake, not retryable


# ============================================================================
# Pydantic Error Models
# ============================================================================


class ErrorDetails(BaseModel):
    """Structured error details for serialization."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    code: RPCErrorCode = Field(..., description="JSON-RPC error code")
    message: str = Field(..., description="Human-readable error message")
    context: dict[str, Any] = Field(default_factory=dict, description="Additional context")
    severity: ErrorSeverity = Field(default=ErrorSeverity.FATAL, description="Error severity")


# ============================================================================
# Base Exception Class
# ============================================================================


class MCPError(Exception):
    """Base class for all MCP server errors."""

    rpc_code: RPCErrorCode = RPCErrorCode.SERVER_ERROR

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        severity: ErrorSeverity = ErrorSeverity.FATAL,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.severity = severity

    def to_details(self) -> ErrorDetails:
        """Convert to structured ErrorDetails."""
        return ErrorDetails(
            code=self.rpc_code, message=self.message, context=self.details, severity=self.severity
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON-RPC error object."""
        error: dict[str, Any] = {"code": int(self.rpc_code), "message": self.message}
        if self.details:
            error["data"] = self.details
        return error


# ============================================================================
# Protocol Errors
# ============================================================================


class InvalidRequestError(MCPError):
    """Malformed request envelope."""

    rpc_code = RPCErrorCode.INVALID_REQUEST

    def __init__(self, message: str = "Invalid JSON-RPC message format") -> None:
        super().__init__(message, severity=ErrorSeverity.USER_ERROR)


class MethodNotFoundError(MCPError):
    """Method is not part of the registered surface."""

    rpc_code = RPCErrorCode.METHOD_NOT_FOUND

    def __init__(self, method: str) -> None:
        super().__init__(
            f"Method not found: {method}", {"method": method}, severity=ErrorSeverity.USER_ERROR
        )


class InvalidParamsError(MCPError):
    """Params missing or ill-typed for a known method."""

    rpc_code = RPCErrorCode.INVALID_PARAMS

    def __init__(self, message: str, field: str | None = None) -> None:
        details = {"field": field} if field else {}
        super().__init__(message, details, severity=ErrorSeverity.USER_ERROR)


# ============================================================================
# Resource Errors
# ============================================================================


class ResourceNotFoundError(MCPError):
    """Requested resource does not exist."""

    rpc_code = RPCErrorCode.RESOURCE_NOT_FOUND

    def __init__(
        self, message: str, resource_type: str | None = None, resource_id: str | None = None
    ) -> None:
        details = {}
        if resource_type:
            details["resource_type"] = resource_type
        if resource_id:
            details["resource_id"] = resource_id
        super().__init__(message, details, severity=ErrorSeverity.USER_ERROR)


class PromptNotFoundError(ResourceNotFoundError):
    """Unknown prompt template name."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Unknown prompt template: {name}", resource_type="prompt", resource_id=name
        )


class PromptRenderError(MCPError):
    """Strict rendering found placeholders without a context value."""

    rpc_code = RPCErrorCode.INVALID_PARAMS

    def __init__(self, name: str, missing: list[str]) -> None:
        super().__init__(
            f"Prompt template '{name}' is missing variables: {', '.join(missing)}",
            {"template": name, "missing": missing},
            severity=ErrorSeverity.USER_ERROR,
        )
        self.missing = missing


# ============================================================================
# Execution Errors
# ============================================================================


class ToolExecutionError(MCPError):
    """A tool handler could not complete its operation."""

    rpc_code = RPCErrorCode.TOOL_EXECUTION_FAILED

    def __init__(self, message: str, tool_name: str | None = None) -> None:
        details = {"tool": tool_name} if tool_name else {}
        super().__init__(message, details, severity=ErrorSeverity.USER_ERROR)


class UpstreamError(MCPError):
    """A collaborator call (infra client, deployment backend) failed.

    The message is the upstream exception's message, unchanged.
    """

    rpc_code = RPCErrorCode.SERVER_ERROR

    def __init__(self, operation: str, cause: Exception) -> None:
        super().__init__(
            str(cause) or type(cause).__name__,
            {"operation": operation, "cause_type": type(cause).__name__},
            severity=ErrorSeverity.TRANSIENT,
        )
        self.operation = operation
        self.cause = cause


# ============================================================================
# Session Errors
# ============================================================================


class SessionNotFoundError(MCPError):
    """Session id is unknown or expired."""

    rpc_code = RPCErrorCode.SESSION_NOT_FOUND

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Session not found: {session_id}",
            {"session_id": session_id},
            severity=ErrorSeverity.USER_ERROR,
        )


class SessionLimitError(MCPError):
    """Session store is at capacity."""

    rpc_code = RPCErrorCode.SERVER_ERROR

    def __init__(self, max_sessions: int) -> None:
        super().__init__(
            f"Session limit reached ({max_sessions} active sessions)",
            {"max_sessions": max_sessions},
            severity=ErrorSeverity.TRANSIENT,
        )


# ============================================================================
# Boundary Translation
# ============================================================================


def to_rpc_error(exc: Exception) -> dict[str, Any]:
    """Translate an arbitrary exception into a JSON-RPC error object.

    Typed errors keep their own code; anything else becomes an Internal-Error
    carrying the exception message.
    """
    if isinstance(exc, MCPError):
        return exc.to_dict()
    return {
        "code": int(RPCErrorCode.INTERNAL_ERROR),
        "message": str(exc) or "Internal error",
        "data": {"error_type": type(exc).__name__},
    }
