"""Error handling module for sandboxhub.

This module defines error codes, exception classes, and response models.
Every failure surfaced to the API layer carries a stable machine-readable
code plus a human-readable message.

Error Response Format:
{
    "error": {
        "code": "INSTANCE_NOT_FOUND",
        "message": "Instance not found"
    }
}

Usage:
    from sandboxhub.core.errors import NotFoundError, ConflictError

    # Raise with default message
    raise NotFoundError()

    # Raise with custom message
    raise ConflictError("Prefix already exists: abcdefgh")
"""

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Error codes."""

    # Orchestrator
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFLICT = "CONFLICT"
    ALREADY_RUNNING = "ALREADY_RUNNING"
    NOT_RUNNING = "NOT_RUNNING"
    INSTANCE_NOT_FOUND = "INSTANCE_NOT_FOUND"
    ALLOCATION_EXHAUSTED = "ALLOCATION_EXHAUSTED"
    PORT_EXHAUSTED = "PORT_EXHAUSTED"
    BACKEND_OPERATION_FAILED = "BACKEND_OPERATION_FAILED"
    COMMAND_TIMEOUT = "COMMAND_TIMEOUT"
    CONFIG_IO_ERROR = "CONFIG_IO_ERROR"

    # Proxy
    BAD_GATEWAY = "BAD_GATEWAY"
    GATEWAY_TIMEOUT = "GATEWAY_TIMEOUT"
    BAD_REQUEST = "BAD_REQUEST"


class ErrorDetail(BaseModel):
    """Error detail containing code and message."""

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Error response format."""

    error: ErrorDetail


class SandboxHubError(Exception):
    """Base exception for sandboxhub.

    Attributes:
        code: The error code from ErrorCode enum
        message: Human-readable error message
        status_code: HTTP status code to return
    """

    def __init__(self, code: ErrorCode, message: str, status_code: int) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert exception to ErrorResponse model."""
        return ErrorResponse(
            error=ErrorDetail(code=self.code.value, message=self.message)
        )


class ValidationError(SandboxHubError):
    """400 Bad Request - Invalid prefix or port format."""

    def __init__(self, message: str = "Invalid input") -> None:
        super().__init__(ErrorCode.VALIDATION_ERROR, message, 400)


class ConflictError(SandboxHubError):
    """409 Conflict - Prefix or port already in use."""

    def __init__(
        self,
        message: str = "Resource already in use",
        code: ErrorCode = ErrorCode.CONFLICT,
    ) -> None:
        super().__init__(code, message, 409)


class AlreadyRunningError(ConflictError):
    """409 Conflict - Instance is already running."""

    def __init__(self, message: str = "Instance is already running") -> None:
        super().__init__(message, ErrorCode.ALREADY_RUNNING)


class NotRunningError(ConflictError):
    """409 Conflict - Instance is not running."""

    def __init__(self, message: str = "Instance is not running") -> None:
        super().__init__(message, ErrorCode.NOT_RUNNING)


class NotFoundError(SandboxHubError):
    """404 Not Found - Unknown prefix."""

    def __init__(self, message: str = "Instance not found") -> None:
        super().__init__(ErrorCode.INSTANCE_NOT_FOUND, message, 404)


class AllocationExhaustedError(SandboxHubError):
    """503 Service Unavailable - Could not generate a unique prefix."""

    def __init__(self, message: str = "Unable to allocate a unique prefix") -> None:
        super().__init__(ErrorCode.ALLOCATION_EXHAUSTED, message, 503)


class PortExhaustedError(SandboxHubError):
    """503 Service Unavailable - No free port below the configured maximum."""

    def __init__(self, message: str = "No available port") -> None:
        super().__init__(ErrorCode.PORT_EXHAUSTED, message, 503)


class BackendOperationError(SandboxHubError):
    """500 Internal Server Error - Process start/stop/probe failed."""

    def __init__(
        self,
        message: str = "Backend operation failed",
        code: ErrorCode = ErrorCode.BACKEND_OPERATION_FAILED,
    ) -> None:
        super().__init__(code, message, 500)


class CommandTimeoutError(BackendOperationError):
    """500 Internal Server Error - Shell-out exceeded its timeout."""

    def __init__(self, message: str = "Command timed out") -> None:
        super().__init__(message, ErrorCode.COMMAND_TIMEOUT)


class ConfigIOError(SandboxHubError):
    """500 Internal Server Error - Registry or artifact read/write failed."""

    def __init__(self, message: str = "Configuration I/O failed") -> None:
        super().__init__(ErrorCode.CONFIG_IO_ERROR, message, 500)


class BadGatewayError(SandboxHubError):
    """502 Bad Gateway - Backend unreachable."""

    def __init__(self, message: str = "Backend unreachable") -> None:
        super().__init__(ErrorCode.BAD_GATEWAY, message, 502)


class GatewayTimeoutError(SandboxHubError):
    """504 Gateway Timeout - Backend did not answer in time."""

    def __init__(self, message: str = "Backend timed out") -> None:
        super().__init__(ErrorCode.GATEWAY_TIMEOUT, message, 504)


class BadRequestError(SandboxHubError):
    """400 Bad Request - Malformed inbound request."""

    def __init__(self, message: str = "Malformed request") -> None:
        super().__init__(ErrorCode.BAD_REQUEST, message, 400)
