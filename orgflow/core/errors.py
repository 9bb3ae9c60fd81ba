"""Error taxonomy and classification for workflow, scoring and termination operations.

Every rejection raised by the service layer is one of the exception classes below.
Each subclasses the builtin exception callers already expect (ValueError for bad
input, PermissionError for authorization, KeyError for missing records) and carries
a stable error code so request handlers can map it to a response.
"""

from enum import Enum

from pydantic import BaseModel


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Request errors
    ERR_VALIDATION_FAILED = "ERR_VALIDATION_FAILED"
    ERR_INVALID_STATE_TRANSITION = "ERR_INVALID_STATE_TRANSITION"

    # Permission errors
    ERR_PERMISSION_DENIED = "ERR_PERMISSION_DENIED"

    # Lookup errors
    ERR_NOT_FOUND = "ERR_NOT_FOUND"

    # Concurrency and storage errors
    ERR_CONFLICT = "ERR_CONFLICT"
    ERR_DATABASE = "ERR_DATABASE"

    # Cascade errors
    ERR_TERMINATION_FAILED = "ERR_TERMINATION_FAILED"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class OrgflowError(Exception):
    """Base class for all orgflow errors."""

    code: str = ErrorCode.ERR_UNKNOWN

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationFailedError(OrgflowError, ValueError):
    """Request rejected before any write because its input is invalid."""

    code = ErrorCode.ERR_VALIDATION_FAILED


class InvalidTransitionError(OrgflowError, ValueError):
    """Requested status change is not allowed from the current status."""

    code = ErrorCode.ERR_INVALID_STATE_TRANSITION

    def __init__(self, *, entity: str, current: str, target: str, detail: str = "") -> None:
        message = f"Cannot move {entity} from '{current}' to '{target}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.entity = entity
        self.current = current
        self.target = target


class AuthorizationError(OrgflowError, PermissionError):
    """Caller is not allowed to perform the operation."""

    code = ErrorCode.ERR_PERMISSION_DENIED


class NotFoundError(OrgflowError, KeyError):
    """A task, module or user referenced by the request does not exist."""

    code = ErrorCode.ERR_NOT_FOUND


class ConflictError(OrgflowError, RuntimeError):
    """Concurrent writers kept invalidating the optimistic read; safe to retry later."""

    code = ErrorCode.ERR_CONFLICT


class TerminationError(OrgflowError, RuntimeError):
    """A user termination stopped part-way through the cascade.

    Records deleted before the failure stay deleted. Every step is idempotent,
    so re-running the termination is the recovery path.
    """

    code = ErrorCode.ERR_TERMINATION_FAILED

    def __init__(
        self,
        message: str,
        *,
        failed_step: str,
        completed_steps: list[str],
        pending_recompute: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.failed_step = failed_step
        self.completed_steps = completed_steps
        self.pending_recompute = pending_recompute or []


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity
    http_status: int


_RESPONSES: dict[str, tuple[str, ErrorSeverity, int]] = {
    ErrorCode.ERR_VALIDATION_FAILED: ("Fix the request and try again.", ErrorSeverity.LOW, 400),
    ErrorCode.ERR_INVALID_STATE_TRANSITION: (
        "Refresh the task to see its current status before retrying.",
        ErrorSeverity.LOW,
        400,
    ),
    ErrorCode.ERR_PERMISSION_DENIED: (
        "Contact an administrator if you think this is an error.",
        ErrorSeverity.MEDIUM,
        403,
    ),
    ErrorCode.ERR_NOT_FOUND: ("Check the identifier and try again.", ErrorSeverity.LOW, 404),
    ErrorCode.ERR_CONFLICT: (
        "Another change was saved at the same time. Please try again.",
        ErrorSeverity.MEDIUM,
        409,
    ),
    ErrorCode.ERR_DATABASE: ("Please try again later.", ErrorSeverity.HIGH, 500),
    ErrorCode.ERR_TERMINATION_FAILED: (
        "Re-run the termination; completed steps are safe to repeat.",
        ErrorSeverity.HIGH,
        500,
    ),
}


def classify_error_with_response(exception: Exception) -> ErrorResponse:
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised during execution

    Returns:
        ErrorResponse with code, message, suggestion, severity and HTTP status
    """
    if isinstance(exception, OrgflowError):
        code = exception.code
        message = exception.message
    elif isinstance(exception, PermissionError):
        code = ErrorCode.ERR_PERMISSION_DENIED
        message = str(exception)
    elif isinstance(exception, KeyError):
        code = ErrorCode.ERR_NOT_FOUND
        message = str(exception.args[0]) if exception.args else "Not found"
    elif isinstance(exception, ValueError):
        code = ErrorCode.ERR_VALIDATION_FAILED
        message = str(exception)
    else:
        return ErrorResponse(
            code=ErrorCode.ERR_UNKNOWN,
            message="An unexpected error occurred.",
            suggestion="Please try again later. If the problem persists, contact support.",
            severity=ErrorSeverity.MEDIUM,
            http_status=500,
        )

    suggestion, severity, http_status = _RESPONSES[code]
    return ErrorResponse(
        code=code,
        message=message,
        suggestion=suggestion,
        severity=severity,
        http_status=http_status,
    )
