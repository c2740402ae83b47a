"""Standard error codes for quote acceptance and cancellation.

Every coordinator failure is raised as a BookingEngineError carrying one of
these codes. Only TRANSIENT_FAILURE is safe to retry as-is.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Error kinds returned by the engine."""

    INVALID_REQUEST = "ERR_INVALID_REQUEST"
    NOT_FOUND = "ERR_NOT_FOUND"
    NOT_ACCEPTABLE = "ERR_NOT_ACCEPTABLE"
    NOT_CANCELLABLE = "ERR_NOT_CANCELLABLE"
    EXPIRED = "ERR_EXPIRED"
    CONFLICT = "ERR_CONFLICT"
    ALREADY_EXISTS = "ERR_ALREADY_EXISTS"
    TRANSIENT_FAILURE = "ERR_TRANSIENT"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.INVALID_REQUEST: "The request is malformed or references do not match",
    ErrorCode.NOT_FOUND: "The requested record does not exist",
    ErrorCode.NOT_ACCEPTABLE: "This quote can no longer be accepted",
    ErrorCode.NOT_CANCELLABLE: "This booking can no longer be cancelled",
    ErrorCode.EXPIRED: "This quote has expired",
    ErrorCode.CONFLICT: "Another action changed this record first",
    ErrorCode.ALREADY_EXISTS: "A record for this reference already exists",
    ErrorCode.TRANSIENT_FAILURE: "The operation could not be completed, please retry",
}

# Recovery suggestions for the calling layer
ERROR_RECOVERY: dict[ErrorCode, str] = {
    ErrorCode.INVALID_REQUEST: "Fix the request before sending it again",
    ErrorCode.NOT_FOUND: "Verify the identifier",
    ErrorCode.NOT_ACCEPTABLE: "Re-fetch the quotes for the request",
    ErrorCode.NOT_CANCELLABLE: "Re-fetch the booking status",
    ErrorCode.EXPIRED: "Ask the provider for a new quote",
    ErrorCode.CONFLICT: "Re-fetch current state; do not retry the same target",
    ErrorCode.ALREADY_EXISTS: "Fetch the existing record",
    ErrorCode.TRANSIENT_FAILURE: "Retry with backoff",
}

RETRYABLE_ERRORS: frozenset[ErrorCode] = frozenset({ErrorCode.TRANSIENT_FAILURE})


class ErrorResponse(BaseModel):
    """Standard error payload for the layer that calls the engine."""

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    message: str
    recovery: str
    retryable: bool
    details: Optional[dict[str, str]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code.

        Args:
            code: The error code
            details: Optional additional context about the error

        Returns:
            An ErrorResponse with the message and recovery hint for the code.
        """
        return cls(
            error_code=code,
            message=ERROR_MESSAGES[code],
            recovery=ERROR_RECOVERY[code],
            retryable=code in RETRYABLE_ERRORS,
            details=details,
        )


class BookingEngineError(Exception):
    """Exception raised by store and coordinator operations."""

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ):
        self.code = code
        self.message = ERROR_MESSAGES[code]
        self.recovery = ERROR_RECOVERY[code]
        self.details = details
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_ERRORS

    def to_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse."""
        return ErrorResponse.from_code(self.code, self.details)

    def __repr__(self) -> str:
        return f"BookingEngineError({self.code.name}, details={self.details!r})"
