"""Unit tests for error codes and the error payload."""

import pytest

from quote_booking.models import BookingEngineError, ErrorCode, ErrorResponse
from quote_booking.models.errors import ERROR_MESSAGES, ERROR_RECOVERY


@pytest.mark.parametrize("code", list(ErrorCode))
def test_every_code_has_message_and_recovery(code: ErrorCode) -> None:
    assert ERROR_MESSAGES[code]
    assert ERROR_RECOVERY[code]


def test_only_transient_failure_is_retryable() -> None:
    retryable = [code for code in ErrorCode if BookingEngineError(code).retryable]

    assert retryable == [ErrorCode.TRANSIENT_FAILURE]


def test_error_response_from_code() -> None:
    response = ErrorResponse.from_code(ErrorCode.EXPIRED, {"quote_id": "QTE-1"})

    assert response.success is False
    assert response.error_code == ErrorCode.EXPIRED
    assert response.message == "This quote has expired"
    assert response.retryable is False
    assert response.details == {"quote_id": "QTE-1"}


def test_exception_converts_to_response() -> None:
    error = BookingEngineError(
        ErrorCode.TRANSIENT_FAILURE, details={"operation": "accept_quote"}
    )

    response = error.to_response()

    assert str(error) == ERROR_MESSAGES[ErrorCode.TRANSIENT_FAILURE]
    assert response.retryable is True
    assert response.model_dump(mode="json")["error_code"] == "ERR_TRANSIENT"
    assert "TRANSIENT_FAILURE" in repr(error)
