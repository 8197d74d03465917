"""Standard error codes and exceptions for the payment gateway.

Every failure the core can report is a PaygateError subclass carrying an
ErrorCode. The API layer maps codes to HTTP status codes and renders an
ErrorResponse, so services never deal with HTTP directly.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Standard error codes."""

    # Request body errors
    BODY_READ_FAILED = "ERR_BODY_001"
    BODY_TOO_LARGE = "ERR_BODY_002"

    # Webhook verification errors
    MISSING_SIGNATURE_HEADER = "ERR_SIG_001"
    MALFORMED_SIGNATURE_HEADER = "ERR_SIG_002"
    NO_MATCHING_SECRET = "ERR_SIG_003"
    TIMESTAMP_OUT_OF_TOLERANCE = "ERR_SIG_004"
    MALFORMED_PAYLOAD = "ERR_SIG_005"

    # Event dispatch errors
    UNHANDLED_EVENT_TYPE = "ERR_EVT_001"
    EVENT_IN_PROGRESS = "ERR_EVT_002"
    HANDLER_FAILED = "ERR_EVT_003"

    # Session creation errors
    INVALID_SESSION_REQUEST = "ERR_SESSION_001"
    REMOTE_CLIENT_ERROR = "ERR_SESSION_002"
    REMOTE_PROVIDER_ERROR = "ERR_SESSION_003"

    # Configuration
    CONFIGURATION_ERROR = "ERR_CONFIG_001"


# Trust failures share one public message so callers cannot tell which check failed
GENERIC_SIGNATURE_FAILURE = "Webhook signature verification failed"

ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.BODY_READ_FAILED: "Unable to read request body",
    ErrorCode.BODY_TOO_LARGE: "Request body exceeds the maximum allowed size",
    ErrorCode.MISSING_SIGNATURE_HEADER: "Missing webhook signature header",
    ErrorCode.MALFORMED_SIGNATURE_HEADER: "Unable to parse webhook signature header",
    ErrorCode.NO_MATCHING_SECRET: GENERIC_SIGNATURE_FAILURE,
    ErrorCode.TIMESTAMP_OUT_OF_TOLERANCE: GENERIC_SIGNATURE_FAILURE,
    ErrorCode.MALFORMED_PAYLOAD: "Malformed webhook payload",
    ErrorCode.UNHANDLED_EVENT_TYPE: "No handler registered for event type",
    ErrorCode.EVENT_IN_PROGRESS: "Event is already being processed",
    ErrorCode.HANDLER_FAILED: "Webhook handler failed",
    ErrorCode.INVALID_SESSION_REQUEST: "Invalid session request",
    ErrorCode.REMOTE_CLIENT_ERROR: "Payment provider rejected the request",
    ErrorCode.REMOTE_PROVIDER_ERROR: "Payment provider is unavailable",
    ErrorCode.CONFIGURATION_ERROR: "Invalid configuration",
}


class ErrorResponse(BaseModel):
    """JSON body returned for every failed request."""

    model_config = ConfigDict(strict=True)

    message: str
    error_code: Optional[str] = None
    details: Optional[Any] = None


class PaygateError(Exception):
    """Base exception for all gateway failures.

    Subclasses fix the ErrorCode; the message defaults to ERROR_MESSAGES.
    """

    code: ErrorCode = ErrorCode.CONFIGURATION_ERROR

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Any] = None,
    ):
        self.message = message or ERROR_MESSAGES[self.code]
        self.details = details
        super().__init__(self.message)

    @property
    def public_message(self) -> str:
        """Message that is safe to return to the caller."""
        return self.message

    def to_response(self) -> ErrorResponse:
        """Convert this exception to the standard error body."""
        return ErrorResponse(
            message=self.public_message,
            error_code=self.code.value,
            details=self.details,
        )


class ConfigurationError(PaygateError):
    """Raised when settings cannot be loaded or are invalid."""

    code = ErrorCode.CONFIGURATION_ERROR


class BodyReadError(PaygateError):
    """Raised when the raw request body cannot be captured."""

    code = ErrorCode.BODY_READ_FAILED


class BodyTooLargeError(BodyReadError):
    """Raised when the request body exceeds the configured maximum."""

    code = ErrorCode.BODY_TOO_LARGE


class VerificationError(PaygateError):
    """Base class for webhook verification failures."""

    code = ErrorCode.MALFORMED_PAYLOAD


class MissingSignatureHeaderError(VerificationError):
    code = ErrorCode.MISSING_SIGNATURE_HEADER


class MalformedSignatureHeaderError(VerificationError):
    code = ErrorCode.MALFORMED_SIGNATURE_HEADER


class NoMatchingSecretError(VerificationError):
    code = ErrorCode.NO_MATCHING_SECRET

    @property
    def public_message(self) -> str:
        return GENERIC_SIGNATURE_FAILURE


class TimestampOutOfToleranceError(VerificationError):
    code = ErrorCode.TIMESTAMP_OUT_OF_TOLERANCE

    @property
    def public_message(self) -> str:
        return GENERIC_SIGNATURE_FAILURE


class MalformedPayloadError(VerificationError):
    code = ErrorCode.MALFORMED_PAYLOAD


class UnhandledEventTypeError(PaygateError):
    """An allow-listed event type has no registered handler."""

    code = ErrorCode.UNHANDLED_EVENT_TYPE

    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"No handler registered for event type '{event_type}'")


class InvalidSessionRequestError(PaygateError):
    """Raised when a session request fails validation.

    details holds a list of {"field": ..., "message": ...} entries.
    """

    code = ErrorCode.INVALID_SESSION_REQUEST


class RemoteSessionError(PaygateError):
    """Raised when the payment provider fails to create a session."""

    code = ErrorCode.REMOTE_PROVIDER_ERROR

    def __init__(
        self,
        message: str,
        *,
        http_status: Optional[int] = None,
        provider_code: Optional[str] = None,
    ):
        self.http_status = http_status
        self.provider_code = provider_code
        super().__init__(
            message,
            details={"provider_status": http_status, "provider_code": provider_code},
        )

    @property
    def is_client_error(self) -> bool:
        """True when the provider rejected the request itself (4xx)."""
        return self.http_status is not None and 400 <= self.http_status < 500

    @property
    def code(self) -> ErrorCode:  # type: ignore[override]
        if self.is_client_error:
            return ErrorCode.REMOTE_CLIENT_ERROR
        return ErrorCode.REMOTE_PROVIDER_ERROR
