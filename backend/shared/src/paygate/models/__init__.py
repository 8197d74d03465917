"""Pydantic models for webhook events, payment sessions and errors."""

from .errors import (
    ERROR_MESSAGES,
    ErrorCode,
    ErrorResponse,
    PaygateError,
)
from .events import (
    EVENT_PAYMENT_STATES,
    SUPPORTED_EVENT_TYPES,
    DedupeRecord,
    DispatchOutcome,
    DispatchResult,
    PaymentState,
    SignedRequest,
    VerifiedEvent,
)
from .sessions import (
    CheckoutSessionRequest,
    CreatedSession,
    CustomField,
    PaymentIntentRequest,
    ResultKind,
    SessionKind,
    SessionResult,
)

__all__ = [
    # Errors
    "ERROR_MESSAGES",
    "ErrorCode",
    "ErrorResponse",
    "PaygateError",
    # Events
    "EVENT_PAYMENT_STATES",
    "SUPPORTED_EVENT_TYPES",
    "DedupeRecord",
    "DispatchOutcome",
    "DispatchResult",
    "PaymentState",
    "SignedRequest",
    "VerifiedEvent",
    # Sessions
    "CheckoutSessionRequest",
    "CreatedSession",
    "CustomField",
    "PaymentIntentRequest",
    "ResultKind",
    "SessionKind",
    "SessionResult",
]
