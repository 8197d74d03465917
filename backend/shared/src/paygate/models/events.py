"""Webhook event models: inbound requests, verified events and dedupe records."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PaymentState(str, Enum):
    """Payment lifecycle as reported by the provider's events.

    The provider owns this state; it is only observed through events.
    """

    CREATED = "created"
    REQUIRES_ACTION = "requires_action"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


# Event types the gateway knows how to handle, and the state each one reports
EVENT_PAYMENT_STATES: dict[str, PaymentState] = {
    "checkout.session.completed": PaymentState.SUCCEEDED,
    "checkout.session.async_payment_succeeded": PaymentState.SUCCEEDED,
    "checkout.session.async_payment_failed": PaymentState.FAILED,
    "checkout.session.expired": PaymentState.CANCELED,
    "payment_intent.created": PaymentState.CREATED,
    "payment_intent.requires_action": PaymentState.REQUIRES_ACTION,
    "payment_intent.succeeded": PaymentState.SUCCEEDED,
    "payment_intent.payment_failed": PaymentState.FAILED,
    "payment_intent.canceled": PaymentState.CANCELED,
}

SUPPORTED_EVENT_TYPES: frozenset[str] = frozenset(EVENT_PAYMENT_STATES)


class SignedRequest(BaseModel):
    """An inbound webhook delivery before verification."""

    model_config = ConfigDict(frozen=True)

    raw_body: bytes
    signature_header: str | None = None
    received_at: datetime


class VerifiedEvent(BaseModel):
    """A provider event whose signature has been verified.

    Only SignatureVerifier creates these; handlers may trust every field.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Provider event ID (evt_xxx)", examples=["evt_1ABC123"])
    type: str = Field(
        ...,
        description="Provider event type",
        examples=["checkout.session.completed"],
    )
    created_at: datetime | None = Field(default=None, description="When the provider emitted the event")
    livemode: bool = Field(default=False)
    payload: dict[str, Any] = Field(..., description="The full parsed request body")

    @property
    def data_object(self) -> dict[str, Any]:
        """The object the event is about (session, intent, charge...)."""
        data = self.payload.get("data") or {}
        obj = data.get("object") if isinstance(data, dict) else None
        return obj if isinstance(obj, dict) else {}


class DedupeRecord(BaseModel):
    """A processed event id, kept until expires_at to absorb redeliveries."""

    model_config = ConfigDict(strict=True)

    event_id: str = Field(..., description="Provider event ID")
    event_type: str = Field(default="", description="Provider event type")
    processed_at: datetime = Field(..., description="When the handler succeeded")
    expires_at: datetime = Field(..., description="When the record may be purged")
    payload_hash: str = Field(default="", description="SHA-256 of the raw body, for auditing")


class DispatchOutcome(str, Enum):
    """How the dispatcher disposed of an event."""

    PROCESSED = "processed"
    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    UNHANDLED = "unhandled"
    IN_PROGRESS = "in_progress"
    FAILED = "failed"


class DispatchResult(BaseModel):
    """Result of dispatching one verified event."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    outcome: DispatchOutcome
    event_id: str
    event_type: str
    error: Exception | None = None

    @property
    def acknowledged(self) -> bool:
        """True when the provider should not redeliver the event."""
        return self.outcome not in (DispatchOutcome.FAILED, DispatchOutcome.IN_PROGRESS)
