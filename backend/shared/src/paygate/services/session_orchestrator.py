"""Payment session creation.

Validates a caller's request, creates the matching Stripe object exactly once
and tells the caller how to continue:

- redirect: the session has a hosted page url (hosted checkout)
- confirm: the session has a client_secret to confirm client-side
  (payment intents, embedded checkout)

Nothing is stored locally; the webhook stream reports what happens next.
"""

from typing import Any, Protocol

from pydantic import ValidationError

from paygate.models.errors import InvalidSessionRequestError, RemoteSessionError
from paygate.models.sessions import (
    REQUEST_MODELS,
    CreatedSession,
    SessionKind,
    SessionRequest,
    SessionResult,
)
from paygate.utils.logging import get_logger, log_session_operation

logger = get_logger(__name__)


class SessionGateway(Protocol):
    """The remote call SessionOrchestrator depends on (StripeService in production)."""

    def create_session(self, kind: SessionKind, params: dict[str, Any]) -> dict[str, Any]: ...


def _field_errors(error: ValidationError) -> list[dict[str, str]]:
    details = []
    for item in error.errors():
        field = ".".join(str(part) for part in item["loc"]) or "body"
        details.append({"field": field, "message": item["msg"]})
    return details


def shape_result(session: dict[str, Any]) -> SessionResult:
    """Decide how the caller continues with a created session.

    Raises:
        RemoteSessionError: If the session carries neither a url nor a client_secret.
    """
    url = session.get("url")
    if url:
        return SessionResult.redirect(url)
    client_secret = session.get("client_secret")
    if client_secret:
        return SessionResult.confirm(client_secret)
    raise RemoteSessionError("Payment provider returned a session without a url or client_secret")


class SessionOrchestrator:
    """Creates checkout sessions and payment intents."""

    def __init__(self, gateway: SessionGateway) -> None:
        self._gateway = gateway

    def validate(self, kind: SessionKind | str, payload: Any) -> SessionRequest:
        """Validate payload as a request of the given kind.

        Raises:
            InvalidSessionRequestError: With [{field, message}] details.
        """
        try:
            kind = SessionKind(kind)
        except ValueError as e:
            raise InvalidSessionRequestError(
                f"Unknown session kind '{kind}'",
                details=[{"field": "kind", "message": str(e)}],
            ) from e

        if not isinstance(payload, dict):
            raise InvalidSessionRequestError(
                details=[{"field": "body", "message": "Request body must be a JSON object"}]
            )

        try:
            return REQUEST_MODELS[kind].model_validate(payload)
        except ValidationError as e:
            details = _field_errors(e)
            log_session_operation(
                logger,
                "validate_request",
                session_kind=kind.value,
                rejected=f"{len(details)} invalid field(s)",
            )
            raise InvalidSessionRequestError(details=details) from e

    def create_session(self, kind: SessionKind | str, payload: Any) -> CreatedSession:
        """Validate payload and create the session remotely.

        Args:
            kind: checkout_session or payment_intent
            payload: Decoded JSON request body

        Returns:
            CreatedSession with the shaped result and the provider's session.

        Raises:
            InvalidSessionRequestError: If validation fails (no remote call is made).
            RemoteSessionError: If the provider fails or returns an unusable session.
        """
        request = self.validate(kind, payload)
        kind = SessionKind(kind)

        try:
            session = self._gateway.create_session(kind, request.to_params())
            result = shape_result(session)
        except RemoteSessionError as e:
            log_session_operation(
                logger,
                "create_session",
                session_kind=kind.value,
                error=e.message,
                provider_status=e.http_status,
            )
            raise

        created = CreatedSession(session_kind=kind, result=result, session=session)
        log_session_operation(
            logger,
            "create_session",
            session_kind=kind.value,
            session_id=created.session_id,
            result_kind=result.kind.value,
            status=session.get("status"),
        )
        return created
