"""Webhook signature verification.

The provider signs each delivery with HMAC-SHA256 over "{timestamp}.{body}"
and sends the result in a header of ordered key=value pairs:

    t=1700000000,v1=5257a869...,v1=9a1f0c3e...

Several signatures may be present (one per active signing secret during a
rotation), and several secrets may be configured on our side. A delivery is
authentic when any configured secret reproduces any provided signature for an
accepted scheme, and fresh when its timestamp is within the tolerance of now.
"""

import hashlib
import hmac
import json
import time
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone

from pydantic import SecretStr

from paygate.models.errors import (
    ConfigurationError,
    MalformedPayloadError,
    MalformedSignatureHeaderError,
    MissingSignatureHeaderError,
    NoMatchingSecretError,
    TimestampOutOfToleranceError,
)
from paygate.models.events import SignedRequest, VerifiedEvent
from paygate.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SCHEME = "v1"


def _secret_bytes(secret: SecretStr | str | bytes) -> bytes:
    if isinstance(secret, SecretStr):
        secret = secret.get_secret_value()
    if isinstance(secret, str):
        secret = secret.encode("utf-8")
    return secret


def compute_signature(secret: SecretStr | str | bytes, timestamp: int, raw_body: bytes) -> str:
    """Return the hex HMAC-SHA256 of "{timestamp}.{raw_body}" under secret."""
    signed_payload = b"%d." % timestamp + raw_body
    return hmac.new(_secret_bytes(secret), signed_payload, hashlib.sha256).hexdigest()


def sign_payload(
    raw_body: bytes,
    secret: SecretStr | str | bytes,
    timestamp: int | None = None,
    scheme: str = DEFAULT_SCHEME,
) -> str:
    """Build a signature header for raw_body, as the provider would."""
    if timestamp is None:
        timestamp = int(time.time())
    return f"t={timestamp},{scheme}={compute_signature(secret, timestamp, raw_body)}"


def parse_signature_header(header: str, schemes: Iterable[str]) -> tuple[int, list[str]]:
    """Split a signature header into its timestamp and signature values.

    Args:
        header: Raw header value
        schemes: Signature schemes to collect (e.g. {"v1"})

    Returns:
        (timestamp, signatures) with signatures in header order.

    Raises:
        MalformedSignatureHeaderError: If the timestamp or every accepted
            signature is missing.
    """
    accepted = set(schemes)
    timestamp: int | None = None
    signatures: list[str] = []

    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError as e:
                raise MalformedSignatureHeaderError() from e
        elif key in accepted and value:
            signatures.append(value)

    if timestamp is None or not signatures:
        raise MalformedSignatureHeaderError()
    return timestamp, signatures


class SignatureVerifier:
    """Verifies webhook deliveries against the configured signing secrets.

    Usage:
        verifier = SignatureVerifier(settings.webhook_secrets, tolerance_seconds=300)
        event = verifier.verify(raw_body, request.headers.get("Stripe-Signature"))
    """

    def __init__(
        self,
        secrets: Sequence[SecretStr | str | bytes],
        *,
        tolerance_seconds: int = 300,
        schemes: Sequence[str] = (DEFAULT_SCHEME,),
    ) -> None:
        if not secrets:
            raise ConfigurationError("At least one webhook signing secret is required")
        if not schemes:
            raise ConfigurationError("At least one signature scheme is required")
        self._secrets = tuple(_secret_bytes(secret) for secret in secrets)
        self._tolerance = tolerance_seconds
        self._schemes = frozenset(schemes)

    @property
    def tolerance_seconds(self) -> int:
        return self._tolerance

    def _matches(self, timestamp: int, raw_body: bytes, signatures: list[str]) -> bool:
        candidates = [signature.encode("utf-8") for signature in signatures]
        matched = False
        for secret in self._secrets:
            expected = compute_signature(secret, timestamp, raw_body).encode("ascii")
            for candidate in candidates:
                # Every pair is compared so timing does not reveal which one matched
                if hmac.compare_digest(expected, candidate):
                    matched = True
        return matched

    def verify(
        self,
        raw_body: bytes,
        signature_header: str | None,
        *,
        now: float | None = None,
    ) -> VerifiedEvent:
        """Authenticate a delivery and parse it into a VerifiedEvent.

        Args:
            raw_body: Exact request body bytes
            signature_header: Value of the signature header, if present
            now: Current unix time (defaults to time.time())

        Returns:
            The verified event.

        Raises:
            MissingSignatureHeaderError: No header was sent.
            MalformedSignatureHeaderError: The header cannot be parsed.
            NoMatchingSecretError: No secret reproduces any signature.
            TimestampOutOfToleranceError: The signature is valid but stale or
                too far in the future.
            MalformedPayloadError: The verified body is not a valid event.
        """
        if not signature_header or not signature_header.strip():
            logger.warning("Webhook rejected: missing signature header")
            raise MissingSignatureHeaderError()

        timestamp, signatures = parse_signature_header(signature_header, self._schemes)

        if not self._matches(timestamp, raw_body, signatures):
            logger.warning(
                "Webhook rejected: no signing secret matches %d signature(s)",
                len(signatures),
            )
            raise NoMatchingSecretError()

        current = time.time() if now is None else now
        if abs(current - timestamp) > self._tolerance:
            logger.warning(
                "Webhook rejected: timestamp %d is %.0fs from now (tolerance %ds)",
                timestamp,
                current - timestamp,
                self._tolerance,
            )
            raise TimestampOutOfToleranceError()

        return self._parse_event(raw_body)

    def verify_request(self, request: SignedRequest) -> VerifiedEvent:
        """Verify a SignedRequest, measuring freshness at its receipt time."""
        return self.verify(
            request.raw_body,
            request.signature_header,
            now=request.received_at.timestamp(),
        )

    @staticmethod
    def _parse_event(raw_body: bytes) -> VerifiedEvent:
        try:
            payload = json.loads(raw_body)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Webhook rejected: body is not valid JSON")
            raise MalformedPayloadError() from e

        if not isinstance(payload, dict):
            raise MalformedPayloadError("Webhook payload must be a JSON object")

        event_id = payload.get("id")
        event_type = payload.get("type")
        if not isinstance(event_id, str) or not event_id:
            raise MalformedPayloadError("Webhook payload has no event id")
        if not isinstance(event_type, str) or not event_type:
            raise MalformedPayloadError("Webhook payload has no event type")

        created = payload.get("created")
        created_at = None
        if isinstance(created, int) and not isinstance(created, bool):
            try:
                created_at = datetime.fromtimestamp(created, tz=timezone.utc)
            except (OverflowError, OSError, ValueError) as e:
                raise MalformedPayloadError("Webhook payload has an invalid created time") from e

        return VerifiedEvent(
            id=event_id,
            type=event_type,
            created_at=created_at,
            livemode=payload.get("livemode") is True,
            payload=payload,
        )
