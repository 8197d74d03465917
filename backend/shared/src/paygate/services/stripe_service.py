"""Stripe gateway for creating checkout sessions and payment intents.

Uses the StripeClient pattern. The client is built lazily from Settings with
network retries disabled, so every create call reaches Stripe at most once.
"""

import hashlib
from typing import TYPE_CHECKING, Any

import stripe
from pydantic import SecretStr
from stripe import StripeClient

from paygate.models.errors import ConfigurationError, RemoteSessionError
from paygate.models.sessions import SessionKind
from paygate.utils.logging import get_logger

if TYPE_CHECKING:
    from paygate.config import Settings

logger = get_logger(__name__)


class StripeService:
    """Service for Stripe session creation.

    Usage:
        stripe_svc = StripeService.from_settings(settings)
        session = stripe_svc.create_session(
            SessionKind.PAYMENT_INTENT,
            {"amount": 1000, "currency": "usd"},
        )
    """

    def __init__(
        self,
        api_key: SecretStr | str | None,
        *,
        api_base: str | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        """Initialize the service without contacting Stripe.

        Args:
            api_key: Stripe secret key
            api_base: Override of the Stripe API base address (e.g. a local mock)
            timeout_seconds: Per-request network timeout
        """
        if isinstance(api_key, SecretStr):
            api_key = api_key.get_secret_value()
        self._api_key = api_key
        self._api_base = api_base
        self._timeout = timeout_seconds
        self._client: StripeClient | None = None

    @classmethod
    def from_settings(cls, settings: "Settings") -> "StripeService":
        return cls(
            settings.stripe_secret_key,
            api_base=settings.stripe_api_base,
            timeout_seconds=settings.remote_timeout_seconds,
        )

    def _get_client(self) -> StripeClient:
        """Get or create the Stripe client (lazy initialization).

        Raises:
            ConfigurationError: If no secret key is configured.
        """
        if self._client is None:
            if not self._api_key:
                raise ConfigurationError("STRIPE_SECRET_KEY is not configured")

            kwargs: dict[str, Any] = {}
            if self._api_base:
                kwargs["base_addresses"] = {"api": self._api_base}

            self._client = StripeClient(
                self._api_key,
                max_network_retries=0,
                http_client=stripe.RequestsClient(timeout=self._timeout),
                **kwargs,
            )
            logger.info("Stripe client initialized (api_base=%s)", self._api_base or "default")
        return self._client

    def create_checkout_session(self, params: dict[str, Any]) -> dict[str, Any]:
        """Create a Stripe Checkout session.

        Args:
            params: Parameters in Stripe's shape (see CheckoutSessionRequest.to_params)

        Returns:
            The session as a plain dict.

        Raises:
            RemoteSessionError: If Stripe rejects the request or cannot be reached.
        """
        client = self._get_client()
        try:
            session = client.checkout.sessions.create(params=params)
        except stripe.StripeError as e:
            raise self._wrap_error("checkout session", e) from e

        logger.info("Checkout session created: %s", session.id)
        return session.to_dict()

    def create_payment_intent(self, params: dict[str, Any]) -> dict[str, Any]:
        """Create a Stripe PaymentIntent.

        Args:
            params: Parameters in Stripe's shape (see PaymentIntentRequest.to_params)

        Returns:
            The payment intent as a plain dict.

        Raises:
            RemoteSessionError: If Stripe rejects the request or cannot be reached.
        """
        client = self._get_client()
        try:
            intent = client.payment_intents.create(params=params)
        except stripe.StripeError as e:
            raise self._wrap_error("payment intent", e) from e

        logger.info("Payment intent created: %s", intent.id)
        return intent.to_dict()

    def create_session(self, kind: SessionKind, params: dict[str, Any]) -> dict[str, Any]:
        """Create the Stripe object for a session kind."""
        if kind is SessionKind.CHECKOUT_SESSION:
            return self.create_checkout_session(params)
        return self.create_payment_intent(params)

    @staticmethod
    def _wrap_error(what: str, error: stripe.StripeError) -> RemoteSessionError:
        error_code = getattr(error, "code", None)
        http_status = getattr(error, "http_status", None)
        logger.error(
            "Stripe %s creation failed: %s (status: %s, code: %s)",
            what,
            str(error),
            http_status,
            error_code,
        )
        message = getattr(error, "user_message", None) or f"Failed to create {what}"
        return RemoteSessionError(
            message,
            http_status=http_status,
            provider_code=error_code,
        )

    @staticmethod
    def compute_payload_hash(payload: bytes) -> str:
        """Compute SHA-256 hash of a webhook payload for the dedupe record.

        Args:
            payload: Raw webhook payload bytes.

        Returns:
            Hex-encoded SHA-256 hash.
        """
        return hashlib.sha256(payload).hexdigest()
