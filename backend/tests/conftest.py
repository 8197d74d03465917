"""Pytest configuration and fixtures for the payment gateway tests.

This module provides reusable fixtures for testing:
- Environment and AWS credential setup for moto
- Cached dependency reset between tests
- A controllable clock for expiry tests
- A stub payment gateway that counts remote calls
- Signed webhook delivery helpers
"""

import json
import os
import time
from collections.abc import Callable
from typing import Any, Generator

import pytest

# === Environment Setup ===

# Set environment variables for testing before the app is imported
os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")
os.environ["ENVIRONMENT"] = "test"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_paygate"
os.environ["STRIPE_WEBHOOK_SECRETS"] = "whsec_test_secret_for_testing"
os.environ["DEDUPE_BACKEND"] = "memory"
os.environ.pop("STRIPE_SSM_PREFIX", None)

# Only set fake credentials for moto if no real credentials are present
if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")

from paygate.models.errors import RemoteSessionError  # noqa: E402
from paygate.models.events import VerifiedEvent  # noqa: E402
from paygate.models.sessions import SessionKind  # noqa: E402
from paygate.services.signature import sign_payload  # noqa: E402

TEST_WEBHOOK_SECRET = "whsec_test_secret_for_testing"


# === Dependency Reset ===


@pytest.fixture(autouse=True)
def reset_cached_services() -> Generator[None, None, None]:
    """Reset cached settings, components and singletons around each test.

    Tests that change environment variables get Settings rebuilt from them,
    and every test starts with an empty in-memory dedupe store.
    """
    from paygate.services.ssm_service import get_ssm_service
    from paygate_api.dependencies import reset_services

    reset_services()
    get_ssm_service.cache_clear()
    yield
    reset_services()
    get_ssm_service.cache_clear()


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "eu-west-1"


# === Clock ===


class FakeClock:
    """Callable clock whose time only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# === Payment Gateway Stub ===


class FakeGateway:
    """Stands in for StripeService and records every remote call.

    Returns a hosted checkout session, an embedded checkout session or a
    payment intent depending on the request. Set ``response`` to override the
    returned object or ``error`` to make the call fail.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[SessionKind, dict[str, Any]]] = []
        self.response: dict[str, Any] | None = None
        self.error: RemoteSessionError | None = None

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def create_session(self, kind: SessionKind, params: dict[str, Any]) -> dict[str, Any]:
        self.calls.append((kind, params))
        if self.error is not None:
            raise self.error
        if self.response is not None:
            return self.response

        if kind is SessionKind.PAYMENT_INTENT:
            return {
                "id": "pi_test_123",
                "object": "payment_intent",
                "amount": params["amount"],
                "currency": params["currency"],
                "status": "requires_payment_method",
                "client_secret": "pi_test_123_secret_abc",
            }
        if params.get("ui_mode") == "embedded":
            return {
                "id": "cs_test_embedded",
                "object": "checkout.session",
                "status": "open",
                "url": None,
                "client_secret": "cs_test_embedded_secret_abc",
            }
        return {
            "id": "cs_test_123",
            "object": "checkout.session",
            "status": "open",
            "url": "https://checkout.stripe.com/c/pay/cs_test_123",
            "client_secret": None,
            "customer_email": params.get("customer_email"),
        }


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


# === Webhook Helpers ===


def build_event_payload(
    event_id: str = "evt_1ABC123DEF456",
    event_type: str = "checkout.session.completed",
    data_object: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Create a webhook event body in Stripe's shape."""
    if data_object is None:
        data_object = {
            "id": "cs_test_123",
            "object": "checkout.session",
            "payment_status": "paid",
            "amount_total": 1000,
            "currency": "usd",
        }
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "livemode": False,
        "data": {"object": data_object},
    }


@pytest.fixture
def event_payload() -> Callable[..., dict[str, Any]]:
    return build_event_payload


@pytest.fixture
def verified_event() -> Callable[..., VerifiedEvent]:
    """Factory for VerifiedEvent objects, as SignatureVerifier would produce."""

    def _make(
        event_id: str = "evt_1ABC123DEF456",
        event_type: str = "checkout.session.completed",
        data_object: dict[str, Any] | None = None,
    ) -> VerifiedEvent:
        payload = build_event_payload(event_id, event_type, data_object)
        return VerifiedEvent(id=event_id, type=event_type, payload=payload)

    return _make


@pytest.fixture
def signed_delivery() -> Callable[..., tuple[bytes, dict[str, str]]]:
    """Factory for (raw_body, headers) of a correctly signed webhook delivery."""

    def _make(
        payload: dict[str, Any],
        secret: str = TEST_WEBHOOK_SECRET,
        timestamp: int | None = None,
    ) -> tuple[bytes, dict[str, str]]:
        raw_body = json.dumps(payload).encode("utf-8")
        headers = {
            "Stripe-Signature": sign_payload(raw_body, secret, timestamp),
            "Content-Type": "application/json",
        }
        return raw_body, headers

    return _make
