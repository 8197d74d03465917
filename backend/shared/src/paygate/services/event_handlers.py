"""Built-in handlers for the supported provider event types.

Each handler reports the payment state its event announces for the
referenced checkout session or payment intent. Applications that need real
side effects (fulfilment, emails...) register their own handlers in place of
these through EventDispatcher's registry.
"""

from collections.abc import Callable

from paygate.models.events import EVENT_PAYMENT_STATES, PaymentState, VerifiedEvent
from paygate.utils.logging import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[VerifiedEvent], None]

# Checkout payment_status values that need no further payment event
SETTLED_PAYMENT_STATUSES = (None, "paid", "no_payment_required")


def _report_state(event: VerifiedEvent, object_kind: str, **context: object) -> PaymentState:
    state = EVENT_PAYMENT_STATES[event.type]
    obj = event.data_object
    logger.info(
        "%s %s is %s (event %s)",
        object_kind,
        obj.get("id", "<unknown>"),
        state.value,
        event.id,
        extra={
            "event_id": event.id,
            "event_type": event.type,
            "object_id": obj.get("id"),
            "payment_state": state.value,
            "livemode": event.livemode,
            **context,
        },
    )
    return state


def handle_checkout_session_event(event: VerifiedEvent) -> None:
    """Report the state of a checkout session.

    A completed session that is neither "paid" nor "no_payment_required" is
    still waiting on an asynchronous payment method; the outcome arrives later as
    async_payment_succeeded or async_payment_failed.
    """
    session = event.data_object
    payment_status = session.get("payment_status")

    completed = event.type == "checkout.session.completed"
    if completed and payment_status not in SETTLED_PAYMENT_STATUSES:
        logger.info(
            "Checkout session %s completed with payment_status=%s, awaiting async payment",
            session.get("id", "<unknown>"),
            payment_status,
        )
        return

    _report_state(
        event,
        "Checkout session",
        payment_status=payment_status,
        customer_email=(session.get("customer_details") or {}).get("email"),
    )


def handle_payment_intent_event(event: VerifiedEvent) -> None:
    """Report the state of a payment intent."""
    intent = event.data_object
    context: dict[str, object] = {
        "amount": intent.get("amount"),
        "currency": intent.get("currency"),
    }
    if event.type == "payment_intent.payment_failed":
        error = intent.get("last_payment_error") or {}
        context["failure_code"] = error.get("code")
    if event.type == "payment_intent.requires_action":
        context["next_action"] = (intent.get("next_action") or {}).get("type")

    _report_state(event, "Payment intent", **context)


def default_registry() -> dict[str, EventHandler]:
    """Map every supported event type to its built-in handler."""
    registry: dict[str, EventHandler] = {}
    for event_type in EVENT_PAYMENT_STATES:
        if event_type.startswith("checkout.session."):
            registry[event_type] = handle_checkout_session_event
        else:
            registry[event_type] = handle_payment_intent_event
    return registry
