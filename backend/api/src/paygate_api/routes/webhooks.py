"""Webhook endpoint for Stripe events.

The endpoint does NOT use JWT or any other caller authentication: every
delivery is authenticated by its signature header instead. The body is read
as raw bytes because the signature covers the exact bytes Stripe sent.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.status import HTTP_409_CONFLICT, HTTP_500_INTERNAL_SERVER_ERROR

from paygate.config import Settings
from paygate.models.errors import ERROR_MESSAGES, ErrorCode
from paygate.models.events import DispatchOutcome, SignedRequest
from paygate.services.body_capture import capture_body
from paygate.services.dispatcher import EventDispatcher
from paygate.services.signature import SignatureVerifier
from paygate.services.stripe_service import StripeService
from paygate_api.dependencies import (
    get_event_dispatcher,
    get_settings,
    get_signature_verifier,
)
from paygate_api.models.webhooks import MessageResponse, WebhookResponse

router = APIRouter(tags=["webhooks"])


@router.post(
    "/stripe/webhook",
    summary="Receive Stripe webhook",
    description="""
Receive a signed event from Stripe.

**Authenticated by the signature header, not by JWT.**

Processing:
1. Read the raw body (size-limited)
2. Verify the signature against every configured signing secret
3. Ignore event types outside the allow-list
4. Acknowledge redeliveries of already processed events without re-running handlers
5. Run the handler for the event type

Any acknowledged outcome returns 200 so Stripe stops redelivering.
""",
    response_model=WebhookResponse,
    responses={
        200: {"description": "Event acknowledged"},
        400: {"description": "Unreadable body or failed signature verification"},
        409: {"model": MessageResponse, "description": "Event is being processed elsewhere"},
        500: {"model": MessageResponse, "description": "Handler failed; Stripe will redeliver"},
    },
)
async def stripe_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    verifier: SignatureVerifier = Depends(get_signature_verifier),
    dispatcher: EventDispatcher = Depends(get_event_dispatcher),
) -> WebhookResponse | JSONResponse:
    """Verify and dispatch a Stripe event."""
    raw_body = await capture_body(request, settings.max_body_bytes)

    event = verifier.verify_request(
        SignedRequest(
            raw_body=raw_body,
            signature_header=request.headers.get(settings.signature_header),
            received_at=datetime.now(timezone.utc),
        )
    )

    result = await run_in_threadpool(
        dispatcher.dispatch, event, StripeService.compute_payload_hash(raw_body)
    )

    if result.outcome is DispatchOutcome.FAILED:
        return JSONResponse(
            status_code=HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": ERROR_MESSAGES[ErrorCode.HANDLER_FAILED]},
        )
    if result.outcome is DispatchOutcome.IN_PROGRESS:
        return JSONResponse(
            status_code=HTTP_409_CONFLICT,
            content={"message": ERROR_MESSAGES[ErrorCode.EVENT_IN_PROGRESS]},
        )

    return WebhookResponse(message="Received")
