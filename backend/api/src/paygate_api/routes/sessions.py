"""Payment session endpoints.

Provides REST endpoints for:
- Creating Stripe Checkout sessions (hosted redirect or embedded)
- Creating Stripe PaymentIntents (confirmed client-side)

The JSON body is passed to SessionOrchestrator undecoded by FastAPI, so that
validation failures come back as {message, error_code, details} with one
{field, message} entry per invalid field.
"""

import json
from typing import Any

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool
from starlette.status import HTTP_201_CREATED

from paygate.models.errors import InvalidSessionRequestError
from paygate.models.sessions import SessionKind
from paygate.services.session_orchestrator import SessionOrchestrator
from paygate_api.dependencies import get_session_orchestrator

router = APIRouter(tags=["sessions"])

SESSION_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"description": "Invalid request, or Stripe rejected it"},
    502: {"description": "Stripe failed or could not be reached"},
}


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidSessionRequestError(
            details=[{"field": "body", "message": "Request body is not valid JSON"}]
        ) from e


@router.post(
    "/stripe/checkout/sessions/create",
    summary="Create checkout session",
    description="""
Create a Stripe Checkout session.

Body fields: `mode` (payment, one_time, subscription, setup), `line_items`,
`success_url`, `cancel_url`, up to 2 `custom_fields` (each with an optional
`label`), `customer_email`, `ui_mode` (hosted or embedded), `return_url`
(embedded only), `metadata`. Instead of `line_items`, an ad-hoc price may be
given as `amount` (positive, minor units) and `currency` (gbp, eur, usd), with
an optional `product_name`.

**Notes:**
- Hosted sessions carry a `url` to redirect the buyer to
- Embedded sessions carry a `client_secret` to mount Stripe's UI
- The response is Stripe's full session object
""",
    status_code=HTTP_201_CREATED,
    responses=SESSION_ERROR_RESPONSES,
)
async def create_checkout_session(
    request: Request,
    orchestrator: SessionOrchestrator = Depends(get_session_orchestrator),
) -> dict[str, Any]:
    payload = await _read_json(request)
    created = await run_in_threadpool(
        orchestrator.create_session, SessionKind.CHECKOUT_SESSION, payload
    )
    return created.session


@router.post(
    "/stripe/payment-intents/create",
    summary="Create payment intent",
    description="""
Create a Stripe PaymentIntent.

Body fields: `amount` (positive, minor units), `currency` (gbp, eur, usd),
`receipt_email`, `description`, `metadata`, `automatic_payment_methods`.

The response is Stripe's full payment intent; confirm it client-side with
its `client_secret`.
""",
    status_code=HTTP_201_CREATED,
    responses=SESSION_ERROR_RESPONSES,
)
async def create_payment_intent(
    request: Request,
    orchestrator: SessionOrchestrator = Depends(get_session_orchestrator),
) -> dict[str, Any]:
    payload = await _read_json(request)
    created = await run_in_threadpool(
        orchestrator.create_session, SessionKind.PAYMENT_INTENT, payload
    )
    return created.session
