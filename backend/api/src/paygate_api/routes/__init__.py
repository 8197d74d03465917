"""API routes package.

Routers are organized by domain:

- webhooks: Signed Stripe event deliveries
- sessions: Checkout session and payment intent creation

All routers are registered in main.py with /api prefix.
"""

from paygate_api.routes.sessions import router as sessions_router
from paygate_api.routes.webhooks import router as webhooks_router

__all__ = [
    "sessions_router",
    "webhooks_router",
]
