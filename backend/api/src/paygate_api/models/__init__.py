"""API-specific request/response models.

Request shapes for session creation (CheckoutSessionRequest,
PaymentIntentRequest) live in paygate.models.sessions and are validated by
SessionOrchestrator, not by FastAPI.

Modules:
- webhooks: Webhook acknowledgement models
"""

from paygate_api.models.webhooks import MessageResponse, WebhookResponse

__all__ = ["MessageResponse", "WebhookResponse"]
