"""Response models for the webhook endpoint."""

from pydantic import BaseModel, Field


class WebhookResponse(BaseModel):
    """Body returned when an event is acknowledged."""

    message: str = Field(default="Received", examples=["Received"])


class MessageResponse(BaseModel):
    """Body for webhook failures that ask the provider to redeliver."""

    message: str
