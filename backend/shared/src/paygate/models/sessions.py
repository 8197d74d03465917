"""Payment session request and result models.

Requests are validated here before anything reaches the payment provider.
to_params() renders each request in the provider's parameter shape.
"""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    StrictBool,
    field_validator,
    model_validator,
)

MAX_CUSTOM_FIELDS = 2
DEFAULT_PRODUCT_NAME = "Payment"


class SessionKind(str, Enum):
    """Which provider object a session request creates."""

    CHECKOUT_SESSION = "checkout_session"
    PAYMENT_INTENT = "payment_intent"


class ResultKind(str, Enum):
    """How the caller continues once a session exists."""

    REDIRECT = "redirect"
    CONFIRM = "confirm"


class CheckoutMode(str, Enum):
    PAYMENT = "payment"
    SUBSCRIPTION = "subscription"
    SETUP = "setup"


class Currency(str, Enum):
    GBP = "gbp"
    EUR = "eur"
    USD = "usd"


class CustomFieldType(str, Enum):
    NUMERIC = "numeric"
    TEXT = "text"


def _lowercase_currency(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


class CustomFieldLabel(BaseModel):
    """Text shown to the buyer next to a custom field."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["custom"] = Field(default="custom")
    custom: str = Field(..., min_length=1, max_length=50, examples=["FREE engraving"])


class CustomField(BaseModel):
    """A buyer-supplied field collected on the hosted checkout page."""

    model_config = ConfigDict(extra="forbid")

    key: str = Field(..., min_length=1, max_length=200, examples=["engraving"])
    type: CustomFieldType = Field(..., examples=["text"])
    optional: StrictBool = Field(..., examples=[False])
    label: Optional[CustomFieldLabel] = Field(default=None, description="Defaults to the key")

    @field_validator("key")
    @classmethod
    def _key_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("key must not be blank")
        return value

    def to_params(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "label": (
                self.label.model_dump() if self.label else {"type": "custom", "custom": self.key}
            ),
            "type": self.type.value,
            "optional": self.optional,
        }


class LineItem(BaseModel):
    """A price reference and quantity."""

    model_config = ConfigDict(extra="forbid")

    price: str = Field(..., min_length=1, examples=["price_1MlenFBDB9fVNtrX"])
    quantity: int = Field(default=1, ge=1)


class CheckoutSessionRequest(BaseModel):
    """Request for a hosted (redirect) or embedded (client secret) checkout session."""

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "examples": [
                {
                    "mode": "payment",
                    "line_items": [{"price": "price_123", "quantity": 1}],
                    "success_url": "https://example.com/success",
                    "cancel_url": "https://example.com/cancel",
                    "custom_fields": [
                        {
                            "key": "engraving",
                            "label": {"type": "custom", "custom": "FREE engraving"},
                            "type": "text",
                            "optional": False,
                        },
                        {"key": "invoice", "type": "numeric", "optional": True},
                    ],
                    "customer_email": "4242@stripe.com",
                }
            ]
        },
    )

    mode: CheckoutMode = Field(default=CheckoutMode.PAYMENT)
    line_items: list[LineItem] = Field(default_factory=list)
    ui_mode: Literal["hosted", "embedded"] = Field(default="hosted")
    success_url: Optional[str] = Field(default=None)
    cancel_url: Optional[str] = Field(default=None)
    return_url: Optional[str] = Field(default=None)
    custom_fields: list[CustomField] = Field(default_factory=list, max_length=MAX_CUSTOM_FIELDS)
    customer_email: Optional[EmailStr] = Field(default=None)
    metadata: Optional[dict[str, str]] = Field(default=None)

    # Ad-hoc price, used instead of line_items
    amount: Optional[int] = Field(
        default=None, gt=0, strict=True, description="Amount in the currency's minor unit"
    )
    currency: Optional[Currency] = Field(default=None)
    product_name: Optional[str] = Field(default=None, min_length=1, max_length=250)

    _normalize_currency = field_validator("currency", mode="before")(_lowercase_currency)

    @field_validator("mode", mode="before")
    @classmethod
    def _one_time_is_payment(cls, value: Any) -> Any:
        # "one_time" prices are sold through the payment mode
        if value == "one_time":
            return CheckoutMode.PAYMENT.value
        return value

    @model_validator(mode="after")
    def _check_mode_requirements(self) -> "CheckoutSessionRequest":
        if (self.amount is None) != (self.currency is None):
            raise ValueError("amount and currency must be given together")
        if self.amount is not None and self.line_items:
            raise ValueError("amount cannot be combined with line_items")
        if self.product_name and self.amount is None:
            raise ValueError("product_name requires amount and currency")
        if self.mode != CheckoutMode.SETUP and not (self.line_items or self.amount):
            raise ValueError(f"line_items are required in {self.mode.value} mode")
        if self.ui_mode == "hosted" and not self.success_url:
            raise ValueError("success_url is required for hosted checkout")
        if self.ui_mode == "embedded" and not self.return_url:
            raise ValueError("return_url is required for embedded checkout")
        return self

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"mode": self.mode.value}
        if self.line_items:
            params["line_items"] = [item.model_dump() for item in self.line_items]
        elif self.amount is not None and self.currency is not None:
            params["line_items"] = [
                {
                    "price_data": {
                        "currency": self.currency.value,
                        "unit_amount": self.amount,
                        "product_data": {"name": self.product_name or DEFAULT_PRODUCT_NAME},
                    },
                    "quantity": 1,
                }
            ]
        if self.ui_mode == "embedded":
            params["ui_mode"] = "embedded"
            params["return_url"] = self.return_url
        else:
            params["success_url"] = self.success_url
            if self.cancel_url:
                params["cancel_url"] = self.cancel_url
        if self.custom_fields:
            params["custom_fields"] = [field.to_params() for field in self.custom_fields]
        if self.customer_email:
            params["customer_email"] = str(self.customer_email)
        if self.metadata:
            params["metadata"] = dict(self.metadata)
        return params


class AutomaticPaymentMethods(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: StrictBool = True


class PaymentIntentRequest(BaseModel):
    """Request for a payment intent confirmed client-side with its client secret."""

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={"examples": [{"amount": 1000, "currency": "usd"}]},
    )

    amount: int = Field(..., gt=0, strict=True, description="Amount in the currency's minor unit")
    currency: Currency = Field(...)
    automatic_payment_methods: AutomaticPaymentMethods = Field(
        default_factory=AutomaticPaymentMethods
    )
    receipt_email: Optional[EmailStr] = Field(default=None)
    description: Optional[str] = Field(default=None, max_length=1000)
    metadata: Optional[dict[str, str]] = Field(default=None)

    _normalize_currency = field_validator("currency", mode="before")(_lowercase_currency)

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {
            "amount": self.amount,
            "currency": self.currency.value,
            "automatic_payment_methods": self.automatic_payment_methods.model_dump(),
        }
        if self.receipt_email:
            params["receipt_email"] = str(self.receipt_email)
        if self.description:
            params["description"] = self.description
        if self.metadata:
            params["metadata"] = dict(self.metadata)
        return params


SessionRequest = CheckoutSessionRequest | PaymentIntentRequest

REQUEST_MODELS: dict[SessionKind, type[CheckoutSessionRequest] | type[PaymentIntentRequest]] = {
    SessionKind.CHECKOUT_SESSION: CheckoutSessionRequest,
    SessionKind.PAYMENT_INTENT: PaymentIntentRequest,
}


class SessionResult(BaseModel):
    """What the caller needs to continue: a redirect URL or a client secret, never both."""

    model_config = ConfigDict(frozen=True)

    kind: ResultKind
    url: Optional[str] = None
    client_secret: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_target(self) -> "SessionResult":
        if self.kind == ResultKind.REDIRECT and (not self.url or self.client_secret):
            raise ValueError("redirect results carry a url and no client_secret")
        if self.kind == ResultKind.CONFIRM and (not self.client_secret or self.url):
            raise ValueError("confirm results carry a client_secret and no url")
        return self

    @classmethod
    def redirect(cls, url: str) -> "SessionResult":
        return cls(kind=ResultKind.REDIRECT, url=url)

    @classmethod
    def confirm(cls, client_secret: str) -> "SessionResult":
        return cls(kind=ResultKind.CONFIRM, client_secret=client_secret)


class CreatedSession(BaseModel):
    """A session created by the provider, with its shaped result."""

    model_config = ConfigDict(frozen=True)

    session_kind: SessionKind
    result: SessionResult
    session: dict[str, Any] = Field(..., description="The provider's full representation")

    @property
    def session_id(self) -> str | None:
        return self.session.get("id")
