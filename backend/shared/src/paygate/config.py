"""Process-wide configuration.

Settings are read once at startup by load_settings() and never mutated
afterwards; components receive the Settings instance (or values taken from
it) explicitly instead of reading the environment themselves.

Environment variables:
    ENVIRONMENT                     Deployment environment (default: dev)
    STRIPE_SECRET_KEY               Remote API credential
    STRIPE_WEBHOOK_SECRETS          Comma-separated webhook signing secrets
    STRIPE_WEBHOOK_SIGNING_SECRET   Single signing secret (alternative to the above)
    STRIPE_API_BASE                 Override of the remote API base address
    STRIPE_TIMEOUT_SECONDS          Remote call timeout
    STRIPE_SSM_PREFIX               SSM path prefix for credentials not set in the environment
    WEBHOOK_ALLOWED_EVENTS          Comma-separated allow-list of event types
    WEBHOOK_TOLERANCE_SECONDS       Signature timestamp tolerance
    WEBHOOK_SIGNATURE_HEADER        Name of the signature header
    WEBHOOK_SIGNATURE_SCHEMES       Comma-separated accepted signature schemes
    WEBHOOK_MAX_BODY_BYTES          Maximum accepted webhook body size
    DEDUPE_BACKEND                  memory or dynamodb
    DEDUPE_TABLE_NAME               DynamoDB table for dedupe records
    DEDUPE_RETENTION_SECONDS        How long processed event ids are remembered
    CORS_ORIGINS                    Comma-separated allowed CORS origins
"""

import os
from collections.abc import Mapping
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

from paygate.models.errors import ConfigurationError
from paygate.models.events import SUPPORTED_EVENT_TYPES
from paygate.services.ssm_service import SSMService, SSMServiceError, get_ssm_service
from paygate.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300
DEFAULT_RETENTION_SECONDS = 24 * 60 * 60
DEFAULT_MAX_BODY_BYTES = 1024 * 1024
DEFAULT_TIMEOUT_SECONDS = 10.0


class Settings(BaseModel):
    """Immutable configuration consumed by the core components."""

    model_config = ConfigDict(frozen=True)

    environment: str = Field(default="dev")

    # Remote payment API
    stripe_secret_key: SecretStr | None = Field(default=None)
    stripe_api_base: str | None = Field(default=None)
    remote_timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)

    # Webhook verification
    webhook_secrets: tuple[SecretStr, ...] = Field(default=())
    signature_header: str = Field(default="Stripe-Signature", min_length=1)
    signature_schemes: tuple[str, ...] = Field(default=("v1",), min_length=1)
    signature_tolerance_seconds: int = Field(default=DEFAULT_TOLERANCE_SECONDS, gt=0)
    max_body_bytes: int = Field(default=DEFAULT_MAX_BODY_BYTES, gt=0)

    # Event dispatch
    allowed_event_types: frozenset[str] = Field(default=SUPPORTED_EVENT_TYPES)
    dedupe_backend: Literal["memory", "dynamodb"] = Field(default="memory")
    dedupe_table_name: str = Field(default="paygate-webhook-events")
    dedupe_retention_seconds: int = Field(default=DEFAULT_RETENTION_SECONDS, gt=0)

    cors_origins: tuple[str, ...] = Field(
        default=("http://localhost:3000", "http://127.0.0.1:3000")
    )


def _split_csv(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _load_ssm_credentials(
    raw: dict[str, object],
    prefix: str,
    environment: str,
    ssm: SSMService,
) -> None:
    """Fill Stripe credentials missing from the environment from SSM."""
    try:
        credentials = ssm.get_stripe_credentials(
            prefix,
            environment,
            secret_key=not raw.get("stripe_secret_key"),
            webhook_secrets=not raw.get("webhook_secrets"),
        )
    except SSMServiceError as e:
        raise ConfigurationError(f"Failed to load Stripe credentials: {e}") from e

    if credentials.secret_key:
        raw["stripe_secret_key"] = credentials.secret_key
    if credentials.webhook_secrets:
        raw["webhook_secrets"] = credentials.webhook_secrets


def load_settings(
    environ: Mapping[str, str] | None = None,
    ssm: SSMService | None = None,
) -> Settings:
    """Build Settings from environment variables (and SSM when configured).

    Args:
        environ: Mapping to read instead of os.environ (for tests)
        ssm: SSM service to use instead of the shared instance

    Returns:
        Validated, immutable Settings.

    Raises:
        ConfigurationError: If a value is missing or invalid.
    """
    env = os.environ if environ is None else environ
    environment = env.get("ENVIRONMENT", "dev")

    secrets = _split_csv(env.get("STRIPE_WEBHOOK_SECRETS")) or _split_csv(
        env.get("STRIPE_WEBHOOK_SIGNING_SECRET")
    )

    raw: dict[str, object] = {
        "environment": environment,
        "stripe_secret_key": env.get("STRIPE_SECRET_KEY") or None,
        "stripe_api_base": env.get("STRIPE_API_BASE") or None,
        "webhook_secrets": secrets,
    }

    optional = {
        "remote_timeout_seconds": env.get("STRIPE_TIMEOUT_SECONDS"),
        "signature_header": env.get("WEBHOOK_SIGNATURE_HEADER"),
        "signature_tolerance_seconds": env.get("WEBHOOK_TOLERANCE_SECONDS"),
        "max_body_bytes": env.get("WEBHOOK_MAX_BODY_BYTES"),
        "dedupe_backend": env.get("DEDUPE_BACKEND"),
        "dedupe_table_name": env.get("DEDUPE_TABLE_NAME"),
        "dedupe_retention_seconds": env.get("DEDUPE_RETENTION_SECONDS"),
    }
    raw.update({key: value for key, value in optional.items() if value})

    for key, var in (
        ("signature_schemes", "WEBHOOK_SIGNATURE_SCHEMES"),
        ("allowed_event_types", "WEBHOOK_ALLOWED_EVENTS"),
        ("cors_origins", "CORS_ORIGINS"),
    ):
        values = _split_csv(env.get(var))
        if values:
            raw[key] = values

    ssm_prefix = env.get("STRIPE_SSM_PREFIX")
    if ssm_prefix and not (raw["stripe_secret_key"] and raw["webhook_secrets"]):
        _load_ssm_credentials(raw, ssm_prefix, environment, ssm or get_ssm_service())

    try:
        settings = Settings.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    logger.info(
        "Settings loaded for environment %s (%d webhook secret(s), dedupe=%s)",
        settings.environment,
        len(settings.webhook_secrets),
        settings.dedupe_backend,
    )
    return settings
