"""SSM Parameter Store access for Stripe credentials.

Credentials live as SecureString parameters under one path per environment:

    {prefix}/{environment}/stripe/secret_key
    {prefix}/{environment}/stripe/webhook_secrets   (comma-separated, newest first)

They are read once, while settings load, for whichever values the
environment does not already supply.
"""

import logging
from functools import lru_cache
from typing import NamedTuple

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

SECRET_KEY = "secret_key"
WEBHOOK_SECRETS = "webhook_secrets"


class SSMServiceError(Exception):
    """Raised when SSM parameter retrieval fails."""

    pass


class StripeCredentials(NamedTuple):
    """Credentials read from SSM; values that were not requested are empty."""

    secret_key: str | None
    webhook_secrets: tuple[str, ...]


def stripe_parameter_path(prefix: str, environment: str, name: str) -> str:
    """Return the SSM path of one Stripe credential."""
    return f"{prefix.rstrip('/')}/{environment}/stripe/{name}"


class SSMService:
    """Reads Stripe credentials from AWS SSM Parameter Store.

    Usage:
        ssm = SSMService()
        credentials = ssm.get_stripe_credentials("/paygate", "prod")
    """

    def __init__(self, region_name: str | None = None) -> None:
        """Initialize the SSM client.

        Args:
            region_name: AWS region. Defaults to the boto3 resolution chain.
        """
        self._client = boto3.client("ssm", region_name=region_name)

    def get_stripe_credentials(
        self,
        prefix: str,
        environment: str,
        *,
        secret_key: bool = True,
        webhook_secrets: bool = True,
    ) -> StripeCredentials:
        """Fetch the requested Stripe credentials in a single call.

        Args:
            prefix: Parameter path prefix (e.g., "/paygate")
            environment: Deployment environment (e.g., "prod")
            secret_key: Whether to fetch the API secret key
            webhook_secrets: Whether to fetch the webhook signing secrets

        Returns:
            StripeCredentials with the webhook secrets split on commas.

        Raises:
            SSMServiceError: If a requested parameter is missing or unreadable.
        """
        wanted = [
            name
            for name, requested in ((SECRET_KEY, secret_key), (WEBHOOK_SECRETS, webhook_secrets))
            if requested
        ]
        values = self._get_parameters(
            {stripe_parameter_path(prefix, environment, name): name for name in wanted}
        )

        raw_secrets = values.get(WEBHOOK_SECRETS, "")
        return StripeCredentials(
            secret_key=values.get(SECRET_KEY),
            webhook_secrets=tuple(s.strip() for s in raw_secrets.split(",") if s.strip()),
        )

    def _get_parameters(self, paths: dict[str, str]) -> dict[str, str]:
        """Map each credential name in paths (path -> name) to its decrypted value."""
        if not paths:
            return {}

        try:
            logger.info("Fetching SSM parameters: %s", ", ".join(paths))
            response = self._client.get_parameters(Names=list(paths), WithDecryption=True)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code == "AccessDeniedException":
                raise SSMServiceError(
                    f"Access denied to SSM parameters: {', '.join(paths)}. "
                    "Check IAM permissions for ssm:GetParameters."
                ) from e
            raise SSMServiceError(f"Failed to retrieve SSM parameters: {e}") from e

        missing = response.get("InvalidParameters", [])
        if missing:
            raise SSMServiceError(f"SSM parameter not found: {', '.join(missing)}")

        return {paths[param["Name"]]: param["Value"] for param in response["Parameters"]}


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Get the shared SSMService instance (singleton pattern).

    Returns:
        SSMService: Shared service instance.
    """
    return SSMService()
