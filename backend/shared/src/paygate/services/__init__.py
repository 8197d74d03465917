"""Webhook and payment session services."""

from .dedupe_store import DedupeStore, DynamoDBDedupeStore, InMemoryDedupeStore
from .dispatcher import EventDispatcher
from .dynamodb import DynamoDBService
from .session_orchestrator import SessionOrchestrator
from .signature import SignatureVerifier, sign_payload
from .ssm_service import SSMService, SSMServiceError, StripeCredentials, get_ssm_service
from .stripe_service import StripeService

__all__ = [
    "DedupeStore",
    "DynamoDBDedupeStore",
    "InMemoryDedupeStore",
    "EventDispatcher",
    "DynamoDBService",
    "SessionOrchestrator",
    "SignatureVerifier",
    "sign_payload",
    "SSMService",
    "SSMServiceError",
    "StripeCredentials",
    "get_ssm_service",
    "StripeService",
]
