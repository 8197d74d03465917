"""FastAPI dependency injection providers for the gateway components.

Each provider is an @lru_cache factory, so components are built once from the
process Settings and shared by every request.

Usage in routes:
    from paygate_api.dependencies import get_event_dispatcher

    @router.post("/stripe/webhook")
    async def stripe_webhook(
        dispatcher: EventDispatcher = Depends(get_event_dispatcher),
    ):
        ...

Component Dependency Graph:
    Settings (load_settings, once)
        ├── SignatureVerifier
        ├── DedupeStore (memory, or DynamoDB via get_dynamodb_service)
        │       └── EventDispatcher
        └── StripeService
                └── SessionOrchestrator

Testing:
    Use reset_services() to clear cached instances between tests, or
    app.dependency_overrides to inject fakes.
"""

from functools import lru_cache

from paygate.config import Settings, load_settings
from paygate.services.dedupe_store import (
    DedupeStore,
    DynamoDBDedupeStore,
    InMemoryDedupeStore,
)
from paygate.services.dispatcher import EventDispatcher
from paygate.services.dynamodb import get_dynamodb_service
from paygate.services.event_handlers import default_registry
from paygate.services.session_orchestrator import SessionOrchestrator
from paygate.services.signature import SignatureVerifier
from paygate.services.stripe_service import StripeService


@lru_cache
def get_settings() -> Settings:
    """Get the process Settings, loaded on first use."""
    return load_settings()


@lru_cache
def get_dedupe_store() -> DedupeStore:
    """Get cached DedupeStore for the configured backend.

    Returns:
        DynamoDBDedupeStore when DEDUPE_BACKEND=dynamodb, else InMemoryDedupeStore.
    """
    settings = get_settings()
    if settings.dedupe_backend == "dynamodb":
        return DynamoDBDedupeStore(
            get_dynamodb_service(),
            settings.dedupe_table_name,
            settings.dedupe_retention_seconds,
        )
    return InMemoryDedupeStore(settings.dedupe_retention_seconds)


@lru_cache
def get_signature_verifier() -> SignatureVerifier:
    """Get cached SignatureVerifier for the configured signing secrets.

    Raises:
        ConfigurationError: If no webhook signing secret is configured.
    """
    settings = get_settings()
    return SignatureVerifier(
        settings.webhook_secrets,
        tolerance_seconds=settings.signature_tolerance_seconds,
        schemes=settings.signature_schemes,
    )


@lru_cache
def get_event_dispatcher() -> EventDispatcher:
    """Get cached EventDispatcher with the built-in handlers."""
    return EventDispatcher(
        default_registry(),
        get_settings().allowed_event_types,
        get_dedupe_store(),
    )


@lru_cache
def get_stripe_service() -> StripeService:
    return StripeService.from_settings(get_settings())


@lru_cache
def get_session_orchestrator() -> SessionOrchestrator:
    return SessionOrchestrator(get_stripe_service())


def reset_services() -> None:
    """Clear all cached component instances.

    Call this in test fixtures to ensure clean state between tests.
    Also resets the underlying DynamoDB singleton.
    """
    from paygate.services.dynamodb import reset_dynamodb_service

    get_settings.cache_clear()
    get_dedupe_store.cache_clear()
    get_signature_verifier.cache_clear()
    get_event_dispatcher.cache_clear()
    get_stripe_service.cache_clear()
    get_session_orchestrator.cache_clear()

    reset_dynamodb_service()
