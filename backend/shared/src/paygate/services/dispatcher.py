"""Routes verified webhook events to their handlers exactly once.

Processing order for each event:
1. Allow-list gate: types outside the allow-list are acknowledged and ignored
2. Dedupe gate: event ids already processed are acknowledged as duplicates
3. Handler: runs synchronously; success records the event id

A handler failure records nothing, so the provider's redelivery runs the
handler again.
"""

from collections.abc import Iterable, Mapping

from paygate.models.errors import UnhandledEventTypeError
from paygate.models.events import DispatchOutcome, DispatchResult, VerifiedEvent
from paygate.services.dedupe_store import ClaimStatus, DedupeStore
from paygate.services.event_handlers import EventHandler
from paygate.utils.logging import get_logger, log_webhook_event

logger = get_logger(__name__)


class EventDispatcher:
    """Dispatches verified events through the allow-list and dedupe gates.

    Usage:
        dispatcher = EventDispatcher(default_registry(), settings.allowed_event_types, store)
        result = dispatcher.dispatch(event, payload_hash=hash_of_body)
        if not result.acknowledged:
            ...  # ask the provider to redeliver
    """

    def __init__(
        self,
        registry: Mapping[str, EventHandler],
        allowed_types: Iterable[str],
        store: DedupeStore,
    ) -> None:
        self._registry = dict(registry)
        self._allowed = frozenset(allowed_types)
        self._store = store

    @property
    def allowed_types(self) -> frozenset[str]:
        return self._allowed

    def _result(
        self,
        event: VerifiedEvent,
        outcome: DispatchOutcome,
        error: Exception | None = None,
    ) -> DispatchResult:
        log_webhook_event(
            logger,
            event.type,
            event.id,
            result=outcome.value,
            error=str(error) if error else None,
        )
        return DispatchResult(
            outcome=outcome,
            event_id=event.id,
            event_type=event.type,
            error=error,
        )

    def dispatch(self, event: VerifiedEvent, payload_hash: str = "") -> DispatchResult:
        """Dispatch one verified event.

        Args:
            event: Event produced by SignatureVerifier
            payload_hash: SHA-256 of the raw body, stored with the dedupe record

        Returns:
            DispatchResult describing the outcome. Handler exceptions are
            returned in the result, never raised.
        """
        if event.type not in self._allowed:
            return self._result(event, DispatchOutcome.IGNORED)

        with self._store.claim(
            event.id, event_type=event.type, payload_hash=payload_hash
        ) as claim:
            if claim.status is ClaimStatus.PROCESSED:
                return self._result(event, DispatchOutcome.DUPLICATE)
            if claim.status is ClaimStatus.IN_PROGRESS:
                return self._result(event, DispatchOutcome.IN_PROGRESS)

            handler = self._registry.get(event.type)
            if handler is None:
                # Allow-listed without a handler is a deployment mistake; nothing is recorded
                return self._result(
                    event, DispatchOutcome.UNHANDLED, UnhandledEventTypeError(event.type)
                )

            try:
                handler(event)
            except Exception as e:
                logger.exception("Handler for %s raised while processing %s", event.type, event.id)
                return self._result(event, DispatchOutcome.FAILED, e)

            claim.commit()

        return self._result(event, DispatchOutcome.PROCESSED)
