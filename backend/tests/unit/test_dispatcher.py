"""Unit tests for EventDispatcher.

Test categories:
- Processing and idempotence
- Allow-list gate
- Unhandled types and handler failures
- Claims held elsewhere
- Concurrent redeliveries
"""

import threading
from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager

import pytest

from paygate.models.errors import UnhandledEventTypeError
from paygate.models.events import SUPPORTED_EVENT_TYPES, DispatchOutcome, VerifiedEvent
from paygate.services.dedupe_store import Claim, ClaimStatus, DedupeStore, InMemoryDedupeStore
from paygate.services.dispatcher import EventDispatcher
from paygate.services.event_handlers import default_registry


class RecordingHandler:
    """Handler that counts invocations per event id."""

    def __init__(self, error: Exception | None = None) -> None:
        self.calls: Counter[str] = Counter()
        self.error = error
        self._lock = threading.Lock()

    def __call__(self, event: VerifiedEvent) -> None:
        with self._lock:
            self.calls[event.id] += 1
        if self.error is not None:
            raise self.error

    @property
    def total(self) -> int:
        return sum(self.calls.values())


class BusyStore(DedupeStore):
    """Store where every event id is claimed by another worker."""

    def __init__(self) -> None:
        super().__init__(retention_seconds=60)

    @contextmanager
    def claim(self, event_id, *, event_type="", payload_hash="") -> Iterator[Claim]:
        yield Claim(event_id, ClaimStatus.IN_PROGRESS)

    def get(self, event_id):
        return None

    def purge_expired(self) -> int:
        return 0


@pytest.fixture
def store() -> InMemoryDedupeStore:
    return InMemoryDedupeStore(retention_seconds=3600)


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def dispatcher(handler, store) -> EventDispatcher:
    return EventDispatcher(
        {"checkout.session.completed": handler, "payment_intent.succeeded": handler},
        {"checkout.session.completed", "payment_intent.succeeded", "payment_intent.canceled"},
        store,
    )


# === Processing and Idempotence ===


class TestProcessing:
    def test_new_event_is_processed(self, dispatcher, handler, verified_event):
        result = dispatcher.dispatch(verified_event("evt_1"))

        assert result.outcome is DispatchOutcome.PROCESSED
        assert result.acknowledged
        assert result.event_id == "evt_1"
        assert result.event_type == "checkout.session.completed"
        assert handler.calls["evt_1"] == 1

    def test_redelivery_is_duplicate_and_not_handled_again(
        self, dispatcher, handler, verified_event
    ):
        first = dispatcher.dispatch(verified_event("evt_1"))
        second = dispatcher.dispatch(verified_event("evt_1"))

        assert first.outcome is DispatchOutcome.PROCESSED
        assert second.outcome is DispatchOutcome.DUPLICATE
        assert first.acknowledged and second.acknowledged
        assert handler.calls["evt_1"] == 1

    def test_distinct_events_are_each_handled(self, dispatcher, handler, verified_event):
        dispatcher.dispatch(verified_event("evt_1"))
        dispatcher.dispatch(verified_event("evt_2", "payment_intent.succeeded"))

        assert handler.calls == Counter({"evt_1": 1, "evt_2": 1})

    def test_payload_hash_is_recorded(self, dispatcher, store, verified_event):
        dispatcher.dispatch(verified_event("evt_1"), payload_hash="deadbeef")

        record = store.get("evt_1")
        assert record is not None
        assert record.payload_hash == "deadbeef"
        assert record.event_type == "checkout.session.completed"


# === Allow-list ===


class TestAllowList:
    def test_type_outside_allow_list_is_ignored(self, handler, store, verified_event):
        dispatcher = EventDispatcher(
            {"checkout.session.completed": handler, "charge.refunded": handler},
            {"checkout.session.completed"},
            store,
        )

        result = dispatcher.dispatch(verified_event("evt_1", "charge.refunded"))

        assert result.outcome is DispatchOutcome.IGNORED
        assert result.acknowledged
        assert handler.total == 0
        assert store.get("evt_1") is None

    def test_ignored_events_stay_ignored_on_redelivery(self, handler, store, verified_event):
        dispatcher = EventDispatcher({"charge.refunded": handler}, set(), store)

        outcomes = [dispatcher.dispatch(verified_event("evt_1", "charge.refunded")).outcome for _ in range(3)]

        assert outcomes == [DispatchOutcome.IGNORED] * 3
        assert handler.total == 0


# === Unhandled Types and Failures ===


class TestFailures:
    def test_allowed_type_without_handler_is_unhandled(self, dispatcher, store, verified_event):
        result = dispatcher.dispatch(verified_event("evt_1", "payment_intent.canceled"))

        assert result.outcome is DispatchOutcome.UNHANDLED
        assert result.acknowledged
        assert isinstance(result.error, UnhandledEventTypeError)
        assert result.error.event_type == "payment_intent.canceled"
        assert store.get("evt_1") is None

    def test_unhandled_is_logged_as_error(self, dispatcher, verified_event, caplog):
        with caplog.at_level("ERROR"):
            dispatcher.dispatch(verified_event("evt_1", "payment_intent.canceled"))

        assert "result=unhandled" in caplog.text

    def test_handler_failure_is_reported_and_not_recorded(self, store, verified_event):
        failing = RecordingHandler(error=RuntimeError("database down"))
        dispatcher = EventDispatcher(
            {"checkout.session.completed": failing}, {"checkout.session.completed"}, store
        )

        result = dispatcher.dispatch(verified_event("evt_1"))

        assert result.outcome is DispatchOutcome.FAILED
        assert not result.acknowledged
        assert isinstance(result.error, RuntimeError)
        assert store.get("evt_1") is None

    def test_redelivery_after_failure_runs_handler_again(self, store, verified_event):
        handler = RecordingHandler(error=RuntimeError("transient"))
        dispatcher = EventDispatcher(
            {"checkout.session.completed": handler}, {"checkout.session.completed"}, store
        )

        first = dispatcher.dispatch(verified_event("evt_1"))
        handler.error = None
        second = dispatcher.dispatch(verified_event("evt_1"))
        third = dispatcher.dispatch(verified_event("evt_1"))

        assert first.outcome is DispatchOutcome.FAILED
        assert second.outcome is DispatchOutcome.PROCESSED
        assert third.outcome is DispatchOutcome.DUPLICATE
        assert handler.calls["evt_1"] == 2


# === Claims Held Elsewhere ===


class TestInProgress:
    def test_claim_held_elsewhere_is_in_progress(self, handler, verified_event):
        dispatcher = EventDispatcher(
            {"checkout.session.completed": handler}, {"checkout.session.completed"}, BusyStore()
        )

        result = dispatcher.dispatch(verified_event("evt_1"))

        assert result.outcome is DispatchOutcome.IN_PROGRESS
        assert not result.acknowledged
        assert handler.total == 0


# === Concurrency ===


class TestConcurrentRedelivery:
    def test_concurrent_dispatch_handles_once(self, dispatcher, handler, verified_event):
        event = verified_event("evt_concurrent")
        barrier = threading.Barrier(10)
        outcomes: list[DispatchOutcome] = []
        outcomes_lock = threading.Lock()

        def deliver() -> None:
            barrier.wait()
            result = dispatcher.dispatch(event)
            with outcomes_lock:
                outcomes.append(result.outcome)

        threads = [threading.Thread(target=deliver) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert handler.calls["evt_concurrent"] == 1
        assert outcomes.count(DispatchOutcome.PROCESSED) == 1
        assert outcomes.count(DispatchOutcome.DUPLICATE) == 9


# === Built-in Registry ===


class TestDefaultRegistry:
    def test_every_supported_type_has_a_handler(self):
        assert set(default_registry()) == SUPPORTED_EVENT_TYPES

    def test_default_dispatcher_processes_supported_types(self, store, verified_event):
        dispatcher = EventDispatcher(default_registry(), SUPPORTED_EVENT_TYPES, store)

        outcomes = {
            event_type: dispatcher.dispatch(verified_event(f"evt_{i}", event_type)).outcome
            for i, event_type in enumerate(sorted(SUPPORTED_EVENT_TYPES))
        }

        assert set(outcomes.values()) == {DispatchOutcome.PROCESSED}
