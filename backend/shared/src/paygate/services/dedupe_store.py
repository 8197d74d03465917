"""Stores that remember processed webhook event ids.

A delivery claims its event id before the handler runs:

    with store.claim(event.id, event_type=event.type) as claim:
        if claim.status is ClaimStatus.NEW:
            handle(event)
            claim.commit()

Claiming is atomic per event id, so two concurrent redeliveries cannot both
see NEW. Leaving the block without commit() (for example because the handler
raised) releases the claim and writes nothing, so the next redelivery runs
the handler again. Committed records expire after the retention window; a
record whose expires_at is at or before the current time counts as expired.
"""

import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime, timezone
from enum import Enum

from paygate.models.events import DedupeRecord
from paygate.services.dynamodb import DynamoDBService
from paygate.utils.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]


class ClaimStatus(str, Enum):
    NEW = "new"
    PROCESSED = "processed"
    IN_PROGRESS = "in_progress"


class Claim:
    """The caller's hold on one event id for the duration of a claim block."""

    def __init__(
        self,
        event_id: str,
        status: ClaimStatus,
        on_commit: Callable[[], None] | None = None,
    ) -> None:
        self.event_id = event_id
        self.status = status
        self.committed = False
        self._on_commit = on_commit

    def commit(self) -> None:
        """Record the event as processed."""
        if self.status is not ClaimStatus.NEW or self._on_commit is None:
            raise RuntimeError(f"Cannot commit a {self.status.value} claim")
        if self.committed:
            return
        self._on_commit()
        self.committed = True


def _to_datetime(epoch: float) -> datetime:
    return datetime.fromtimestamp(epoch, tz=timezone.utc)


class DedupeStore(ABC):
    """Remembers processed event ids for a bounded retention window."""

    def __init__(self, retention_seconds: int, clock: Clock = time.time) -> None:
        self.retention_seconds = retention_seconds
        self._clock = clock

    @abstractmethod
    def claim(
        self,
        event_id: str,
        *,
        event_type: str = "",
        payload_hash: str = "",
    ) -> AbstractContextManager[Claim]:
        """Claim event_id for processing; see module docstring."""

    @abstractmethod
    def get(self, event_id: str) -> DedupeRecord | None:
        """Return the live record for event_id, if any."""

    @abstractmethod
    def purge_expired(self) -> int:
        """Drop expired records and return how many were removed."""


class InMemoryDedupeStore(DedupeStore):
    """Process-local store guarded by a lock per event id.

    Concurrent claims for the same id serialize on that id's lock, so the
    second claimant observes the first one's committed record.
    """

    def __init__(self, retention_seconds: int, clock: Clock = time.time) -> None:
        super().__init__(retention_seconds, clock)
        self._records: OrderedDict[str, DedupeRecord] = OrderedDict()
        self._guard = threading.Lock()
        # event_id -> [lock, number of threads using it]
        self._event_locks: dict[str, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._records)

    def _checkout_lock(self, event_id: str) -> threading.Lock:
        with self._guard:
            entry = self._event_locks.get(event_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._event_locks[event_id] = entry
            entry[1] += 1
            return entry[0]

    def _return_lock(self, event_id: str) -> None:
        with self._guard:
            entry = self._event_locks[event_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._event_locks[event_id]

    def _record(self, event_id: str, event_type: str, payload_hash: str) -> None:
        now = self._clock()
        record = DedupeRecord(
            event_id=event_id,
            event_type=event_type,
            processed_at=_to_datetime(now),
            expires_at=_to_datetime(now + self.retention_seconds),
            payload_hash=payload_hash,
        )
        with self._guard:
            self._records[event_id] = record
            self._records.move_to_end(event_id)

    def get(self, event_id: str) -> DedupeRecord | None:
        now = _to_datetime(self._clock())
        with self._guard:
            record = self._records.get(event_id)
        if record is None or record.expires_at <= now:
            return None
        return record

    def purge_expired(self) -> int:
        now = _to_datetime(self._clock())
        removed = 0
        with self._guard:
            # Insertion order is expiry order: stop at the first live record
            while self._records:
                event_id, record = next(iter(self._records.items()))
                if record.expires_at > now:
                    break
                del self._records[event_id]
                removed += 1
        if removed:
            logger.debug("Purged %d expired dedupe record(s)", removed)
        return removed

    @contextmanager
    def claim(
        self,
        event_id: str,
        *,
        event_type: str = "",
        payload_hash: str = "",
    ) -> Iterator[Claim]:
        lock = self._checkout_lock(event_id)
        try:
            with lock:
                self.purge_expired()
                if self.get(event_id) is not None:
                    yield Claim(event_id, ClaimStatus.PROCESSED)
                    return
                yield Claim(
                    event_id,
                    ClaimStatus.NEW,
                    on_commit=lambda: self._record(event_id, event_type, payload_hash),
                )
        finally:
            self._return_lock(event_id)


class DynamoDBDedupeStore(DedupeStore):
    """Store shared by every instance of the service, backed by a DynamoDB table.

    The table is keyed on event_id and should have TTL enabled on expires_at.
    A claim is a "processing" item holding a short lease; a conditional put is
    the atomic insert-if-absent. Items whose expires_at has passed are treated
    as absent, since TTL deletion happens lazily.
    """

    PROCESSING = "processing"
    PROCESSED = "processed"

    def __init__(
        self,
        db: DynamoDBService,
        table_name: str,
        retention_seconds: int,
        *,
        lease_seconds: int = 60,
        clock: Clock = time.time,
    ) -> None:
        super().__init__(retention_seconds, clock)
        self._db = db
        self._table = table_name
        self._lease_seconds = lease_seconds

    def _now(self) -> int:
        return int(self._clock())

    def _try_claim(self, event_id: str, event_type: str, payload_hash: str, token: str) -> bool:
        now = self._now()
        return self._db.put_item(
            self._table,
            {
                "event_id": event_id,
                "status": self.PROCESSING,
                "event_type": event_type,
                "payload_hash": payload_hash,
                "claim_token": token,
                "claimed_at": now,
                "expires_at": now + self._lease_seconds,
            },
            condition_expression="attribute_not_exists(event_id) OR expires_at <= :now",
            expression_attribute_values={":now": now},
        )

    def _commit(self, event_id: str, token: str) -> None:
        now = self._now()
        committed = self._db.update_item(
            self._table,
            {"event_id": event_id},
            "SET #status = :processed, processed_at = :processed_at, expires_at = :expires_at "
            "REMOVE claim_token",
            {
                ":processed": self.PROCESSED,
                ":processed_at": _to_datetime(now).isoformat(),
                ":expires_at": now + self.retention_seconds,
                ":processing": self.PROCESSING,
                ":token": token,
            },
            {"#status": "status"},  # status is a reserved word
            condition_expression="#status = :processing AND claim_token = :token",
        )
        if committed is None:
            # Another delivery took over the expired lease and owns the item now
            logger.warning("Claim on event %s was lost before commit", event_id)

    def _release(self, event_id: str, token: str) -> None:
        released = self._db.delete_item(
            self._table,
            {"event_id": event_id},
            condition_expression="#status = :processing AND claim_token = :token",
            expression_attribute_values={":processing": self.PROCESSING, ":token": token},
            expression_attribute_names={"#status": "status"},
        )
        if not released:
            logger.warning("Claim on event %s was lost before release", event_id)

    def get(self, event_id: str) -> DedupeRecord | None:
        item = self._db.get_item(self._table, {"event_id": event_id})
        if not item or item.get("status") != self.PROCESSED:
            return None
        expires_at = int(item["expires_at"])
        if expires_at <= self._now():
            return None
        return DedupeRecord(
            event_id=event_id,
            event_type=str(item.get("event_type", "")),
            processed_at=datetime.fromisoformat(str(item["processed_at"])),
            expires_at=_to_datetime(expires_at),
            payload_hash=str(item.get("payload_hash", "")),
        )

    def purge_expired(self) -> int:
        # DynamoDB TTL on expires_at deletes expired items
        return 0

    @contextmanager
    def claim(
        self,
        event_id: str,
        *,
        event_type: str = "",
        payload_hash: str = "",
    ) -> Iterator[Claim]:
        token = uuid.uuid4().hex
        if not self._try_claim(event_id, event_type, payload_hash, token):
            status = ClaimStatus.PROCESSED if self.get(event_id) else ClaimStatus.IN_PROGRESS
            yield Claim(event_id, status)
            return

        claim = Claim(
            event_id, ClaimStatus.NEW, on_commit=lambda: self._commit(event_id, token)
        )
        try:
            yield claim
        finally:
            if not claim.committed:
                self._release(event_id, token)
