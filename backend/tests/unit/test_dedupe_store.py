"""Unit tests for the dedupe stores.

Test categories:
- InMemoryDedupeStore: claim/commit/release, expiry, purge, concurrency
- DynamoDBDedupeStore (moto): conditional claims, leases, expiry, release
"""

import threading
import time
from typing import Any, Generator

import boto3
import pytest
from moto import mock_aws

from paygate.services.dedupe_store import (
    ClaimStatus,
    DynamoDBDedupeStore,
    InMemoryDedupeStore,
)
from paygate.services.dynamodb import DynamoDBService

RETENTION = 3600
TABLE_NAME = "test-paygate-webhook-events"


# === InMemoryDedupeStore ===


@pytest.fixture
def memory_store(clock) -> InMemoryDedupeStore:
    return InMemoryDedupeStore(RETENTION, clock=clock)


class TestInMemoryClaims:
    """Claim, commit and release on the process-local store."""

    def test_first_claim_is_new(self, memory_store):
        with memory_store.claim("evt_1") as claim:
            assert claim.status is ClaimStatus.NEW

    def test_committed_event_is_processed_on_next_claim(self, memory_store):
        with memory_store.claim("evt_1", event_type="payment_intent.succeeded") as claim:
            claim.commit()

        with memory_store.claim("evt_1") as claim:
            assert claim.status is ClaimStatus.PROCESSED

    def test_commit_stores_record(self, memory_store, clock):
        with memory_store.claim(
            "evt_1", event_type="payment_intent.succeeded", payload_hash="abc123"
        ) as claim:
            claim.commit()

        record = memory_store.get("evt_1")
        assert record is not None
        assert record.event_type == "payment_intent.succeeded"
        assert record.payload_hash == "abc123"
        assert (record.expires_at - record.processed_at).total_seconds() == RETENTION

    def test_leaving_without_commit_releases(self, memory_store):
        with memory_store.claim("evt_1"):
            pass

        assert memory_store.get("evt_1") is None
        with memory_store.claim("evt_1") as claim:
            assert claim.status is ClaimStatus.NEW

    def test_exception_releases_and_propagates(self, memory_store):
        with pytest.raises(RuntimeError, match="handler broke"):
            with memory_store.claim("evt_1"):
                raise RuntimeError("handler broke")

        with memory_store.claim("evt_1") as claim:
            assert claim.status is ClaimStatus.NEW

    def test_processed_claim_cannot_commit(self, memory_store):
        with memory_store.claim("evt_1") as claim:
            claim.commit()

        with memory_store.claim("evt_1") as claim:
            with pytest.raises(RuntimeError):
                claim.commit()

    def test_locks_are_released_after_claims(self, memory_store):
        with memory_store.claim("evt_1") as claim:
            claim.commit()
        with memory_store.claim("evt_2"):
            pass

        assert memory_store._event_locks == {}


class TestInMemoryExpiry:
    """Records are forgotten after the retention window."""

    def test_record_expires_after_retention(self, memory_store, clock):
        with memory_store.claim("evt_1") as claim:
            claim.commit()

        clock.advance(RETENTION - 1)
        assert memory_store.get("evt_1") is not None

        clock.advance(1)
        assert memory_store.get("evt_1") is None
        with memory_store.claim("evt_1") as claim:
            assert claim.status is ClaimStatus.NEW

    def test_purge_removes_expired_records_from_front(self, memory_store, clock):
        for event_id in ("evt_1", "evt_2"):
            with memory_store.claim(event_id) as claim:
                claim.commit()
        clock.advance(600)
        with memory_store.claim("evt_3") as claim:
            claim.commit()

        clock.advance(RETENTION - 300)
        removed = memory_store.purge_expired()

        assert removed == 2
        assert len(memory_store) == 1
        assert memory_store.get("evt_3") is not None

    def test_purge_with_nothing_expired(self, memory_store):
        with memory_store.claim("evt_1") as claim:
            claim.commit()

        assert memory_store.purge_expired() == 0
        assert len(memory_store) == 1


class TestInMemoryConcurrency:
    """Concurrent claims of one event id serialize."""

    def test_concurrent_claims_process_once(self):
        store = InMemoryDedupeStore(RETENTION)
        barrier = threading.Barrier(8)
        processed: list[str] = []
        statuses: list[ClaimStatus] = []
        statuses_lock = threading.Lock()

        def worker() -> None:
            barrier.wait()
            with store.claim("evt_concurrent") as claim:
                with statuses_lock:
                    statuses.append(claim.status)
                if claim.status is ClaimStatus.NEW:
                    time.sleep(0.01)
                    processed.append("evt_concurrent")
                    claim.commit()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert processed == ["evt_concurrent"]
        assert statuses.count(ClaimStatus.NEW) == 1
        assert statuses.count(ClaimStatus.PROCESSED) == 7

    def test_different_ids_do_not_block_each_other(self):
        store = InMemoryDedupeStore(RETENTION)

        with store.claim("evt_a") as outer:
            result: list[ClaimStatus] = []
            thread = threading.Thread(
                target=lambda: result.append(_claim_status(store, "evt_b"))
            )
            thread.start()
            thread.join(timeout=2)

            assert outer.status is ClaimStatus.NEW
            assert result == [ClaimStatus.NEW]


def _claim_status(store: InMemoryDedupeStore, event_id: str) -> ClaimStatus:
    with store.claim(event_id) as claim:
        return claim.status


# === DynamoDBDedupeStore ===


@pytest.fixture
def dynamodb_table(aws_credentials: None) -> Generator[Any, None, None]:
    """Create the mocked dedupe table."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name="eu-west-1")
        client.create_table(
            TableName=TABLE_NAME,
            KeySchema=[{"AttributeName": "event_id", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "event_id", "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )
        yield boto3.resource("dynamodb", region_name="eu-west-1").Table(TABLE_NAME)


@pytest.fixture
def dynamo_store(dynamodb_table, clock) -> DynamoDBDedupeStore:
    return DynamoDBDedupeStore(
        DynamoDBService(region_name="eu-west-1"),
        TABLE_NAME,
        RETENTION,
        lease_seconds=60,
        clock=clock,
    )


class TestDynamoDBClaims:
    """Conditional-write claims against a moto table."""

    def test_first_claim_is_new(self, dynamo_store):
        with dynamo_store.claim("evt_1") as claim:
            assert claim.status is ClaimStatus.NEW

    def test_commit_writes_processed_item_with_ttl(self, dynamo_store, dynamodb_table, clock):
        with dynamo_store.claim(
            "evt_1", event_type="checkout.session.completed", payload_hash="abc123"
        ) as claim:
            claim.commit()

        item = dynamodb_table.get_item(Key={"event_id": "evt_1"})["Item"]
        assert item["status"] == "processed"
        assert item["event_type"] == "checkout.session.completed"
        assert item["payload_hash"] == "abc123"
        assert int(item["expires_at"]) == int(clock.now) + RETENTION
        assert "claim_token" not in item

    def test_second_claim_after_commit_is_processed(self, dynamo_store):
        with dynamo_store.claim("evt_1") as claim:
            claim.commit()

        with dynamo_store.claim("evt_1") as claim:
            assert claim.status is ClaimStatus.PROCESSED

        record = dynamo_store.get("evt_1")
        assert record is not None
        assert record.event_id == "evt_1"

    def test_claim_while_held_is_in_progress(self, dynamo_store):
        with dynamo_store.claim("evt_1") as first:
            with dynamo_store.claim("evt_1") as second:
                assert first.status is ClaimStatus.NEW
                assert second.status is ClaimStatus.IN_PROGRESS

    def test_failure_releases_claim(self, dynamo_store, dynamodb_table):
        with pytest.raises(ValueError):
            with dynamo_store.claim("evt_1"):
                raise ValueError("handler failed")

        assert "Item" not in dynamodb_table.get_item(Key={"event_id": "evt_1"})
        with dynamo_store.claim("evt_1") as claim:
            assert claim.status is ClaimStatus.NEW

    def test_processed_record_expires(self, dynamo_store, clock):
        with dynamo_store.claim("evt_1") as claim:
            claim.commit()

        clock.advance(RETENTION + 1)

        assert dynamo_store.get("evt_1") is None
        with dynamo_store.claim("evt_1") as claim:
            assert claim.status is ClaimStatus.NEW

    def test_stale_lease_can_be_reclaimed(self, dynamo_store, dynamodb_table, clock):
        with dynamo_store.claim("evt_1") as stale:
            clock.advance(61)
            with dynamo_store.claim("evt_1") as fresh:
                assert fresh.status is ClaimStatus.NEW
                fresh.commit()
            assert stale.status is ClaimStatus.NEW

        # The stale holder's release must not delete the newer record
        item = dynamodb_table.get_item(Key={"event_id": "evt_1"})["Item"]
        assert item["status"] == "processed"

    def test_late_commit_leaves_newer_claim_alone(
        self, dynamo_store, dynamodb_table, clock, caplog
    ):
        with dynamo_store.claim("evt_1") as stale:
            clock.advance(61)
            with dynamo_store.claim("evt_1") as fresh:
                assert fresh.status is ClaimStatus.NEW
                stale.commit()

                item = dynamodb_table.get_item(Key={"event_id": "evt_1"})["Item"]
                assert item["status"] == "processing"
                assert item["claim_token"]
                assert "Claim on event evt_1 was lost before commit" in caplog.text

                fresh.commit()

        item = dynamodb_table.get_item(Key={"event_id": "evt_1"})["Item"]
        assert item["status"] == "processed"
        assert int(item["expires_at"]) == int(clock.now) + RETENTION

    def test_purge_is_left_to_ttl(self, dynamo_store):
        assert dynamo_store.purge_expired() == 0


class TestExpiryBoundary:
    """Both stores treat a record as expired from its expires_at instant on."""

    @pytest.fixture(params=["memory_store", "dynamo_store"])
    def store(self, request):
        return request.getfixturevalue(request.param)

    def test_record_expires_exactly_at_retention(self, store, clock):
        with store.claim("evt_1") as claim:
            claim.commit()

        clock.advance(RETENTION - 1)
        assert store.get("evt_1") is not None

        clock.advance(1)
        assert store.get("evt_1") is None
        with store.claim("evt_1") as claim:
            assert claim.status is ClaimStatus.NEW
