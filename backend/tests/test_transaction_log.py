# Overview: Pytest coverage for the append-only transaction log and sequence cursor.

"""
Transaction Log Tests

Verifies:
1. synced_at is a per-dealer, strictly increasing sequence
2. Appending an existing id is a no-op reported as ALREADY_EXISTS
3. An id owned by another dealer is a conflict, never a silent skip
4. query_after filters by cursor, dealer and origin device
5. Paging by synced_at never skips a record, even when transaction_time
   order disagrees with acceptance order
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from nexus_relay.models import SyncSequence, SyncTransaction
from nexus_relay.services import transaction_log_service
from nexus_relay.services.concurrency import StorageUnavailable, run_with_retry
from nexus_relay.services.transaction_log_service import AppendOutcome
from nexus_relay.validation import ConflictError, normalize_transaction


def _append(dealer_id, device, txn_id, **overrides):
    payload = {"id": txn_id, "action_type": "SALE", "quantity_change": -1}
    payload.update(overrides)
    fields, _ = normalize_transaction(payload)
    return transaction_log_service.append_transaction(
        dealer_id=dealer_id, device_identifier=device, fields=fields
    )


class TestSequenceAllocation:

    def test_first_allocation_creates_counter(self, db_session, dealer_a):
        value = transaction_log_service.allocate_synced_at(dealer_a.id)
        db_session.commit()

        assert value == 1
        seq = db_session.query(SyncSequence).filter_by(dealer_id=dealer_a.id).one()
        assert seq.last_value == 1

    def test_sequences_are_independent_per_dealer(self, db_session, dealer_a, dealer_b):
        _append(dealer_a.id, "X", "a-1")
        _append(dealer_a.id, "X", "a-2")
        _append(dealer_b.id, "X", "b-1")

        a_values = [t.synced_at for t in db_session.query(SyncTransaction).filter_by(dealer_id=dealer_a.id).order_by(SyncTransaction.synced_at)]
        b_values = [t.synced_at for t in db_session.query(SyncTransaction).filter_by(dealer_id=dealer_b.id)]

        assert a_values == [1, 2]
        assert b_values == [1]

    def test_duplicate_append_does_not_consume_sequence(self, db_session, dealer_a):
        _append(dealer_a.id, "X", "t1")
        _append(dealer_a.id, "X", "t1")
        _append(dealer_a.id, "X", "t2")

        t2 = transaction_log_service.get_transaction(dealer_a.id, "t2")
        assert t2.synced_at == 2


class TestAppend:

    def test_insert_then_already_exists(self, db_session, dealer_a):
        assert _append(dealer_a.id, "X", "t1") is AppendOutcome.INSERTED
        assert _append(dealer_a.id, "X", "t1") is AppendOutcome.ALREADY_EXISTS
        assert transaction_log_service.count_transactions(dealer_a.id) == 1

    def test_same_id_from_other_device_is_duplicate(self, db_session, dealer_a):
        _append(dealer_a.id, "X", "t1")
        assert _append(dealer_a.id, "Y", "t1") is AppendOutcome.ALREADY_EXISTS

        stored = transaction_log_service.get_transaction(dealer_a.id, "t1")
        assert stored.device_identifier == "X"

    def test_duplicate_keeps_first_business_fields(self, db_session, dealer_a):
        _append(dealer_a.id, "X", "t1", quantity_change=-1)
        _append(dealer_a.id, "X", "t1", quantity_change=-50, item_sku="CHANGED")

        stored = transaction_log_service.get_transaction(dealer_a.id, "t1")
        assert stored.quantity_change == -1
        assert stored.item_sku is None

    def test_cross_dealer_id_collision_is_conflict(self, db_session, dealer_a, dealer_b):
        _append(dealer_a.id, "X", "shared-id")

        with pytest.raises(ConflictError) as exc:
            _append(dealer_b.id, "X", "shared-id")
        assert "shared-id" not in str(exc.value)

        assert transaction_log_service.get_transaction(dealer_b.id, "shared-id") is None
        assert transaction_log_service.get_transaction(dealer_a.id, "shared-id") is not None

    def test_integrity_race_resolves_to_already_exists(self, db_session, dealer_a, monkeypatch):
        """A concurrent insert landing between the pre-check and commit still counts as a duplicate."""
        _append(dealer_a.id, "X", "t1")

        calls = {"n": 0}
        real_owner = transaction_log_service._existing_owner

        def _stale_then_real(transaction_id):
            calls["n"] += 1
            if calls["n"] == 1:
                return None  # pre-check misses the other writer's row
            return real_owner(transaction_id)

        dealer_id = dealer_a.id
        db_session.expunge_all()
        monkeypatch.setattr(transaction_log_service, "_existing_owner", _stale_then_real)

        assert _append(dealer_id, "Y", "t1") is AppendOutcome.ALREADY_EXISTS
        assert transaction_log_service.count_transactions(dealer_id) == 1


class TestQueryAfter:

    def test_excludes_requesting_device_and_other_dealers(self, db_session, dealer_a, dealer_b):
        _append(dealer_a.id, "X", "a-x")
        _append(dealer_a.id, "Y", "a-y")
        _append(dealer_b.id, "X", "b-x")

        page = transaction_log_service.query_after(
            dealer_id=dealer_a.id, excluding_device="Y", cursor=0, limit=100
        )

        assert [r.id for r in page.records] == ["a-x"]
        assert all(r.dealer_id == dealer_a.id for r in page.records)

    def test_cursor_filters_by_synced_at(self, db_session, dealer_a):
        _append(dealer_a.id, "X", "t1")
        _append(dealer_a.id, "X", "t2")
        _append(dealer_a.id, "X", "t3")

        page = transaction_log_service.query_after(
            dealer_id=dealer_a.id, excluding_device="Y", cursor=2, limit=100
        )

        assert [r.id for r in page.records] == ["t3"]
        assert page.next_cursor == 3
        assert page.has_more is False

    def test_empty_page_echoes_cursor(self, db_session, dealer_a):
        page = transaction_log_service.query_after(
            dealer_id=dealer_a.id, excluding_device="Y", cursor=7, limit=100
        )
        assert page.records == []
        assert page.next_cursor == 7

    def test_page_is_ordered_by_business_time(self, db_session, dealer_a):
        base = datetime(2026, 3, 1, 12, 0, 0)
        # Accepted in this order, but happened in reverse
        _append(dealer_a.id, "X", "late", transaction_time=(base + timedelta(hours=2)).isoformat())
        _append(dealer_a.id, "X", "early", transaction_time=base.isoformat())
        _append(dealer_a.id, "X", "middle", transaction_time=(base + timedelta(hours=1)).isoformat())

        page = transaction_log_service.query_after(
            dealer_id=dealer_a.id, excluding_device="Y", cursor=0, limit=100
        )

        assert [r.id for r in page.records] == ["early", "middle", "late"]
        assert page.next_cursor == 3

    def test_paging_never_skips_when_clock_order_disagrees(self, db_session, dealer_a):
        """
        An offline device uploads old transactions after newer ones. Paging by
        synced_at must still deliver every record exactly once.
        """
        base = datetime(2026, 3, 1, 12, 0, 0)
        ids = []
        for i in range(7):
            # Each new acceptance carries an earlier business time
            txn_id = f"t{i}"
            ids.append(txn_id)
            _append(dealer_a.id, "X", txn_id, transaction_time=(base - timedelta(days=i)).isoformat())

        seen = []
        cursor = 0
        while True:
            page = transaction_log_service.query_after(
                dealer_id=dealer_a.id, excluding_device="Y", cursor=cursor, limit=3
            )
            seen.extend(r.id for r in page.records)
            cursor = page.next_cursor
            if not page.has_more:
                break

        assert sorted(seen) == sorted(ids)
        assert len(seen) == len(set(seen))


class TestStorageRetry:

    def test_transient_failure_is_retried(self, db_session):
        calls = {"n": 0}

        def _flaky():
            calls["n"] += 1
            if calls["n"] < 3:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return "ok"

        assert run_with_retry(_flaky, backoff_base=0) == "ok"
        assert calls["n"] == 3

    def test_exhausted_retries_raise_storage_unavailable(self, db_session):
        def _down():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        with pytest.raises(StorageUnavailable):
            run_with_retry(_down, attempts=2, backoff_base=0)
