"""
Tests for the Firestore-backed store.

The Firestore client is replaced with ``MagicMock``; these tests pin the
document paths, payloads and error mapping rather than Firestore itself.
"""

import datetime as dt
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore

from cost_governance.core.errors import RecordNotFound, StoreError
from cost_governance.db.firestore import (
    FirestoreUsageStore,
    build_daily_increment,
    build_weekly_increment,
)
from cost_governance.db.models import CostEntry, WeeklyUsage

UTC = dt.timezone.utc
MONDAY = dt.datetime(2025, 9, 15, tzinfo=UTC)
AT = dt.datetime(2025, 9, 17, 12, 0, tzinfo=UTC)


@pytest.fixture
def db():
    return MagicMock()


@pytest.fixture
def doc_ref(db):
    ref = MagicMock()
    ref.id = "u1_20250915"
    db.collection.return_value.document.return_value = ref
    return ref


def _snapshot(data, doc_id="u1_20250915", exists=True):
    snapshot = MagicMock()
    snapshot.exists = exists
    snapshot.id = doc_id
    snapshot.to_dict.return_value = data
    return snapshot


class TestIncrementPayloads:
    """Merge payloads use server-side increments for every counter."""

    def test_weekly_increment(self):
        payload = build_weekly_increment("u1", MONDAY, "chat", 37, AT)

        assert payload["identifier"] == "u1"
        assert payload["weekStart"] == MONDAY
        assert payload["lastOperationAt"] == AT
        for key, expected in (("totalCostMinorUnits", 37), ("operationCount", 1)):
            assert isinstance(payload[key], firestore.Increment)
            assert payload[key].value == expected
        assert payload["operationBreakdown"]["chat"].value == 1
        assert payload["costBreakdown"]["chat"].value == 37
        assert payload["updatedAt"] is firestore.SERVER_TIMESTAMP

    def test_daily_increment(self):
        payload = build_daily_increment("u1", dt.date(2025, 9, 17), "essay", 5, AT)

        assert payload["usageDate"] == "2025-09-17"
        assert payload["totalOperations"].value == 1
        assert payload["totalCostMinorUnits"].value == 5
        assert payload["costBreakdown"] == {"essay": payload["costBreakdown"]["essay"]}
        assert payload["costBreakdown"]["essay"].value == 5


class TestWeeklyDocuments:
    def test_find_reads_week_document(self, db, doc_ref):
        doc_ref.get.return_value = _snapshot(
            {
                "identifier": "u1",
                "weekStart": MONDAY,
                "totalCostMinorUnits": 120,
                "operationCount": 2,
                "operationBreakdown": {"chat": 2},
                "costBreakdown": {"chat": 120},
            }
        )

        row = FirestoreUsageStore(db).find_weekly_usage("u1", MONDAY)

        db.collection.assert_called_with("weekly_usage")
        db.collection.return_value.document.assert_called_with("u1_20250915")
        assert row.id == "u1_20250915"
        assert row.total_cost_minor_units == 120
        assert row.cost_breakdown == {"chat": 120}

    def test_find_missing_document(self, db, doc_ref):
        doc_ref.get.return_value = _snapshot(None, exists=False)
        assert FirestoreUsageStore(db).find_weekly_usage("u1", MONDAY) is None

    def test_insert_conflict_is_store_error(self, db, doc_ref):
        doc_ref.create.side_effect = gcp_exceptions.AlreadyExists("exists")
        with pytest.raises(StoreError):
            FirestoreUsageStore(db).insert_weekly_usage(WeeklyUsage(identifier="u1", week_start=MONDAY))

    def test_insert_writes_without_id(self, db, doc_ref):
        row = FirestoreUsageStore(db).insert_weekly_usage(WeeklyUsage(identifier="u1", week_start=MONDAY))

        payload = doc_ref.create.call_args.args[0]
        assert "id" not in payload
        assert payload["weekStart"] == MONDAY
        assert row.id == "u1_20250915"

    def test_update_maps_field_names(self, db, doc_ref):
        doc_ref.get.return_value = _snapshot(
            {"identifier": "u1", "weekStart": MONDAY, "totalCostMinorUnits": 50, "operationCount": 1}
        )

        row = FirestoreUsageStore(db).update_weekly_usage(
            "u1_20250915", {"total_cost_minor_units": 50, "operation_count": 1}
        )

        doc_ref.update.assert_called_once_with({"totalCostMinorUnits": 50, "operationCount": 1})
        assert row.total_cost_minor_units == 50

    def test_update_missing_document(self, db, doc_ref):
        doc_ref.update.side_effect = gcp_exceptions.NotFound("gone")
        with pytest.raises(RecordNotFound):
            FirestoreUsageStore(db).update_weekly_usage("u1_20250915", {"operation_count": 1})

    def test_update_unknown_field(self, db, doc_ref):
        with pytest.raises(StoreError):
            FirestoreUsageStore(db).update_weekly_usage("u1_20250915", {"identifier": "u2"})
        doc_ref.update.assert_not_called()

    def test_history_zero_weeks_skips_query(self, db):
        assert FirestoreUsageStore(db).get_weekly_usage_history("u1", 0) == []
        db.collection.assert_not_called()


class TestCostEntries:
    def test_insert_cost_entry(self, db, doc_ref):
        doc_ref.id = "entry-1"
        entry = CostEntry(
            identifier="u1",
            user_id="u1",
            ip_address="203.0.113.7",
            operation="chat",
            input_tokens=1000,
            output_tokens=500,
            cost_minor_units=1,
            model="gemini-2.5-flash",
            source="ai",
            processing_time_ms=120,
            created_at=AT,
        )

        stored = FirestoreUsageStore(db).insert_cost_entry(entry)

        db.collection.assert_called_with("cost_entries")
        payload = doc_ref.set.call_args.args[0]
        assert payload["costMinorUnits"] == 1
        assert payload["loggedAt"] is firestore.SERVER_TIMESTAMP
        assert "id" not in payload
        assert stored.id == "entry-1"
        assert stored.created_at == AT


@pytest.fixture
def transaction(db):
    txn = MagicMock()
    # Attributes read by firestore.transactional before calling the body.
    txn._max_attempts = 1
    txn._read_only = False
    db.transaction.return_value = txn
    return txn


class TestTransactionalIncrements:
    """Increment-or-insert runs inside one transaction."""

    def test_weekly_increment_existing_row(self, db, doc_ref, transaction):
        doc_ref.get.return_value = _snapshot(
            {
                "identifier": "u1",
                "weekStart": MONDAY,
                "totalCostMinorUnits": 400,
                "operationCount": 1,
                "operationBreakdown": {"chat": 1},
                "costBreakdown": {"chat": 400},
            }
        )

        row = FirestoreUsageStore(db).increment_weekly_usage("u1", MONDAY, "chat", 75, AT)

        doc_ref.get.assert_called_once_with(transaction=transaction)
        transaction.set.assert_called_once()
        (target, payload), kwargs = transaction.set.call_args
        assert target is doc_ref
        assert kwargs == {"merge": True}
        assert isinstance(payload["totalCostMinorUnits"], firestore.Increment)
        assert payload["totalCostMinorUnits"].value == 75
        assert payload["costBreakdown"]["chat"].value == 75
        transaction._commit.assert_called_once()

        assert row.id == "u1_20250915"
        assert row.total_cost_minor_units == 475
        assert row.operation_count == 2
        assert row.operation_breakdown == {"chat": 2}
        assert row.cost_breakdown == {"chat": 475}
        assert row.last_operation_at == AT

    def test_weekly_increment_missing_row(self, db, doc_ref, transaction):
        doc_ref.get.return_value = _snapshot(None, exists=False)

        row = FirestoreUsageStore(db).increment_weekly_usage("u1", MONDAY, "essay", 30, AT)

        assert row.identifier == "u1"
        assert row.week_start == MONDAY
        assert row.operation_count == 1
        assert row.total_cost_minor_units == 30
        assert row.cost_breakdown == {"essay": 30}
        assert transaction.set.call_args.kwargs == {"merge": True}

    def test_daily_increment(self, db, doc_ref, transaction):
        doc_ref.get.return_value = _snapshot(
            {
                "identifier": "u1",
                "usageDate": "2025-09-17",
                "totalOperations": 2,
                "totalCostMinorUnits": 10,
                "operationBreakdown": {"chat": 2},
                "costBreakdown": {"chat": 10},
            }
        )

        row = FirestoreUsageStore(db).increment_daily_usage("u1", dt.date(2025, 9, 17), "chat", 5, AT)

        db.collection.assert_called_with("usage_daily")
        (_, payload), kwargs = transaction.set.call_args
        assert kwargs == {"merge": True}
        assert payload["totalOperations"].value == 1
        assert row.usage_date == dt.date(2025, 9, 17)
        assert row.total_operations == 3
        assert row.total_cost_minor_units == 15
        assert row.updated_at == AT

    def test_daily_increment_missing_row(self, db, doc_ref, transaction):
        doc_ref.get.return_value = _snapshot(None, exists=False)

        row = FirestoreUsageStore(db).increment_daily_usage("u1", dt.date(2025, 9, 17), "chat", 5, AT)

        assert row.total_operations == 1
        assert row.operation_breakdown == {"chat": 1}
