"""Tests for the in-memory document store and the degrading range/ordered queries."""

import logging
from datetime import datetime, timezone

import pytest
from google.cloud.firestore_v1 import DELETE_FIELD, SERVER_TIMESTAMP

from callmap.core.database import DocumentMissing, Filter, InMemoryStore
from callmap.core.queries import RangeQuery, ordered_query
from callmap.tests.mocks import FlakyIndexStore


def jan(day):
    return datetime(2024, 1, day, tzinfo=timezone.utc)


@pytest.fixture
def events():
    store = InMemoryStore()
    store.seed(
        "analyticsEvents",
        [
            {"id": "e1", "type": "a", "timestamp": jan(1)},
            {"id": "e2", "type": "a", "timestamp": "2024-01-05T00:00:00Z"},
            {"id": "e3", "type": "b", "timestamp": jan(6)},
            {"id": "e4", "type": "a", "timestamp": jan(20)},
            {"id": "e5", "type": "a"},
        ],
    )
    return store


class TestFilter:
    def test_missing_field_never_matches(self):
        assert not Filter("status", "!=", "x").matches({})

    def test_datetime_comparison_coerces_strings(self):
        assert Filter("t", ">=", jan(1)).matches({"t": "2024-01-02T00:00:00Z"})
        assert not Filter("t", ">=", jan(3)).matches({"t": "2024-01-02T00:00:00Z"})

    def test_in_and_array_contains(self):
        assert Filter("plan", "in", ["pro", "team"]).matches({"plan": "pro"})
        assert Filter("tags", "array-contains", "x").matches({"tags": ["x", "y"]})

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValueError):
            Filter("a", "~", 1)


class TestRangeQuery:
    def test_inclusive_range_with_equality(self, events):
        outcome = RangeQuery("analyticsEvents", "timestamp", jan(1), jan(5), equals=(("type", "a"),)).run(events)
        assert sorted(doc.id for doc in outcome) == ["e1", "e2"]
        assert outcome.degraded is False

    def test_fallback_applies_every_filter(self, caplog):
        store = FlakyIndexStore()
        store.seed("analyticsEvents", [{"type": "a", "timestamp": jan(2)}, {"type": "b", "timestamp": jan(2)}])
        with caplog.at_level(logging.WARNING, logger="callmap"):
            outcome = RangeQuery("analyticsEvents", "timestamp", jan(1), jan(5), equals=(("type", "a"),)).run(store)
        assert outcome.degraded is True
        assert len(outcome) == 1
        assert any(record.getMessage() == "query.degraded" for record in caplog.records)

    def test_unparseable_timestamps_excluded_in_fallback(self):
        store = FlakyIndexStore()
        store.seed("analyticsEvents", [{"type": "a", "timestamp": "garbage"}])
        outcome = RangeQuery("analyticsEvents", "timestamp", jan(1), jan(5), equals=(("type", "a"),)).run(store)
        assert len(outcome) == 0


class TestOrderedQuery:
    def test_descending_with_limit(self, events):
        outcome = ordered_query(events, "analyticsEvents", "timestamp", limit=2)
        assert [doc.id for doc in outcome] == ["e4", "e3"]

    def test_fallback_sorts_in_memory(self):
        store = FlakyIndexStore()
        store.seed("teams", [{"id": "x", "plan": "pro", "createdAt": jan(1)}, {"id": "y", "plan": "pro", "createdAt": jan(9)}])
        outcome = ordered_query(store, "teams", "createdAt", filters=[Filter("plan", "==", "pro")])
        assert outcome.degraded is True
        assert [doc.id for doc in outcome] == ["y", "x"]


class TestWrites:
    def test_update_missing_document_raises(self):
        with pytest.raises(DocumentMissing):
            InMemoryStore().update("users", "nope", {"a": 1})

    def test_sentinels(self):
        store = InMemoryStore({"users": {"u1": {"a": 1, "b": 2}}})
        store.update("users", "u1", {"b": DELETE_FIELD, "updatedAt": SERVER_TIMESTAMP})
        doc = store.get("users", "u1")
        assert "b" not in doc.data
        assert isinstance(doc.get("updatedAt"), datetime)

    def test_transaction_writes_commit_together(self):
        store = InMemoryStore({"users": {"u1": {"tokenBalance": 10}}})

        def apply(txn):
            user = txn.get("users", "u1")
            txn.create("users/u1/walletTransactions", {"amount": 5})
            txn.update("users", "u1", {"tokenBalance": user.get("tokenBalance") + 5})
            return "ok"

        assert store.run_transaction(apply) == "ok"
        assert store.get("users", "u1").get("tokenBalance") == 15
        assert store.count("users/u1/walletTransactions") == 1

    def test_failed_transaction_writes_nothing(self):
        store = InMemoryStore({"users": {"u1": {"tokenBalance": 10}}})

        def apply(txn):
            txn.create("users/u1/walletTransactions", {"amount": 5})
            raise RuntimeError("abort")

        with pytest.raises(RuntimeError):
            store.run_transaction(apply)
        assert store.count("users/u1/walletTransactions") == 0

    def test_reads_are_copies(self):
        store = InMemoryStore({"users": {"u1": {"tags": ["a"]}}})
        store.get("users", "u1").data["tags"].append("b")
        assert store.get("users", "u1").get("tags") == ["a"]
