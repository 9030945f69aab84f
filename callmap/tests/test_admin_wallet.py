"""
Super-admin role management and wallet adjustments.
"""

from datetime import datetime, timezone

import pytest

from callmap.core.collections import (
    COLLECTION_ANALYTICS_EVENTS,
    COLLECTION_AUDIT_LOGS,
    COLLECTION_SECURITY_EVENTS,
    COLLECTION_USERS,
)
from callmap.core.database import InMemoryStore
from callmap.core.errors import NotFoundError, ValidationError
from callmap.features.wallet.service import adjust_balance, list_transactions

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
TX_PATH = "users/u1/walletTransactions"


class TestIdentityUsers:
    def test_lists_identity_users(self, super_admin_client, identity):
        identity.users = [
            {
                "uid": "a1",
                "email": "a1@callmap.test",
                "customClaims": {"isAdmin": True, "role": "admin"},
                "mfaEnabled": True,
                "lastLogin": 1704067200000,
                "createdAt": None,
            },
            {"uid": "m1", "email": "m1@callmap.test", "customClaims": None},
        ]
        users = super_admin_client.get("/api/admin/users").json()["users"]
        assert users[0] == {
            "uid": "a1",
            "email": "a1@callmap.test",
            "isAdmin": True,
            "role": "admin",
            "mfaEnabled": True,
            "lastLogin": "2024-01-01T00:00:00Z",
            "createdAt": None,
        }
        assert users[1]["isAdmin"] is False
        assert users[1]["role"] is None


class TestSetRole:
    def test_sets_claims_and_records(self, super_admin_client, identity, store):
        resp = super_admin_client.post("/api/admin/set-role", json={"uid": "u7", "role": "admin"})
        assert resp.json() == {"success": True}
        assert identity.claims_updates == [("u7", {"isAdmin": True, "role": "admin"})]

        event = store.stream(COLLECTION_SECURITY_EVENTS)[0]
        assert event.get("type") == "role_change"
        assert event.get("userId") == "super-1"
        audit = store.stream(COLLECTION_AUDIT_LOGS)[0]
        assert audit.get("action") == "set_admin_role"
        assert audit.get("targetUserId") == "u7"

    def test_requires_uid_and_role(self, super_admin_client):
        resp = super_admin_client.post("/api/admin/set-role", json={"uid": "u7"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "UID and role are required"

    def test_rejects_unknown_role(self, super_admin_client, identity):
        resp = super_admin_client.post("/api/admin/set-role", json={"uid": "u7", "role": "owner"})
        assert resp.status_code == 400
        assert resp.json()["error"] == 'Invalid role. Must be "admin" or "superAdmin"'
        assert identity.claims_updates == []

    def test_admin_cannot_set_roles(self, admin_client):
        assert admin_client.post("/api/admin/set-role", json={"uid": "u7", "role": "admin"}).status_code == 403


class TestAdjustBalance:
    @pytest.fixture
    def wallet_store(self):
        return InMemoryStore({COLLECTION_USERS: {"u1": {"tokenBalance": 100}}})

    def test_credit(self, wallet_store):
        result = adjust_balance(wallet_store, "u1", 50, None, now=NOW)
        assert result.previous_balance == 100
        assert result.new_balance == 150
        assert result.transaction["note"] == "Manual adjustment by admin"
        assert result.transaction["balanceAfter"] == 150
        assert result.transaction["createdAt"] == "2024-03-01T12:00:00Z"
        assert wallet_store.get(COLLECTION_USERS, "u1").get("tokenBalance") == 150
        assert wallet_store.count(TX_PATH) == 1

    def test_debit_to_zero_allowed(self, wallet_store):
        assert adjust_balance(wallet_store, "u1", -100, "refund", now=NOW).new_balance == 0

    def test_overdraft_rejected_without_writes(self, wallet_store):
        with pytest.raises(ValidationError) as exc:
            adjust_balance(wallet_store, "u1", -101, None, now=NOW)
        assert exc.value.message == "Insufficient balance. Current: 100, Adjustment: -101"
        assert wallet_store.get(COLLECTION_USERS, "u1").get("tokenBalance") == 100
        assert wallet_store.count(TX_PATH) == 0

    def test_zero_rejected(self, wallet_store):
        with pytest.raises(ValidationError):
            adjust_balance(wallet_store, "u1", 0, None, now=NOW)

    def test_unknown_user(self, wallet_store):
        with pytest.raises(NotFoundError):
            adjust_balance(wallet_store, "ghost", 5, None, now=NOW)

    def test_missing_balance_counts_as_zero(self):
        store = InMemoryStore({COLLECTION_USERS: {"u2": {}}})
        assert adjust_balance(store, "u2", 10, None, now=NOW).new_balance == 10


class TestWalletRoutes:
    def test_adjust_records_trail(self, admin_client, store):
        store.seed(COLLECTION_USERS, [{"id": "u1", "tokenBalance": 20}])
        resp = admin_client.post("/api/admin/wallet/u1/adjust", json={"amount": 30, "note": "goodwill"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["newBalance"] == 50
        assert body["transaction"]["amount"] == 30
        assert body["transaction"]["source"] == "manual-adjustment"

        audit = store.stream(COLLECTION_AUDIT_LOGS)[0]
        assert audit.get("action") == "wallet_adjustment"
        assert audit.get("details") == {"amount": 30, "previousBalance": 20, "newBalance": 50, "note": "goodwill"}
        wallet_event = store.stream(COLLECTION_ANALYTICS_EVENTS)[0]
        assert wallet_event.get("type") == "wallet_tx"
        assert [e.get("type") for e in store.stream(COLLECTION_SECURITY_EVENTS)] == ["wallet_adjustment"]

    def test_overdraft_is_400(self, admin_client, store):
        store.seed(COLLECTION_USERS, [{"id": "u1", "tokenBalance": 5}])
        resp = admin_client.post("/api/admin/wallet/u1/adjust", json={"amount": -10})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Insufficient balance. Current: 5, Adjustment: -10"

    def test_unknown_user_is_404(self, admin_client):
        resp = admin_client.post("/api/admin/wallet/ghost/adjust", json={"amount": 10})
        assert resp.status_code == 404

    def test_transactions_newest_first_paginated(self, admin_client, store):
        store.seed(
            TX_PATH,
            [
                {"id": "old", "amount": 5, "createdAt": datetime(2024, 1, 1, tzinfo=timezone.utc)},
                {"id": "new", "amount": -2, "createdAt": datetime(2024, 2, 1, tzinfo=timezone.utc)},
                {"id": "mid", "amount": 1, "createdAt": datetime(2024, 1, 15, tzinfo=timezone.utc)},
            ],
        )
        body = admin_client.get("/api/admin/wallet/u1/transactions", params={"pageSize": 2}).json()
        assert body["total"] == 3
        assert [tx["id"] for tx in body["items"]] == ["new", "mid"]
        assert body["items"][0]["createdAt"] == "2024-02-01T00:00:00Z"

    def test_transactions_page_size_cap(self, admin_client):
        resp = admin_client.get("/api/admin/wallet/u1/transactions", params={"pageSize": 500})
        assert resp.status_code == 400


def test_list_transactions_empty():
    assert list_transactions(InMemoryStore(), "nobody") == []
