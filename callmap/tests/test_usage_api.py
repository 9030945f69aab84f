"""
/api/usage routes: daily token series, sessions table, range metrics and
teams approaching their monthly quota.
"""

from datetime import datetime, timezone

from callmap.core.collections import COLLECTION_MINDMAPS, COLLECTION_PROCESSING_JOBS, COLLECTION_WORKSPACES
from callmap.core.database import set_store
from callmap.tests.mocks import FlakyIndexStore

JAN = {"start": "2024-01-01T00:00:00Z", "end": "2024-01-31T23:59:59Z"}


def at(day, hour=12):
    return datetime(2024, 1, day, hour, 0, tzinfo=timezone.utc)


def test_daily_tokens_sorted_ascending(admin_client, store):
    store.seed(
        COLLECTION_PROCESSING_JOBS,
        [
            {"tokensIn": 10, "tokensOut": 0, "createdAt": at(2, 9)},
            {"tokensIn": 60, "tokensOut": 40, "createdAt": at(1, 8)},
            {"tokensIn": 0, "tokensOut": 10, "createdAt": at(2, 20)},
            {"tokensIn": 50, "createdAt": at(1, 22)},
        ],
    )
    resp = admin_client.post("/api/usage/daily-tokens", json=JAN)
    assert resp.status_code == 200
    assert resp.json() == [{"date": "2024-01-01", "tokens": 150}, {"date": "2024-01-02", "tokens": 20}]


def test_daily_tokens_empty_range(admin_client):
    assert admin_client.post("/api/usage/daily-tokens", json=JAN).json() == []


def test_sessions_join_jobs_and_paginate(admin_client, store):
    store.seed(
        COLLECTION_MINDMAPS,
        [
            {"id": "m1", "workspaceId": "t1", "userId": "u1", "sourceType": "call", "status": "ready", "createdAt": at(3)},
            {"id": "m2", "workspaceId": "t1", "userId": "u2", "createdAt": at(4)},
            {"id": "m3", "teamId": "t2", "sourceType": "meeting", "status": "failed", "createdAt": at(5)},
        ],
    )
    store.seed(
        COLLECTION_PROCESSING_JOBS,
        [
            {"mindmapId": "m1", "tokensIn": 100, "tokensOut": 20, "costUsd": 0.5, "model": "gpt-4o"},
            {"sessionId": "m1", "tokensIn": 5, "tokensOut": 5, "cost": 0.25},
        ],
    )

    body = admin_client.post("/api/usage/sessions", json={"teamId": "t1", "pageSize": 1}).json()
    assert body["total"] == 2
    assert len(body["data"]) == 1

    rows = admin_client.post("/api/usage/sessions", json={"model": "gpt-4o"}).json()["data"]
    assert len(rows) == 1
    row = rows[0]
    assert row["id"] == "m1"
    assert row["tokens_in"] == 105
    assert row["tokens_out"] == 25
    assert row["cost_usd"] == 0.75
    assert row["source_type"] == "call"
    assert row["created_at"] == "2024-01-03T12:00:00Z"


def test_sessions_without_jobs_report_null_tokens(admin_client, store):
    store.seed(COLLECTION_MINDMAPS, [{"id": "m9", "teamId": "t2", "createdAt": at(5)}])
    row = admin_client.post("/api/usage/sessions", json={}).json()["data"][0]
    assert row["team_id"] == "t2"
    assert row["source_type"] == "upload"
    assert row["status"] == "ready"
    assert row["tokens_in"] is None
    assert row["model"] is None


def test_sessions_reject_unknown_status(admin_client):
    resp = admin_client.post("/api/usage/sessions", json={"status": "exploded"})
    assert resp.status_code == 400


def test_usage_metrics(admin_client, store):
    store.seed(
        COLLECTION_PROCESSING_JOBS,
        [
            {"tokensIn": 100, "tokensOut": 50, "model": "a", "costUsd": 1.25, "createdAt": at(2)},
            {"tokensIn": 30, "tokensOut": 20, "model": "b", "costUsd": 0.5, "createdAt": at(3)},
            {"tokensIn": 1000, "model": "a", "createdAt": datetime(2023, 1, 1, tzinfo=timezone.utc)},
        ],
    )
    store.seed(COLLECTION_MINDMAPS, [{"createdAt": at(2)}, {"createdAt": at(3)}, {"createdAt": at(4)}])

    data = admin_client.post("/api/usage/metrics", json=JAN).json()["data"]
    assert data["totalTokensIn"] == 130
    assert data["totalTokensOut"] == 70
    assert data["tokensByModel"] == [{"model": "a", "tokens": 150}, {"model": "b", "tokens": 50}]
    assert data["avgTokensPerSession"] == 66.67
    assert data["totalCost"] == 1.75


def test_metrics_accept_fractional_token_counts(admin_client, store):
    store.seed(
        COLLECTION_PROCESSING_JOBS,
        [
            {"tokensIn": 10.5, "tokensOut": 2, "model": "a", "createdAt": at(3)},
            {"tokensIn": 4, "tokensOut": 0.25, "model": "a", "createdAt": at(4)},
        ],
    )
    resp = admin_client.post("/api/usage/metrics", json=JAN)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["totalTokensIn"] == 14.5
    assert data["totalTokensOut"] == 2.25
    assert data["tokensByModel"] == [{"model": "a", "tokens": 16.75}]


def test_teams_over_quota(admin_client, store):
    now = datetime.now(timezone.utc)
    store.seed(
        COLLECTION_WORKSPACES,
        [
            {"id": "hot", "name": "Hot", "plan": "free"},
            {"id": "warm", "name": "Warm", "plan": "free"},
            {"id": "cold", "name": "Cold", "plan": "pro"},
        ],
    )
    store.seed(
        COLLECTION_PROCESSING_JOBS,
        [
            {"workspaceId": "hot", "tokensIn": 12_000, "createdAt": now},
            {"teamId": "warm", "tokensIn": 8_000, "createdAt": now},
            {"workspaceId": "cold", "tokensIn": 8_000, "createdAt": now},
        ],
    )
    rows = admin_client.post("/api/usage/teams-over-quota").json()
    assert [row["team_id"] for row in rows] == ["hot", "warm"]
    assert rows[0] == {"team_id": "hot", "team_name": "Hot", "quota": 10_000, "used": 12_000, "percentage": 120.0}
    assert rows[1]["percentage"] == 80.0


def test_missing_index_degrades_to_in_memory_filter(admin_client):
    store = FlakyIndexStore()
    set_store(store)
    store.seed(
        COLLECTION_PROCESSING_JOBS,
        [
            {"workspaceId": "t1", "tokensIn": 10_000, "createdAt": datetime.now(timezone.utc)},
        ],
    )
    store.seed(COLLECTION_WORKSPACES, [{"id": "t1", "name": "Acme", "plan": "free"}])

    rows = admin_client.post("/api/usage/teams-over-quota").json()
    assert store.rejected > 0
    assert rows == [{"team_id": "t1", "team_name": "Acme", "quota": 10_000, "used": 10_000, "percentage": 100.0}]


def test_sessions_pages_rebuild_the_filtered_set(admin_client, store):
    store.seed(COLLECTION_MINDMAPS, [{"id": f"m{i}", "teamId": "t1", "createdAt": at(i + 1)} for i in range(7)])
    store.seed(COLLECTION_MINDMAPS, [{"id": "other", "teamId": "t2", "createdAt": at(9)}])
    everything = admin_client.post("/api/usage/sessions", json={"teamId": "t1", "pageSize": 100}).json()["data"]
    assert len(everything) == 7

    walked = []
    for page in (1, 2, 3):
        body = admin_client.post("/api/usage/sessions", json={"teamId": "t1", "page": page, "pageSize": 3}).json()
        assert body["total"] == 7
        assert len(body["data"]) <= 3
        walked.extend(row["id"] for row in body["data"])
    assert len(body["data"]) == 1
    assert walked == [row["id"] for row in everything]

    past_end = admin_client.post("/api/usage/sessions", json={"teamId": "t1", "page": 4, "pageSize": 3}).json()
    assert past_end["data"] == []
    assert past_end["total"] == 7
