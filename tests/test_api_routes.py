"""
tests/test_api_routes.py — HTTP API Integration Tests
======================================================

Every test talks to the real FastAPI app through ``TestClient`` with the
engine dependency pointed at the in-memory SQLite database.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import T0, make_admin_token
from userservice.engine.accrual import UserAggregate
from userservice.errors import StoreUnavailable
from userservice.services import user_service


@pytest.fixture
def auth(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def viewers(db_engine):
    """alice: 2 h watched, bob: 10 min watched."""
    user_service.upsert_users(
        db_engine,
        [
            UserAggregate("alice", "Alice", timedelta(hours=2), 120.0, T0, T0),
            UserAggregate("bob", "Bob", timedelta(minutes=10), 10.0, T0, T0),
        ],
    )


# ---------------------------------------------------------------------------
# Health & error mapping
# ---------------------------------------------------------------------------
class TestHealth:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_store_unavailable_is_503(self, client, monkeypatch):
        def _down(*args, **kwargs):
            raise StoreUnavailable("connection refused")

        monkeypatch.setattr(user_service, "get_user", _down)
        resp = client.get("/api/users/alice")
        assert resp.status_code == 503
        assert resp.json() == {"detail": "Entity store unavailable"}


class TestAuth:
    def test_mutation_without_token(self, client):
        resp = client.post("/api/groups", json={"name": "Mods"})
        assert resp.status_code == 401

    def test_mutation_with_garbage_token(self, client):
        resp = client.post(
            "/api/groups", json={"name": "Mods"}, headers={"Authorization": "Bearer nope"}
        )
        assert resp.status_code == 401

    def test_mutation_without_admin_claim(self, client):
        token = make_admin_token(is_admin=False)
        resp = client.post(
            "/api/groups", json={"name": "Mods"}, headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 403

    @pytest.mark.parametrize("secret", ["", "change-me", "short-but-random"])
    def test_weak_secrets_refused(self, monkeypatch, secret):
        from userservice.api.deps import load_jwt_secret

        monkeypatch.setenv("JWT_SECRET", secret)
        with pytest.raises(RuntimeError):
            load_jwt_secret()

    def test_strong_secret_accepted(self, monkeypatch):
        from userservice.api.deps import load_jwt_secret

        monkeypatch.setenv("JWT_SECRET", "k" * 48)
        assert load_jwt_secret() == "k" * 48

    def test_reads_are_open(self, client):
        assert client.get("/api/groups").status_code == 200
        assert client.get("/api/ranks").status_code == 200


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class TestUsers:
    def test_get_user(self, client, viewers):
        resp = client.get("/api/users/alice")
        assert resp.status_code == 200
        data = resp.json()
        assert data["display_name"] == "Alice"
        assert data["watch_time"] == {"seconds": 7200, "nanos": 0}
        assert data["balance"] == 120.0
        assert data["rank"] == "Unranked"

    def test_get_missing_user(self, client):
        assert client.get("/api/users/ghost").status_code == 404

    def test_rank_is_resolved(self, client, viewers, auth):
        client.post("/api/ranks", json={"name": "Regular", "threshold_seconds": 3600}, headers=auth)
        assert client.get("/api/users/alice").json()["rank"] == "Regular"
        assert client.get("/api/users/bob").json()["rank"] == "Unranked"

    def test_query_sorted(self, client, viewers):
        resp = client.post("/api/users/query", json={"sort": "watch_time_desc"})
        assert resp.status_code == 200
        body = resp.json()
        assert [u["channel_id"] for u in body["users"]] == ["alice", "bob"]
        assert body["count"] == 2

    def test_query_filtered(self, client, viewers):
        resp = client.post(
            "/api/users/query",
            json={"filters": [{"field": "watch_time", "op": "lt", "value": 3600}]},
        )
        assert [u["channel_id"] for u in resp.json()["users"]] == ["bob"]

    @pytest.mark.parametrize(
        "body",
        [
            {"sort": "loudest"},
            {"filters": [{"field": "karma", "op": "eq", "value": 1}]},
            {"filters": [{"field": "balance", "op": "contains", "value": 1}]},
        ],
    )
    def test_query_rejects_bad_input(self, client, viewers, body):
        assert client.post("/api/users/query", json=body).status_code == 400

    def test_upsert_creates_and_replaces(self, client, auth):
        payload = {
            "users": [
                {
                    "channel_id": "carol",
                    "display_name": "Carol",
                    "watch_time_seconds": 90.5,
                    "balance": 3.0,
                    "first_seen_at": "2026-01-15T12:00:00Z",
                    "last_seen_at": "2026-01-15T12:30:00Z",
                }
            ]
        }
        resp = client.put("/api/users", json=payload, headers=auth)
        assert resp.status_code == 200
        stored = resp.json()["users"][0]
        assert stored["watch_time"] == {"seconds": 90, "nanos": 500_000_000}

        payload["users"][0]["balance"] = 7.0
        payload["users"][0]["first_seen_at"] = "2026-06-01T00:00:00Z"
        payload["users"][0]["last_seen_at"] = "2026-06-01T00:00:00Z"
        client.put("/api/users", json=payload, headers=auth)

        data = client.get("/api/users/carol").json()
        assert data["balance"] == 7.0
        assert data["first_seen_at"].startswith("2026-01-15T12:00:00")

    def test_upsert_rejects_negative_balance(self, client, auth):
        payload = {"users": [{"channel_id": "x", "display_name": "X", "balance": -1}]}
        assert client.put("/api/users", json=payload, headers=auth).status_code == 422

    def test_upsert_rejects_inverted_timestamps(self, client, auth):
        payload = {
            "users": [
                {
                    "channel_id": "x",
                    "display_name": "X",
                    "first_seen_at": "2026-01-15T12:00:00Z",
                    "last_seen_at": "2026-01-15T11:00:00Z",
                }
            ]
        }
        assert client.put("/api/users", json=payload, headers=auth).status_code == 400

    def test_update_with_past_last_seen(self, client, viewers, auth):
        # first_seen_at omitted; last_seen_at is in the past but after the stored first_seen_at
        payload = {
            "users": [
                {
                    "channel_id": "alice",
                    "display_name": "Alice",
                    "last_seen_at": "2026-01-15T13:00:00Z",
                }
            ]
        }
        resp = client.put("/api/users", json=payload, headers=auth)
        assert resp.status_code == 200
        data = client.get("/api/users/alice").json()
        assert data["last_seen_at"].startswith("2026-01-15T13:00:00")
        assert data["first_seen_at"].startswith("2026-01-15T12:00:00")

    def test_update_without_last_seen_keeps_stored(self, client, viewers, auth):
        payload = {"users": [{"channel_id": "alice", "display_name": "Alicia", "balance": 1.0}]}
        assert client.put("/api/users", json=payload, headers=auth).status_code == 200

        data = client.get("/api/users/alice").json()
        assert data["display_name"] == "Alicia"
        assert data["last_seen_at"].startswith("2026-01-15T12:00:00")

    def test_update_before_stored_first_seen_rejected(self, client, viewers, auth):
        payload = {
            "users": [
                {
                    "channel_id": "alice",
                    "display_name": "Alice",
                    "last_seen_at": "2026-01-15T11:00:00Z",
                }
            ]
        }
        assert client.put("/api/users", json=payload, headers=auth).status_code == 400

    def test_delete_users(self, client, viewers, auth):
        resp = client.delete(
            "/api/users", params={"channel_id": ["alice", "ghost"]}, headers=auth
        )
        assert resp.json() == {"deleted": 1}
        assert client.get("/api/users/alice").status_code == 404


# ---------------------------------------------------------------------------
# Groups, members & permissions
# ---------------------------------------------------------------------------
class TestGroups:
    def _create(self, client, auth, name, priority=0, bonus=0.0):
        resp = client.post(
            "/api/groups",
            json={"name": name, "priority": priority, "bonus_payout": bonus},
            headers=auth,
        )
        assert resp.status_code == 201
        return resp.json()["id"]

    def test_list_is_priority_descending(self, client, auth):
        self._create(client, auth, "Low", priority=1)
        self._create(client, auth, "High", priority=9)
        names = [g["name"] for g in client.get("/api/groups").json()["groups"]]
        assert names == ["High", "Low"]

    def test_update_and_get(self, client, auth):
        gid = self._create(client, auth, "Subs")
        resp = client.patch(f"/api/groups/{gid}", json={"bonus_payout": 2.5}, headers=auth)
        assert resp.status_code == 200
        assert client.get(f"/api/groups/{gid}").json()["bonus_payout"] == 2.5

    def test_update_without_fields(self, client, auth):
        gid = self._create(client, auth, "Subs")
        assert client.patch(f"/api/groups/{gid}", json={}, headers=auth).status_code == 400

    def test_missing_group(self, client, auth):
        assert client.get("/api/groups/999").status_code == 404
        resp = client.patch("/api/groups/999", json={"name": "X"}, headers=auth)
        assert resp.status_code == 404

    def test_membership(self, client, viewers, auth):
        gid = self._create(client, auth, "Subs")
        resp = client.put(f"/api/groups/{gid}/members/alice", headers=auth)
        assert resp.json()["added"] is True
        resp = client.put(f"/api/groups/{gid}/members/alice", headers=auth)
        assert resp.json()["added"] is False

        assert client.get(f"/api/groups/{gid}/members").json()["members"] == ["alice"]
        assert client.get(f"/api/groups/{gid}").json()["member_count"] == 1

        assert client.delete(f"/api/groups/{gid}/members/alice", headers=auth).status_code == 200
        assert client.delete(f"/api/groups/{gid}/members/alice", headers=auth).status_code == 404

    def test_add_unknown_user(self, client, auth):
        gid = self._create(client, auth, "Subs")
        assert client.put(f"/api/groups/{gid}/members/ghost", headers=auth).status_code == 404

    def test_permission_resolution(self, client, viewers, auth):
        g1 = self._create(client, auth, "G1", priority=10)
        g2 = self._create(client, auth, "G2", priority=20)
        client.put(f"/api/groups/{g1}/permissions/x", json={"granted": True}, headers=auth)
        client.put(f"/api/groups/{g2}/permissions/x", json={"granted": False}, headers=auth)
        client.put(f"/api/groups/{g1}/members/alice", headers=auth)
        client.put(f"/api/groups/{g2}/members/alice", headers=auth)

        resp = client.get("/api/users/alice/permissions/x")
        assert resp.json() == {"channel_id": "alice", "permission": "x", "granted": False}

        client.put("/api/users/alice/permissions/x", json={"granted": True}, headers=auth)
        assert client.get("/api/users/alice/permissions/x").json()["granted"] is True

        assert client.delete("/api/users/alice/permissions/x", headers=auth).status_code == 200
        assert client.get("/api/users/alice/permissions/x").json()["granted"] is False

        perms = client.get("/api/users/alice/permissions").json()["permissions"]
        assert perms == {"x": False}

    def test_check_uses_default(self, client, viewers):
        resp = client.get("/api/users/bob/permissions/chat", params={"default": "true"})
        assert resp.json()["granted"] is True

    def test_check_unknown_user(self, client):
        assert client.get("/api/users/ghost/permissions/x").status_code == 404

    def test_revoke_missing_record(self, client, viewers, auth):
        assert client.delete("/api/users/bob/permissions/x", headers=auth).status_code == 404

    def test_group_permissions_listed(self, client, auth):
        gid = self._create(client, auth, "Mods")
        client.put(f"/api/groups/{gid}/permissions/ban", json={"granted": True}, headers=auth)
        assert client.get(f"/api/groups/{gid}").json()["permissions"] == {"ban": True}
        resp = client.delete(f"/api/groups/{gid}/permissions/ban", headers=auth)
        assert resp.status_code == 200
        assert client.get(f"/api/groups/{gid}").json()["permissions"] == {}

    def test_delete_groups(self, client, auth):
        gid = self._create(client, auth, "Temp")
        resp = client.delete("/api/groups", params={"group_id": [gid]}, headers=auth)
        assert resp.json() == {"deleted": 1}
        assert client.get(f"/api/groups/{gid}").status_code == 404


# ---------------------------------------------------------------------------
# Ranks
# ---------------------------------------------------------------------------
class TestRanks:
    def test_crud(self, client, auth):
        resp = client.post(
            "/api/ranks", json={"name": "Regular", "threshold_seconds": 3600}, headers=auth
        )
        assert resp.status_code == 201
        rid = resp.json()["id"]

        resp = client.patch(f"/api/ranks/{rid}", json={"threshold_seconds": 60}, headers=auth)
        assert resp.json()["threshold"] == {"seconds": 60, "nanos": 0}

        ranks = client.get("/api/ranks").json()["ranks"]
        assert [r["name"] for r in ranks] == ["Regular"]

        resp = client.delete("/api/ranks", params={"rank_id": [rid]}, headers=auth)
        assert resp.json() == {"deleted": 1}
        assert client.get("/api/ranks").json()["ranks"] == []

    def test_negative_threshold_rejected(self, client, auth):
        resp = client.post(
            "/api/ranks", json={"name": "Bad", "threshold_seconds": -1}, headers=auth
        )
        assert resp.status_code == 422

    def test_update_missing(self, client, auth):
        resp = client.patch("/api/ranks/404", json={"name": "X"}, headers=auth)
        assert resp.status_code == 404

    def test_update_without_fields(self, client, auth):
        assert client.patch("/api/ranks/1", json={}, headers=auth).status_code == 400
