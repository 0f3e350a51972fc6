"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Auth guards, the JSON error mapping, and the main flows through the
HTTP surface using the FastAPI TestClient.
"""

from __future__ import annotations

import logging

import pytest
from conftest import auth

from townsquare.errors import ConsistencyFault


def _create_community(client, owner="mayor", name="Springfield", type_="city", parent_id=None):
    resp = client.post(
        "/api/communities",
        json={"name": name, "type": type_, "parent_id": parent_id},
        headers=auth(owner),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def _create_post(client, author, community_id, visibility="local", content="hello"):
    resp = client.post(
        "/api/posts",
        json={"community_id": community_id, "visibility": visibility, "content": content},
        headers=auth(author),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Lifespan
# ===========================================================================
class TestLifespan:
    def test_startup_and_shutdown_log_service_name(self, db_engine, monkeypatch, caplog):
        from fastapi.testclient import TestClient

        from townsquare.api import main
        from townsquare.config import TownsquareConfig

        async def idle_maintenance(engine, cfg):
            return None

        monkeypatch.setattr(main, "get_engine", lambda: db_engine)
        monkeypatch.setattr(main, "get_config", lambda: TownsquareConfig(service_name="springfield"))
        monkeypatch.setattr(main, "maintenance_loop", idle_maintenance)

        with caplog.at_level(logging.INFO, logger="townsquare.api.main"):
            with TestClient(main.app) as lifespan_client:
                assert lifespan_client.get("/api/health").status_code == 200

        assert "springfield API started" in caplog.text
        assert "springfield API shutting down" in caplog.text


# ===========================================================================
# Auth guards
# ===========================================================================
class TestAuthGuards:
    ADMIN_ENDPOINTS = [
        ("post", "/api/admin/reconcile"),
        ("post", "/api/admin/elections/sweep"),
        ("get", "/api/admin/events"),
    ]

    def test_write_requires_token(self, client):
        resp = client.post("/api/communities", json={"name": "X", "type": "city"})
        assert resp.status_code == 401

    def test_invalid_token(self, client):
        resp = client.post(
            "/api/communities",
            json={"name": "X", "type": "city"},
            headers={"Authorization": "Bearer invalid"},
        )
        assert resp.status_code == 401

    @pytest.mark.parametrize("method,endpoint", ADMIN_ENDPOINTS)
    def test_admin_rejects_no_auth(self, client, method, endpoint):
        resp = getattr(client, method)(endpoint)
        assert resp.status_code == 401

    @pytest.mark.parametrize("method,endpoint", ADMIN_ENDPOINTS)
    def test_admin_rejects_non_admin(self, client, method, endpoint):
        resp = getattr(client, method)(endpoint, headers=auth("regular"))
        assert resp.status_code == 403

    def test_admin_accepts_admin(self, client, admin_token):
        resp = client.post(
            "/api/admin/reconcile", headers={"Authorization": f"Bearer {admin_token}"},
        )
        assert resp.status_code == 200
        assert resp.json()["corrected"] == 0


# ===========================================================================
# Error mapping
# ===========================================================================
class TestErrorMapping:
    def test_not_found(self, client):
        resp = client.get("/api/communities/999")
        assert resp.status_code == 404
        assert resp.json() == {"error": "not_found", "message": "Community 999 not found"}

    def test_already_exists(self, client):
        c = _create_community(client)
        client.post(f"/api/communities/{c['id']}/membership", headers=auth("u1"))
        resp = client.post(f"/api/communities/{c['id']}/membership", headers=auth("u1"))
        assert resp.status_code == 409
        assert resp.json()["error"] == "already_exists"

    def test_not_authorized(self, client):
        c = _create_community(client)
        post = _create_post(client, "mayor", c["id"])
        resp = client.get(f"/api/posts/{post['id']}", headers=auth("stranger"))
        assert resp.status_code == 403
        assert resp.json()["error"] == "not_authorized"

    def test_invalid_state(self, client):
        resp = client.post("/api/users/alice/follow", headers=auth("alice"))
        assert resp.status_code == 409
        assert resp.json()["error"] == "invalid_state"

    def test_consistency_fault_is_500_json(self, client, monkeypatch):
        from townsquare.services import membership_service

        def broken(*args, **kwargs):
            raise ConsistencyFault("member_count diverged")

        monkeypatch.setattr(membership_service, "follow_community", broken)
        c = _create_community(client)
        resp = client.post(f"/api/communities/{c['id']}/membership", headers=auth("u1"))
        assert resp.status_code == 500
        assert resp.json() == {"error": "consistency_fault", "message": "member_count diverged"}

    def test_validation_error(self, client):
        resp = client.post(
            "/api/communities", json={"name": "", "type": "galaxy"}, headers=auth("u"),
        )
        assert resp.status_code == 422


# ===========================================================================
# Communities & membership
# ===========================================================================
class TestCommunityRoutes:
    def test_create_get_and_ancestors(self, client):
        city = _create_community(client)
        local = _create_community(client, name="Evergreen", type_="local", parent_id=city["id"])
        assert local["parent_id"] == city["id"]

        resp = client.get(f"/api/communities/{local['id']}/ancestors")
        assert [c["id"] for c in resp.json()["ancestors"]] == [city["id"]]

        mods = client.get(f"/api/communities/{city['id']}/moderators").json()["moderators"]
        assert [(m["user_id"], m["source"]) for m in mods] == [("mayor", "founder")]

    def test_membership_round_trip_updates_count(self, client):
        c = _create_community(client)
        resp = client.post(f"/api/communities/{c['id']}/membership", headers=auth("u1"))
        assert resp.status_code == 201
        assert resp.json()["member_count"] == 1

        resp = client.delete(f"/api/communities/{c['id']}/membership", headers=auth("u1"))
        assert resp.json()["member_count"] == 0

        resp = client.delete(f"/api/communities/{c['id']}/membership", headers=auth("u1"))
        assert resp.status_code == 404

    def test_patch_moderator_only(self, client):
        c = _create_community(client)
        resp = client.patch(
            f"/api/communities/{c['id']}", json={"name": "Renamed"}, headers=auth("rando"),
        )
        assert resp.status_code == 403

        resp = client.patch(
            f"/api/communities/{c['id']}",
            json={"description": "Capital of the state"},
            headers=auth("mayor"),
        )
        assert resp.status_code == 200
        assert resp.json()["description"] == "Capital of the state"
        assert resp.json()["name"] == "Springfield"

    def test_feed_filters_by_visibility(self, client):
        c = _create_community(client)
        _create_post(client, "mayor", c["id"], visibility="local", content="members only")
        public = _create_post(client, "mayor", c["id"], visibility="public", content="everyone")

        anon = client.get(f"/api/communities/{c['id']}/posts").json()["posts"]
        assert [p["id"] for p in anon] == [public["id"]]


# ===========================================================================
# Posts, comments, likes
# ===========================================================================
class TestPostRoutes:
    def test_can_read_flow(self, client):
        c = _create_community(client)
        post = _create_post(client, "mayor", c["id"], visibility="local")

        resp = client.get(f"/api/posts/{post['id']}/can-read", headers=auth("U2"))
        assert resp.json()["can_read"] is False

        client.post(f"/api/communities/{c['id']}/membership", headers=auth("U2"))
        resp = client.get(f"/api/posts/{post['id']}/can-read", headers=auth("U2"))
        assert resp.json()["can_read"] is True

    def test_comment_and_like_counters(self, client):
        c = _create_community(client)
        post = _create_post(client, "mayor", c["id"], visibility="public")

        resp = client.post(
            f"/api/posts/{post['id']}/comments", json={"content": "Nice"}, headers=auth("fan"),
        )
        assert resp.status_code == 201
        comment_id = resp.json()["id"]

        resp = client.post(f"/api/posts/{post['id']}/like", headers=auth("fan"))
        assert resp.json()["likes_count"] == 1
        resp = client.post(f"/api/posts/{post['id']}/like", headers=auth("fan"))
        assert resp.status_code == 409

        fetched = client.get(f"/api/posts/{post['id']}").json()
        assert (fetched["likes_count"], fetched["comments_count"]) == (1, 1)

        assert client.delete(f"/api/comments/{comment_id}", headers=auth("mayor")).status_code == 403
        assert client.delete(f"/api/comments/{comment_id}", headers=auth("fan")).status_code == 200
        assert client.delete(f"/api/posts/{post['id']}/like", headers=auth("fan")).status_code == 200

        fetched = client.get(f"/api/posts/{post['id']}").json()
        assert (fetched["likes_count"], fetched["comments_count"]) == (0, 0)

    def test_author_only_edit_and_delete(self, client):
        c = _create_community(client)
        post = _create_post(client, "mayor", c["id"], visibility="public")
        resp = client.patch(f"/api/posts/{post['id']}", json={"content": "x"}, headers=auth("bart"))
        assert resp.status_code == 403
        resp = client.patch(
            f"/api/posts/{post['id']}", json={"content": "edited"}, headers=auth("mayor"),
        )
        assert resp.json()["content"] == "edited"
        assert client.delete(f"/api/posts/{post['id']}", headers=auth("mayor")).status_code == 200
        assert client.get(f"/api/posts/{post['id']}").status_code == 404


# ===========================================================================
# Messages
# ===========================================================================
class TestMessageRoutes:
    def test_asymmetric_gate(self, client):
        # alice follows bob: bob may write to alice, alice may not write to bob
        assert client.post("/api/users/bob/follow", headers=auth("alice")).status_code == 201

        resp = client.post(
            "/api/messages", json={"receiver_id": "bob", "content": "hi"}, headers=auth("alice"),
        )
        assert resp.status_code == 403

        resp = client.post(
            "/api/messages", json={"receiver_id": "alice", "content": "hi"}, headers=auth("bob"),
        )
        assert resp.status_code == 201

        inbox = client.get("/api/messages", headers=auth("alice")).json()["messages"]
        assert [m["sender_id"] for m in inbox] == ["bob"]

        assert client.get("/api/messages/can-send/alice", headers=auth("bob")).json()["can_send"]


# ===========================================================================
# Elections
# ===========================================================================
class TestElectionRoutes:
    def test_full_round(self, client):
        c = _create_community(client)
        for voter in ("v1", "v2"):
            client.post(f"/api/communities/{c['id']}/membership", headers=auth(voter))

        resp = client.post(f"/api/communities/{c['id']}/elections", headers=auth("v1"))
        assert resp.status_code == 403

        resp = client.post(
            f"/api/communities/{c['id']}/elections",
            json={"duration_hours": 24},
            headers=auth("mayor"),
        )
        assert resp.status_code == 201
        round_id = resp.json()["id"]

        resp = client.post(
            f"/api/communities/{c['id']}/elections", json={}, headers=auth("mayor"),
        )
        assert resp.status_code == 409

        vote = {"candidate_id": "v2"}
        assert client.post(f"/api/elections/{round_id}/votes", json=vote, headers=auth("v1")).status_code == 201
        resp = client.post(f"/api/elections/{round_id}/votes", json=vote, headers=auth("v1"))
        assert resp.status_code == 409
        assert resp.json()["error"] == "duplicate_vote"

        resp = client.post(f"/api/elections/{round_id}/close", headers=auth("mayor"))
        assert resp.status_code == 200
        assert resp.json()["winner_id"] == "v2"
        assert resp.json()["is_active"] is False

        mods = client.get(f"/api/communities/{c['id']}/moderators").json()["moderators"]
        assert {m["user_id"] for m in mods} == {"mayor", "v2"}


# ===========================================================================
# Admin
# ===========================================================================
class TestAdminRoutes:
    def test_grant_moderator_and_events(self, client, admin_token):
        headers = {"Authorization": f"Bearer {admin_token}"}
        c = _create_community(client)

        resp = client.post(
            f"/api/admin/communities/{c['id']}/moderators",
            json={"user_id": "helper"},
            headers=headers,
        )
        assert resp.status_code == 201
        assert resp.json()["added"] is True

        client.post(f"/api/communities/{c['id']}/membership", headers=auth("u1"))
        resp = client.get("/api/admin/events", params={"event_type": "MembershipAdded"}, headers=headers)
        body = resp.json()
        assert [e["actor_id"] for e in body["events"]] == ["u1"]
        assert body["last_id"] == body["events"][-1]["id"]
