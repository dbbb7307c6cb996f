"""
HTTP-level tests for the marketplace routes.

Routes run against the SQLite test session; the design-tool client and
verifier store are the conftest fakes. A test middleware copies the
X-User-Id header onto request.state.user_id, standing in for
BearerAuthMiddleware (covered in test_auth_middleware.py).
"""

from unittest.mock import patch

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from src.api.dependencies import get_client, get_notifier, get_store
from src.api.errors import register_error_handlers
from src.api.routes import (
    access_requests,
    admin_templates,
    billing_webhooks,
    content_items,
    design_tool_oauth,
    templates,
)
from src.database.session import get_db_session
from src.integrations.design_tool.models import DesignToolUser, TokenSet
from src.services.access_notifications import AccessRequestNotifier
from src.services.email_sender import MockEmailSender


@pytest.fixture
def app(db_session, design_tool_client, verifier_store):
    app = FastAPI()
    register_error_handlers(app)
    for module in (templates, admin_templates, design_tool_oauth, access_requests, billing_webhooks, content_items):
        app.include_router(module.router)

    @app.middleware("http")
    async def authenticate(request: Request, call_next):
        user_id = request.headers.get("X-User-Id")
        if user_id:
            request.state.user_id = user_id
        return await call_next(request)

    def override_db():
        yield db_session

    async def override_client():
        yield design_tool_client

    app.dependency_overrides[get_db_session] = override_db
    app.dependency_overrides[get_client] = override_client
    app.dependency_overrides[get_store] = lambda: verifier_store
    app.dependency_overrides[get_notifier] = lambda: AccessRequestNotifier(MockEmailSender())
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def as_user(user):
    return {"X-User-Id": user.id}


class TestAuthentication:

    def test_missing_identity_is_401(self, client):
        response = client.get("/api/templates")

        assert response.status_code == 401

    def test_admin_routes_require_admin(self, client, make_user):
        user = make_user()

        response = client.get("/api/access-requests", headers=as_user(user))

        assert response.status_code == 403
        assert response.json()["error"] == "permission_denied"


class TestTemplateRoutes:

    def test_list_truncated_for_free_plan(self, client, make_user, make_template):
        user = make_user()
        for i in range(12):
            make_template(title=f"Template {i}")

        response = client.get("/api/templates?limit=50", headers=as_user(user))

        assert response.status_code == 200
        body = response.json()
        assert len(body["templates"]) == 10
        assert body["user_limits"]["template_limit"] == 10
        assert body["user_limits"]["is_unlimited"] is False

    def test_invalid_sort_rejected(self, client, make_user):
        response = client.get("/api/templates?sort=random", headers=as_user(make_user()))

        assert response.status_code == 422

    def test_detail_forbidden_after_quota(self, client, make_user, make_template):
        user = make_user()
        template = make_template()
        for _ in range(10):
            assert client.get(f"/api/templates/{template.id}", headers=as_user(user)).status_code == 200

        response = client.get(f"/api/templates/{template.id}", headers=as_user(user))

        assert response.status_code == 403
        usage = client.get("/api/templates/usage", headers=as_user(user)).json()
        assert usage["current_month_views"] == 10
        assert usage["remaining_views"] == 0

    def test_unknown_template_is_404(self, client, make_user):
        response = client.get("/api/templates/missing", headers=as_user(make_user()))

        assert response.status_code == 404

    def test_bookmark_roundtrip(self, client, make_user, make_template):
        user = make_user()
        template = make_template()

        added = client.post(f"/api/templates/{template.id}/bookmark", headers=as_user(user))
        duplicate = client.post(f"/api/templates/{template.id}/bookmark", headers=as_user(user))
        listed = client.get("/api/templates/bookmarks", headers=as_user(user))
        removed = client.delete(f"/api/templates/{template.id}/bookmark", headers=as_user(user))

        assert added.json() == {"template_id": template.id, "bookmarked": True}
        assert duplicate.status_code == 400
        assert len(listed.json()["bookmarks"]) == 1
        assert removed.json() == {"template_id": template.id, "bookmarked": False}

    def test_edit_link(self, client, make_user, make_template):
        template = make_template(title="Launch post")

        response = client.post(f"/api/templates/{template.id}/edit-link", headers=as_user(make_user()))

        assert response.status_code == 200
        assert response.json() == {
            "edit_url": "https://design.example.com/t/abc/edit",
            "template_title": "Launch post",
        }

    def test_tag_filter(self, client, make_user, make_template):
        sale = make_template(tags=["sale", "spring"])
        make_template(tags=["winter"])

        response = client.get("/api/templates?tags=sale,autumn", headers=as_user(make_user()))

        assert response.status_code == 200
        assert response.json()["total_count"] == 1
        assert response.json()["templates"][0]["id"] == sale.id


class TestAdminTemplateRoutes:

    def test_create_and_publish(self, client, make_admin):
        admin = make_admin()

        created = client.post(
            "/api/admin/templates",
            json={"title": "Spring sale", "description": "Seasonal promo", "tags": ["sale"]},
            headers=as_user(admin),
        )
        assert created.status_code == 201
        assert created.json()["is_published"] is False

        published = client.patch(
            f"/api/admin/templates/{created.json()['id']}/publish",
            json={"published": True},
            headers=as_user(admin),
        )
        assert published.status_code == 200
        assert published.json()["is_published"] is True

    def test_create_validates_body(self, client, make_admin):
        response = client.post(
            "/api/admin/templates",
            json={"title": "", "description": "x"},
            headers=as_user(make_admin()),
        )

        assert response.status_code == 422

    def test_duplicate_import_is_409(self, client, make_admin):
        admin = make_admin()
        body = {"title": "Launch", "description": "Post", "external_template_id": "ext-1"}

        first = client.post("/api/admin/templates", json=body, headers=as_user(admin))
        second = client.post("/api/admin/templates", json=body, headers=as_user(admin))

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["error"] == "duplicate_template"
        assert second.json()["message"] == "Template with this URL already exists"

    def test_list_update_and_delete(self, client, make_admin, make_template):
        admin = make_admin()
        draft = make_template(title="Draft", is_published=False, created_by_admin=admin.id)
        draft_id = draft.id

        listed = client.get("/api/admin/templates?status=draft", headers=as_user(admin))
        assert listed.status_code == 200
        assert [t["id"] for t in listed.json()["templates"]] == [draft_id]

        updated = client.patch(
            f"/api/admin/templates/{draft_id}",
            json={"title": "Renamed", "tags": ["launch"]},
            headers=as_user(admin),
        )
        assert updated.status_code == 200
        assert updated.json()["title"] == "Renamed"
        assert updated.json()["tags"] == ["launch"]

        deleted = client.delete(f"/api/admin/templates/{draft_id}", headers=as_user(admin))
        assert deleted.status_code == 200
        assert deleted.json() == {"template_id": draft_id, "deleted": True}

        missing = client.delete(f"/api/admin/templates/{draft_id}", headers=as_user(admin))
        assert missing.status_code == 404

    def test_other_admins_template_is_403(self, client, make_admin, make_template):
        template = make_template(created_by_admin=make_admin().id)

        response = client.patch(
            f"/api/admin/templates/{template.id}",
            json={"title": "Mine now"},
            headers=as_user(make_admin()),
        )

        assert response.status_code == 403

    def test_listing_rejects_unknown_status(self, client, make_admin):
        response = client.get("/api/admin/templates?status=archived", headers=as_user(make_admin()))

        assert response.status_code == 422


class TestAccessRequestRoutes:

    def test_submit_and_duplicate(self, client, make_user):
        user = make_user()

        first = client.post("/api/access-requests", json={"reason": "Agency"}, headers=as_user(user))
        second = client.post("/api/access-requests", json={}, headers=as_user(user))
        mine = client.get("/api/access-requests/me", headers=as_user(user))

        assert first.status_code == 201
        assert first.json()["status"] == "PENDING"
        assert second.status_code == 409
        assert second.json()["error"] == "duplicate_pending"
        assert mine.json()["request"]["id"] == first.json()["id"]

    def test_admin_rejects(self, client, make_user, make_admin):
        user = make_user()
        admin = make_admin()
        request_id = client.post("/api/access-requests", json={}, headers=as_user(user)).json()["id"]

        rejected = client.post(
            f"/api/access-requests/{request_id}/reject",
            json={"notes": "Incomplete profile"},
            headers=as_user(admin),
        )
        again = client.post(f"/api/access-requests/{request_id}/reject", json={}, headers=as_user(admin))
        stats = client.get("/api/access-requests/stats", headers=as_user(admin))

        assert rejected.status_code == 200
        assert rejected.json()["status"] == "REJECTED"
        assert again.status_code == 409
        assert stats.json()["rejected"] == 1

    def test_approve_without_connection_is_409(self, client, make_user, make_admin):
        user = make_user()
        admin = make_admin()
        request_id = client.post("/api/access-requests", json={}, headers=as_user(user)).json()["id"]

        response = client.post(f"/api/access-requests/{request_id}/approve", json={}, headers=as_user(admin))

        assert response.status_code == 409
        assert response.json()["error"] == "approver_not_connected"
        listed = client.get("/api/access-requests?status=pending", headers=as_user(admin))
        assert listed.json()["total_count"] == 1


class TestDesignToolRoutes:

    def test_connect_requires_team_access(self, client, make_user):
        response = client.get("/api/design-tool/connect", headers=as_user(make_user()))

        assert response.status_code == 403

    def test_connect_and_callback(self, client, make_user, design_tool_client):
        user = make_user(team_access=True)
        design_tool_client.exchange_code.return_value = TokenSet(
            access_token="at-1", refresh_token="rt-1", scopes=["design:content:read"]
        )
        design_tool_client.get_user.return_value = DesignToolUser(user_id="ext-9")

        started = client.get("/api/design-tool/connect", headers=as_user(user))
        assert started.status_code == 200
        assert started.json()["state"] == user.id

        finished = client.get(f"/api/design-tool/callback?code=abc&state={user.id}")
        assert finished.status_code == 200
        assert finished.json()["connected"] is True
        assert finished.json()["design_user_id"] == "ext-9"

        replay = client.get(f"/api/design-tool/callback?code=abc&state={user.id}")
        assert replay.status_code == 409

    def test_callback_provider_error(self, client):
        response = client.get("/api/design-tool/callback?error=access_denied")

        assert response.status_code == 400

    def test_status_when_not_connected(self, client, make_user):
        response = client.get("/api/design-tool/status", headers=as_user(make_user(team_access=True)))

        assert response.status_code == 200
        assert response.json()["connected"] is False
        assert response.json()["needs_reauth"] is False


class TestContentItemRoutes:

    def test_track_event(self, client, make_user, make_content_item):
        item = make_content_item()

        response = client.post(
            f"/api/content-items/{item.id}/track",
            json={"event": "download"},
            headers=as_user(make_user()),
        )

        assert response.status_code == 200
        assert response.json()["download_count"] == 1

    def test_unknown_event_rejected(self, client, make_user, make_content_item):
        item = make_content_item()

        response = client.post(
            f"/api/content-items/{item.id}/track",
            json={"event": "share"},
            headers=as_user(make_user()),
        )

        assert response.status_code == 422

    def test_trending_listing(self, client, make_content_item):
        hot = make_content_item(title="Hot", usage_count=100)
        make_content_item(title="Cold", usage_count=1)

        response = client.get("/api/content-items/trending")

        assert response.status_code == 200
        assert [item["id"] for item in response.json()] == [hot.id]

    def test_detail(self, client, make_content_item):
        item = make_content_item(title="Carousel kit")

        response = client.get(f"/api/content-items/{item.id}")

        assert response.status_code == 200
        assert response.json()["title"] == "Carousel kit"

    def test_missing_detail_is_404(self, client):
        assert client.get("/api/content-items/missing").status_code == 404


class TestStripeWebhookRoute:

    def test_bad_signature_is_400(self, client, monkeypatch):
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")

        response = client.post(
            "/api/webhooks/stripe",
            content=b'{"id": "evt_1"}',
            headers={"Stripe-Signature": "t=1,v1=bad"},
        )

        assert response.status_code == 400

    def test_verified_event_is_acknowledged(self, client, monkeypatch):
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")
        event = {"id": "evt_route", "type": "customer.created", "data": {"object": {}}}

        with patch("stripe.Webhook.construct_event", return_value=event):
            response = client.post(
                "/api/webhooks/stripe",
                content=b"{}",
                headers={"Stripe-Signature": "t=1,v1=ok"},
            )

        assert response.status_code == 200
        assert response.json()["received"] is True
