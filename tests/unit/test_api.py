"""
HTTP tests for the v1 API through FastAPI's TestClient.
Run: pytest tests/unit/test_api.py -v
"""
import asyncio
import json
from unittest.mock import patch

from fastapi.testclient import TestClient

from app.main import app
from app.models import Subscription, Template, Website
from tests.helpers import sign_payload, stripe_event


def test_health(client):
    response = client.get("/health")
    assert response.status_code in (200, 503)
    assert "database" in response.json()


def test_webhook_verify_probe(client):
    response = client.get("/api/v1/webhook/verify")
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_webhook_requires_signature_header(client):
    response = client.post("/api/v1/webhook", content=json.dumps(stripe_event("invoice.payment_failed", {"id": "in_1"})))
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_webhook_rejects_bad_signature(client, db, website, make_subscription, post_event):
    make_subscription(website)

    response = post_event(
        stripe_event("customer.subscription.deleted", {"id": "sub_test_1", "status": "canceled"}),
        secret="whsec_wrong",
    )

    assert response.status_code == 400
    db.expire_all()
    assert db.query(Subscription).one().status == "active"


def test_webhook_malformed_payload_asks_for_retry(db, website, make_subscription, post_event):
    make_subscription(website)

    response = post_event(stripe_event("customer.subscription.updated", {"status": "canceled"}))

    assert response.status_code == 500
    assert response.json()["success"] is False
    db.expire_all()
    assert db.query(Subscription).one().status == "active"


def test_webhook_signed_body_that_is_not_an_event_asks_for_retry(client):
    payload = json.dumps(["not", "an", "event"])

    response = client.post("/api/v1/webhook", content=payload, headers={"Stripe-Signature": sign_payload(payload)})

    assert response.status_code == 500


def test_webhook_ingest_runs_off_the_event_loop(website, user, billing, post_event):
    billing.add_subscription("sub_test_1", website.id, user.id)
    loops = []

    def fake_ingest(self, event):
        try:
            asyncio.get_running_loop()
            loops.append("event loop")
        except RuntimeError:
            loops.append("worker thread")
        return "applied"

    with patch("app.services.subscription_service.SubscriptionService.ingest", fake_ingest):
        response = post_event(stripe_event("checkout.session.completed", {"id": "cs_1", "subscription": "sub_test_1"}))

    assert response.status_code == 200
    assert loops == ["worker thread"]


def test_webhook_acknowledges_unhandled_event(post_event):
    response = post_event(stripe_event("customer.created", {"id": "cus_1"}))

    assert response.status_code == 200
    assert response.json() == {"success": True, "received": True, "eventType": "customer.created", "outcome": "ignored"}


def test_webhook_checkout_creates_subscription(client, db, billing, website, user, post_event):
    billing.add_subscription("sub_test_1", website.id, user.id)
    event = stripe_event(
        "checkout.session.completed",
        {"id": "cs_1", "subscription": "sub_test_1", "customer": "cus_test"},
    )

    response = post_event(event)

    assert response.status_code == 200
    assert response.json()["outcome"] == "applied"
    db.expire_all()
    assert db.query(Subscription).one().website_id == website.id


def test_webhook_processing_failure_is_500(client, website, user, billing, post_event):
    billing.add_subscription("sub_test_1", website.id, user.id)
    event = stripe_event("checkout.session.completed", {"id": "cs_1", "subscription": "sub_test_1"})

    with patch("app.services.subscription_service.SubscriptionService.ingest", side_effect=RuntimeError("db down")):
        client_no_raise = TestClient(app, raise_server_exceptions=False)
        payload = json.dumps(event)
        response = client_no_raise.post(
            "/api/v1/webhook",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload)},
        )

    assert response.status_code == 500


def test_webhook_provider_failure_asks_for_retry(db, post_event, website):
    # billing has no record of sub_test_1, so the provider lookup fails
    event = stripe_event("checkout.session.completed", {"id": "cs_1", "subscription": "sub_test_1"})

    response = post_event(event)

    assert response.status_code == 500
    assert db.query(Subscription).count() == 0


def test_check_subscription(client, website, user, make_subscription, auth_headers):
    make_subscription(website)

    response = client.get(f"/api/v1/subscriptions/check/{user.id}/{website.id}", headers=auth_headers(user))

    assert response.status_code == 200
    body = response.json()
    assert body["hasActiveSubscription"] is True
    assert body["data"]["subscriptionId"] == "sub_test_1"


def test_check_subscription_requires_auth(client, website, user):
    response = client.get(f"/api/v1/subscriptions/check/{user.id}/{website.id}")
    assert response.status_code == 401


def test_check_subscription_of_other_user_is_forbidden(client, website, user, make_user, auth_headers):
    other = make_user(email="other@example.com")

    response = client.get(f"/api/v1/subscriptions/check/{user.id}/{website.id}", headers=auth_headers(other))

    assert response.status_code == 403


def test_check_bulk(client, user, make_website, make_subscription, auth_headers):
    paid = make_website(user, slug="paid-site")
    free = make_website(user, slug="free-site")
    make_subscription(paid)

    response = client.post(
        "/api/v1/subscriptions/check-bulk",
        json={"userId": user.id, "websiteIds": [paid.id, free.id]},
        headers=auth_headers(user),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert set(data) == {str(paid.id), str(free.id)}
    assert data[str(paid.id)]["hasActiveSubscription"] is True
    assert data[str(free.id)] == {"hasActiveSubscription": False, "data": None}


def test_cancel_and_reactivate_routes(client, billing, website, user, make_subscription, auth_headers):
    billing.add_subscription("sub_test_1", website.id, user.id)
    make_subscription(website)

    response = client.post(
        "/api/v1/subscriptions/cancel",
        json={"subscriptionId": "sub_test_1", "userId": user.id},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    assert response.json()["data"]["cancelAtPeriodEnd"] is True
    assert response.json()["data"]["refundable"] is False

    response = client.post(
        "/api/v1/subscriptions/reactivate",
        json={"subscriptionId": "sub_test_1"},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    assert response.json()["data"]["cancelAtPeriodEnd"] is False


def test_cancel_reports_provider_drift(client, website, user, make_subscription, auth_headers):
    make_subscription(website)

    response = client.post(
        "/api/v1/subscriptions/cancel",
        json={"subscriptionId": "sub_test_1"},
        headers=auth_headers(user),
    )

    assert response.status_code == 404
    assert response.json()["upstreamMissing"] is True


def test_subscription_details_survive_provider_failure(client, website, user, make_subscription, auth_headers):
    make_subscription(website)

    response = client.get(f"/api/v1/subscriptions/details/{user.id}/{website.id}", headers=auth_headers(user))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["isActive"] is True
    assert data["willRenew"] is True
    assert data["providerDetails"] is None


def test_user_subscriptions_list(client, website, user, make_subscription, auth_headers):
    make_subscription(website)

    response = client.get(f"/api/v1/subscriptions/user/{user.id}", headers=auth_headers(user))

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 1
    assert body["data"][0]["websiteSlug"] == "my-site"


def test_feature_access_route(client, website, user, make_subscription, auth_headers):
    make_subscription(website, plan_tier="pro")

    response = client.get(
        f"/api/v1/subscriptions/features/{user.id}/{website.id}/analytics",
        headers=auth_headers(user),
    )

    assert response.status_code == 200
    assert response.json()["allowed"] is True
    assert response.json()["planTier"] == "pro"


def test_subscribe_returns_checkout_session(client, website, user, auth_headers):
    response = client.post(
        "/api/v1/subscriptions/subscribe",
        json={"priceId": "price_basic", "email": "owner@example.com", "websiteId": website.id, "userId": user.id},
        headers=auth_headers(user),
    )

    assert response.status_code == 201
    assert response.json()["sessionId"] == "cs_test_123"


def test_templates_list(client, template):
    response = client.get("/api/v1/templates")

    assert response.status_code == 200
    assert response.json()["data"][0]["name"] == "Portfolio"


def _add_template(db, name, usage_count=0, is_active=True):
    template = Template(name=name, category="landing", html="<main></main>", is_active=is_active, usage_count=usage_count)
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


def test_template_detail_for_preview(client, template):
    response = client.get(f"/api/v1/templates/{template.id}")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Portfolio"
    assert data["html"] == "<main>{{name}}</main>"
    assert data["components"] == {"hero": {"title": "Hello"}}
    assert data["usageCount"] == 0


def test_template_detail_hides_missing_and_inactive(client, db):
    retired = _add_template(db, "Retired", is_active=False)

    assert client.get(f"/api/v1/templates/{retired.id}").status_code == 404
    assert client.get("/api/v1/templates/9999").status_code == 404


def test_template_categories(client):
    response = client.get("/api/v1/templates/categories")

    assert response.status_code == 200
    data = response.json()["data"]
    assert {"value": "ecommerce", "label": "E-commerce"} in data
    assert [c["value"] for c in data][-1] == "other"


def test_popular_templates_by_usage(client, db, template):
    _add_template(db, "Launch", usage_count=9)
    _add_template(db, "Shop", usage_count=4)
    _add_template(db, "Hidden", usage_count=50, is_active=False)

    response = client.get("/api/v1/templates/popular", params={"limit": 2})

    assert response.status_code == 200
    assert [t["name"] for t in response.json()["data"]] == ["Launch", "Shop"]
    assert client.get("/api/v1/templates/popular", params={"limit": 0}).status_code == 422


def test_create_website_generates_unique_slug(client, db, template, user, make_website, auth_headers):
    make_website(user, slug="portfolio")

    response = client.post(
        "/api/v1/websites",
        json={"userId": user.id, "templateId": template.id},
        headers=auth_headers(user),
    )

    assert response.status_code == 201
    assert response.json()["data"]["slug"] == "portfolio-1"
    db.refresh(template)
    assert template.usage_count == 1


def test_website_list_includes_entitlement(client, user, make_website, make_subscription, auth_headers):
    paid = make_website(user, slug="paid-site")
    make_website(user, slug="free-site")
    make_subscription(paid)

    response = client.get(f"/api/v1/websites/user/{user.id}?page=1&limit=10", headers=auth_headers(user))

    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["totalItems"] == 2
    flags = {item["slug"]: item["hasActiveSubscription"] for item in body["data"]}
    assert flags == {"paid-site": True, "free-site": False}


def test_update_website(client, website, user, auth_headers):
    response = client.put(
        f"/api/v1/websites/{website.id}",
        json={"name": "Renamed site", "css": "body{}"},
        headers=auth_headers(user),
    )

    assert response.status_code == 200
    assert response.json()["data"]["name"] == "Renamed site"
    assert response.json()["data"]["css"] == "body{}"


def test_publish_route_requires_subscription(client, website, user, auth_headers):
    response = client.put(
        f"/api/v1/websites/{website.id}/publish",
        json={"isPublished": True},
        headers=auth_headers(user),
    )

    assert response.status_code == 403
    assert response.json()["requiresSubscription"] is True


def test_publish_then_render_by_slug(client, website, user, make_subscription, auth_headers):
    make_subscription(website)

    response = client.put(
        f"/api/v1/websites/{website.id}/publish",
        json={"isPublished": True},
        headers=auth_headers(user),
    )
    assert response.status_code == 200

    response = client.get("/api/v1/websites/site/my-site")
    assert response.status_code == 200
    assert response.json()["data"]["name"] == "My Site"


def test_unpublished_site_is_not_served(client, website):
    response = client.get("/api/v1/websites/site/my-site")
    assert response.status_code == 404


def test_custom_domain_flow(client, dns, website, user, make_subscription, auth_headers):
    make_subscription(website)

    response = client.post(
        f"/api/v1/websites/{website.id}/custom-domain",
        json={"domain": "www.example.com"},
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    assert response.json()["data"]["dnsRecords"]["value"] == "my-site.sites.sitecraft.app"

    response = client.get(
        f"/api/v1/websites/verify-domain/www.example.com?siteid={website.id}",
        headers=auth_headers(user),
    )
    assert response.status_code == 400
    assert response.json()["instructions"]["type"] == "CNAME"

    dns.records["www.example.com"] = ["my-site.sites.sitecraft.app"]
    response = client.get(
        f"/api/v1/websites/verify-domain/www.example.com?siteid={website.id}",
        headers=auth_headers(user),
    )
    assert response.status_code == 200
    assert response.json()["data"]["isVerified"] is True


def test_custom_domain_rejects_invalid_domain(client, website, user, auth_headers):
    response = client.post(
        f"/api/v1/websites/{website.id}/custom-domain",
        json={"domain": "not a domain"},
        headers=auth_headers(user),
    )
    assert response.status_code == 400


def test_render_by_domain_requires_live_subscription(client, db, make_website, user, make_subscription):
    website = make_website(
        user,
        is_published=True,
        custom_domain="example.com",
        is_custom_domain_verified=True,
    )
    sub = make_subscription(website)

    assert client.get("/api/v1/websites/domain/example.com").status_code == 200

    sub.status = "canceled"
    db.commit()
    response = client.get("/api/v1/websites/domain/EXAMPLE.com")
    assert response.status_code == 403
    assert response.json()["requiresSubscription"] is True


def test_delete_website_removes_subscriptions(client, db, website, user, make_subscription, auth_headers):
    make_subscription(website, "sub_a")
    make_subscription(website, "sub_b", status="canceled")
    website_id = website.id

    response = client.delete(f"/api/v1/websites/{website_id}", headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json()["deletedSubscriptions"] == 2
    db.expire_all()
    assert db.query(Subscription).count() == 0
    assert db.query(Website).filter(Website.id == website_id).first() is None


def test_delete_website_of_other_user_is_forbidden(client, website, make_user, auth_headers):
    other = make_user(email="other@example.com")

    response = client.delete(f"/api/v1/websites/{website.id}", headers=auth_headers(other))

    assert response.status_code == 403


def test_register_login_me(client):
    response = client.post(
        "/api/v1/auth/register",
        json={"name": "New", "email": "New@Example.com", "password": "correct-horse"},
    )
    assert response.status_code == 201
    assert response.json()["email"] == "new@example.com"

    response = client.post("/api/v1/auth/register", json={"email": "new@example.com", "password": "another-pass"})
    assert response.status_code == 409

    response = client.post("/api/v1/auth/login", data={"email": "new@example.com", "password": "wrong-pass"})
    assert response.status_code == 401

    response = client.post("/api/v1/auth/login", data={"email": "new@example.com", "password": "correct-horse"})
    assert response.status_code == 200
    token = response.json()["access_token"]

    response = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["email"] == "new@example.com"
