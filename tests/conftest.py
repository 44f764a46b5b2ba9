import json
import os
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("REDIS_URL", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.v1.dependencies import get_billing_client, get_dns_resolver
from app.core.errors import ProviderResourceMissing
from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models import Subscription, Template, User, Website
from app.repositories.subscription_repository import SubscriptionRepository
from app.repositories.template_repository import TemplateRepository
from app.repositories.website_repository import WebsiteRepository
from app.schemas.webhook import CustomerObject, SubscriptionObject
from app.services.billing_client import BillingClient, StripeBillingClient
from app.services.dns_resolver import DnsResolver
from app.services.entitlement_service import EntitlementService
from app.services.subscription_service import SubscriptionService
from app.services.website_service import WebsiteService
from tests.helpers import WEBHOOK_SECRET, sign_payload, ts, utc


class FakeBillingClient(BillingClient):
    """In-memory stand-in for Stripe. Signature checks use the real verifier."""

    def __init__(self):
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self.customers: Dict[str, str] = {}
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None
        self._verifier = StripeBillingClient(api_key=None, webhook_secret=WEBHOOK_SECRET)

    def add_subscription(
        self,
        subscription_id: str,
        website_id: int,
        user_id: int,
        status: str = "active",
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
        plan_tier: str = "basic",
        customer: str = "cus_test",
        **extra: Any,
    ) -> Dict[str, Any]:
        data = {
            "id": subscription_id,
            "object": "subscription",
            "status": status,
            "customer": customer,
            "current_period_start": ts(period_start or utc(-1)),
            "current_period_end": ts(period_end or utc(29)),
            "cancel_at_period_end": False,
            "metadata": {"websiteId": str(website_id), "userId": str(user_id), "planTier": plan_tier},
            "items": {"data": [{"price": {"id": "price_basic", "product": "prod_site"}}]},
        }
        data.update(extra)
        self.subscriptions[subscription_id] = data
        return data

    def _check(self, name: str, *args):
        self.calls.append((name,) + args)
        if self.error is not None:
            raise self.error

    def _get(self, subscription_id: str) -> Dict[str, Any]:
        if subscription_id not in self.subscriptions:
            raise ProviderResourceMissing()
        return self.subscriptions[subscription_id]

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionObject:
        self._check("retrieve_subscription", subscription_id)
        return SubscriptionObject.model_validate(self._get(subscription_id))

    def retrieve_customer(self, customer_id: str) -> CustomerObject:
        self._check("retrieve_customer", customer_id)
        return CustomerObject(id=customer_id, email=self.customers.get(customer_id))

    def cancel_subscription(self, subscription_id: str) -> SubscriptionObject:
        self._check("cancel_subscription", subscription_id)
        data = self._get(subscription_id)
        data.update(status="canceled", canceled_at=int(time.time()))
        return SubscriptionObject.model_validate(data)

    def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> SubscriptionObject:
        self._check("set_cancel_at_period_end", subscription_id, cancel)
        data = self._get(subscription_id)
        data["cancel_at_period_end"] = cancel
        data["cancel_at"] = data["current_period_end"] if cancel else None
        return SubscriptionObject.model_validate(data)

    def create_checkout_session(self, price_id, email, metadata, success_url, cancel_url):
        self._check("create_checkout_session", price_id, email, metadata)
        return "cs_test_123", "https://checkout.stripe.test/cs_test_123"

    def construct_event(self, payload: bytes, sig_header: str) -> Dict[str, Any]:
        return self._verifier.construct_event(payload, sig_header)


class FakeDnsResolver(DnsResolver):
    def __init__(self):
        self.records: Dict[str, List[str]] = {}
        self.lookups: List[str] = []

    def resolve_cname(self, domain: str) -> List[str]:
        self.lookups.append(domain)
        return self.records.get(domain, [])


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def billing():
    return FakeBillingClient()


@pytest.fixture
def dns():
    return FakeDnsResolver()


@pytest.fixture
def ledger(db, billing):
    return SubscriptionService(SubscriptionRepository(db), billing)


@pytest.fixture
def website_service(db, ledger):
    return WebsiteService(WebsiteRepository(db), TemplateRepository(db), ledger)


@pytest.fixture
def gate(website_service, ledger, dns):
    return EntitlementService(website_service, ledger, dns)


@pytest.fixture
def make_user(db):
    def _make(email: str = "owner@example.com", name: str = "Owner") -> User:
        user = User(email=email, name=name, hashed_password="not-a-real-hash", is_active=True)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def template(db):
    template = Template(
        name="Portfolio",
        description="Single page portfolio",
        category="personal",
        html="<main>{{name}}</main>",
        js="",
        components={"hero": {"title": "Hello"}},
        is_active=True,
        usage_count=0,
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


@pytest.fixture
def make_website(db, template):
    def _make(owner: User, slug: str = "my-site", **fields: Any) -> Website:
        website = Website(
            user_id=owner.id,
            template_id=template.id,
            name=fields.pop("name", "My Site"),
            slug=slug,
            html=template.html,
            css="",
            js="",
            components={},
            is_published=fields.pop("is_published", False),
            is_custom_domain_verified=fields.pop("is_custom_domain_verified", False),
            view_count=0,
            **fields,
        )
        db.add(website)
        db.commit()
        db.refresh(website)
        return website
    return _make


@pytest.fixture
def website(make_website, user):
    return make_website(user)


@pytest.fixture
def make_subscription(db):
    def _make(website: Website, subscription_id: str = "sub_test_1", **fields: Any) -> Subscription:
        values = {
            "user_id": website.user_id,
            "website_id": website.id,
            "status": "active",
            "plan_tier": "basic",
            "current_period_start": utc(-1),
            "current_period_end": utc(29),
            "cancel_at_period_end": False,
            "metadata_": {},
        }
        values.update(fields)
        subscription = Subscription(subscription_id=subscription_id, **values)
        db.add(subscription)
        db.commit()
        db.refresh(subscription)
        return subscription
    return _make


@pytest.fixture
def client(db, billing, dns):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_billing_client] = lambda: billing
    app.dependency_overrides[get_dns_resolver] = lambda: dns
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> Dict[str, str]:
        token = create_access_token({"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def post_event(client):
    def _post(event: Dict[str, Any], secret: str = WEBHOOK_SECRET):
        payload = json.dumps(event)
        return client.post(
            "/api/v1/webhook",
            content=payload,
            headers={"Stripe-Signature": sign_payload(payload, secret), "Content-Type": "application/json"},
        )
    return _post
