"""
Unit tests for typed parsing of Stripe webhook events.
Run: pytest tests/unit/test_webhook_events.py -v
"""
import json

import pytest

from app.core.errors import InvalidEventPayload, InvalidSignature
from app.schemas.webhook import InvoicePaymentSucceeded, SubscriptionUpdated, parse_event
from app.services.billing_client import StripeBillingClient
from tests.helpers import WEBHOOK_SECRET, sign_payload, stripe_event


def test_unknown_event_type_is_not_parsed():
    assert parse_event(stripe_event("customer.created", {"id": "cus_1"})) is None
    assert parse_event({"data": {}}) is None


def test_known_event_is_parsed_into_typed_payload():
    event = parse_event(stripe_event(
        "customer.subscription.updated",
        {"id": "sub_1", "status": "active", "customer": {"id": "cus_1"}, "metadata": {"websiteId": 7}},
        created=1700000000,
    ))

    assert isinstance(event, SubscriptionUpdated)
    assert event.object.customer == "cus_1"
    assert event.object.metadata == {"websiteId": "7"}
    assert event.created_at.year == 2023


def test_known_event_missing_required_fields_is_rejected():
    with pytest.raises(InvalidEventPayload):
        parse_event(stripe_event("customer.subscription.deleted", {"status": "canceled"}))
    with pytest.raises(InvalidEventPayload):
        parse_event({"id": "evt_1", "type": "invoice.payment_failed", "data": {}})


def test_invoice_line_period_and_expanded_subscription():
    event = parse_event(stripe_event(
        "invoice.payment_succeeded",
        {
            "id": "in_1",
            "subscription": {"id": "sub_1", "object": "subscription"},
            "lines": {"data": [{"period": {"start": 100, "end": 200}}]},
        },
    ))

    assert isinstance(event, InvoicePaymentSucceeded)
    assert event.object.subscription == "sub_1"
    assert event.object.line_period.end == 200


def test_subscription_product_defaults_to_unknown():
    event = parse_event(stripe_event("customer.subscription.updated", {"id": "sub_1", "status": "active"}))
    assert event.object.product_id == "unknown"
    assert event.object.period_end is None


def test_signature_is_verified_before_decoding():
    client = StripeBillingClient(api_key=None, webhook_secret=WEBHOOK_SECRET)
    payload = json.dumps(stripe_event("invoice.payment_failed", {"id": "in_1"}))

    event = client.construct_event(payload.encode("utf-8"), sign_payload(payload))
    assert event["type"] == "invoice.payment_failed"

    with pytest.raises(InvalidSignature):
        client.construct_event(payload.encode("utf-8"), sign_payload(payload, secret="whsec_wrong"))
    with pytest.raises(InvalidSignature):
        client.construct_event(payload.encode("utf-8"), sign_payload(payload, timestamp=1))


def test_signed_body_that_is_not_an_object_is_rejected():
    client = StripeBillingClient(api_key=None, webhook_secret=WEBHOOK_SECRET)
    payload = json.dumps(["not", "an", "event"])

    with pytest.raises(InvalidEventPayload):
        client.construct_event(payload.encode("utf-8"), sign_payload(payload))
