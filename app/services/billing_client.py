"""Billing provider capability used by the subscription ledger.

The ledger only talks to ``BillingClient``; production wires in
``StripeBillingClient`` and tests pass a fake with the same methods.
"""
import json
import logging
from typing import Any, Dict, Optional, Tuple

import stripe

from app.core.config import settings
from app.core.errors import (
    ConfigurationError,
    InvalidEventPayload,
    InvalidSignature,
    ProviderError,
    ProviderInvalidRequest,
    ProviderResourceMissing,
)
from app.schemas.webhook import CustomerObject, SubscriptionObject

logger = logging.getLogger(__name__)


class BillingClient:
    def retrieve_subscription(self, subscription_id: str) -> SubscriptionObject:
        raise NotImplementedError

    def retrieve_customer(self, customer_id: str) -> CustomerObject:
        raise NotImplementedError

    def cancel_subscription(self, subscription_id: str) -> SubscriptionObject:
        """Cancel now; the provider ends the subscription immediately."""
        raise NotImplementedError

    def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> SubscriptionObject:
        raise NotImplementedError

    def create_checkout_session(
        self,
        price_id: str,
        email: str,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> Tuple[str, Optional[str]]:
        """Returns (session_id, url)."""
        raise NotImplementedError

    def construct_event(self, payload: bytes, sig_header: str) -> Dict[str, Any]:
        """Verify the signature and return the decoded event."""
        raise NotImplementedError


def _as_dict(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, dict):
        return obj
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    raise ProviderError(f"Unexpected provider response type: {type(obj).__name__}")


class StripeBillingClient(BillingClient):
    def __init__(self, api_key: Optional[str], webhook_secret: Optional[str]):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def _call(self, fn, *args, **kwargs):
        if not self.api_key:
            raise ConfigurationError("Stripe credentials not configured")
        try:
            return fn(*args, api_key=self.api_key, **kwargs)
        except stripe.InvalidRequestError as e:
            if e.code == "resource_missing":
                logger.warning(f"Stripe resource missing: {e.user_message or str(e)}")
                raise ProviderResourceMissing() from e
            logger.warning(f"Stripe rejected request: {str(e)}")
            raise ProviderInvalidRequest(e.user_message or "Invalid request to billing provider") from e
        except stripe.StripeError as e:
            logger.error(f"Stripe request failed: {str(e)}")
            raise ProviderError() from e

    def retrieve_subscription(self, subscription_id: str) -> SubscriptionObject:
        obj = self._call(stripe.Subscription.retrieve, subscription_id)
        return SubscriptionObject.model_validate(_as_dict(obj))

    def retrieve_customer(self, customer_id: str) -> CustomerObject:
        obj = self._call(stripe.Customer.retrieve, customer_id)
        return CustomerObject.model_validate(_as_dict(obj))

    def cancel_subscription(self, subscription_id: str) -> SubscriptionObject:
        obj = self._call(stripe.Subscription.cancel, subscription_id)
        return SubscriptionObject.model_validate(_as_dict(obj))

    def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> SubscriptionObject:
        obj = self._call(stripe.Subscription.modify, subscription_id, cancel_at_period_end=cancel)
        return SubscriptionObject.model_validate(_as_dict(obj))

    def create_checkout_session(
        self,
        price_id: str,
        email: str,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> Tuple[str, Optional[str]]:
        session = self._call(
            stripe.checkout.Session.create,
            mode="subscription",
            line_items=[{"price": price_id, "quantity": 1}],
            customer_email=email,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            subscription_data={"metadata": metadata},
            allow_promotion_codes=True,
            billing_address_collection="auto",
        )
        data = _as_dict(session)
        return data["id"], data.get("url")

    def construct_event(self, payload: bytes, sig_header: str) -> Dict[str, Any]:
        if not self.webhook_secret:
            raise ConfigurationError("Stripe webhook secret not configured")
        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidSignature("Webhook body is not valid UTF-8") from e
        try:
            stripe.WebhookSignature.verify_header(
                body,
                sig_header,
                self.webhook_secret,
                tolerance=stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Stripe signature verification failed: {str(e)}")
            raise InvalidSignature() from e
        try:
            event = json.loads(body)
        except ValueError as e:
            raise InvalidEventPayload("Webhook body is not valid JSON") from e
        if not isinstance(event, dict):
            raise InvalidEventPayload("Webhook body is not an event object")
        return event


def get_stripe_billing_client() -> StripeBillingClient:
    return StripeBillingClient(
        api_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.stripe_webhook_secret,
    )
