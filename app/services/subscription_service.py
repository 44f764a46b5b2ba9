"""Subscription ledger: the local mirror of each website's Stripe subscription.

State changes come from two places: verified webhook events (``ingest``) and
user commands (``cancel`` / ``reactivate``). Everything else reads.
"""
import logging
import math
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

from app.core.config import settings
from app.core.errors import (
    ConfigurationError,
    Conflict,
    NotScheduledForCancellation,
    PermissionDenied,
    ProviderError,
    SubscriptionAlreadyCanceled,
    SubscriptionNotFound,
    ValidationFailed,
)
from app.models.subscription import PLAN_TIERS, SUBSCRIPTION_STATUSES, Subscription
from app.models.website import Website
from app.repositories.subscription_repository import SubscriptionRepository
from app.schemas.subscription import (
    CancelResult,
    ProviderSubscriptionDetails,
    ReactivateResult,
    SubscriptionDetails,
    SubscriptionRecord,
    UserSubscription,
)
from app.schemas.webhook import (
    BaseEvent,
    CheckoutSessionCompleted,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    SubscriptionDeleted,
    SubscriptionObject,
    SubscriptionTrialWillEnd,
    SubscriptionUpdated,
)
from app.services.billing_client import BillingClient
from app.utils.dates import as_utc, from_timestamp, utcnow

logger = logging.getLogger(__name__)

# Ingest outcomes
APPLIED = "applied"
IGNORED = "ignored"
STALE = "stale"

# Provider statuses that mean "payment at risk" collapse to incomplete
STATUS_ALIASES = {
    "past_due": "incomplete",
    "unpaid": "incomplete",
    "paused": "incomplete",
    "incomplete_expired": "canceled",
}

SUBSCRIPTION_ID_RE = re.compile(r"^[A-Za-z0-9_]{3,255}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class Entitlement(NamedTuple):
    entitled: bool
    subscription: Optional[Subscription]


def normalize_status(status: Optional[str]) -> str:
    value = (status or "").strip().lower()
    value = STATUS_ALIASES.get(value, value)
    if value not in SUBSCRIPTION_STATUSES:
        logger.warning(f"Unknown subscription status '{status}', storing as incomplete")
        return "incomplete"
    return value


def is_entitled(subscription: Optional[Subscription], now: Optional[datetime] = None) -> bool:
    """The single entitlement predicate: active and the paid period not over."""
    if subscription is None or subscription.status != "active":
        return False
    period_end = as_utc(subscription.current_period_end)
    if period_end is None:
        return False
    return period_end > (now or utcnow())


def days_remaining(subscription: Subscription, now: Optional[datetime] = None) -> int:
    period_end = as_utc(subscription.current_period_end)
    if period_end is None:
        return 0
    seconds = (period_end - (now or utcnow())).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def plan_tier_from_metadata(metadata: Optional[Dict[str, Any]]) -> str:
    tier = str((metadata or {}).get("planTier") or "").strip().lower()
    return tier if tier in PLAN_TIERS else "basic"


def _int_or_none(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class SubscriptionService:
    def __init__(self, repo: SubscriptionRepository, billing: BillingClient):
        self.repo = repo
        self.billing = billing

    # --- webhook ingestion -------------------------------------------------------

    def ingest(self, event: BaseEvent) -> str:
        """Apply one parsed webhook event. Returns applied, ignored or stale."""
        handlers = {
            "checkout.session.completed": self._on_checkout_completed,
            "invoice.payment_succeeded": self._on_payment_succeeded,
            "invoice.payment_failed": self._on_payment_failed,
            "customer.subscription.updated": self._on_subscription_updated,
            "customer.subscription.deleted": self._on_subscription_deleted,
            "customer.subscription.trial_will_end": self._on_trial_will_end,
        }
        handler = handlers.get(getattr(event, "type", None))
        if handler is None:
            logger.info(f"Ignoring unhandled event type {getattr(event, 'type', None)}")
            return IGNORED
        return handler(event)

    def _is_stale(self, existing: Optional[Subscription], event: BaseEvent) -> bool:
        if existing is None or event.created_at is None:
            return False
        last = as_utc(existing.last_event_at)
        if last is not None and event.created_at < last:
            logger.info(
                f"Skipping stale {event.type} ({event.id}) for {existing.subscription_id}: "
                f"event at {event.created_at.isoformat()} older than {last.isoformat()}"
            )
            return True
        return False

    def _event_marker(self, event: BaseEvent) -> Dict[str, Any]:
        if event.created_at is None:
            return {}
        return {"last_event_at": event.created_at}

    def _on_checkout_completed(self, event: CheckoutSessionCompleted) -> str:
        session = event.object
        if not session.subscription:
            logger.info(f"Checkout session {session.id} has no subscription, nothing to record")
            return IGNORED

        existing = self.repo.get_by_subscription_id(session.subscription)
        if self._is_stale(existing, event):
            return STALE

        provider_sub = self.billing.retrieve_subscription(session.subscription)
        email = session.email
        customer_id = session.customer or provider_sub.customer
        if customer_id:
            customer = self.billing.retrieve_customer(customer_id)
            email = customer.email or email

        return self._record_provider_state(
            existing,
            provider_sub,
            event,
            email=email,
            period_start=provider_sub.period_start,
            period_end=provider_sub.period_end,
        )

    def _on_payment_succeeded(self, event: InvoicePaymentSucceeded) -> str:
        invoice = event.object
        if not invoice.subscription:
            logger.info(f"Invoice {invoice.id} is not tied to a subscription, nothing to record")
            return IGNORED

        existing = self.repo.get_by_subscription_id(invoice.subscription)
        if self._is_stale(existing, event):
            return STALE

        provider_sub = self.billing.retrieve_subscription(invoice.subscription)
        email = invoice.customer_email
        customer_id = invoice.customer or provider_sub.customer
        if customer_id:
            customer = self.billing.retrieve_customer(customer_id)
            email = customer.email or email

        period = invoice.line_period
        period_start = from_timestamp(period.start) if period else None
        period_end = from_timestamp(period.end) if period else None

        return self._record_provider_state(
            existing,
            provider_sub,
            event,
            email=email,
            period_start=period_start or provider_sub.period_start,
            period_end=period_end or provider_sub.period_end,
        )

    def _record_provider_state(
        self,
        existing: Optional[Subscription],
        provider_sub: SubscriptionObject,
        event: BaseEvent,
        email: Optional[str],
        period_start: Optional[datetime],
        period_end: Optional[datetime],
    ) -> str:
        metadata = provider_sub.metadata
        website_id = _int_or_none(metadata.get("websiteId"))
        user_id = _int_or_none(metadata.get("userId"))
        if existing is not None:
            website_id = website_id or existing.website_id
            user_id = user_id or existing.user_id

        if website_id is None or user_id is None:
            logger.error(
                f"Subscription {provider_sub.id} carries no websiteId/userId metadata "
                f"({event.type} {event.id}), cannot link it to a website"
            )
            return IGNORED

        if existing is None:
            owner_id = self.repo.get_website_owner(website_id)
            if owner_id is None:
                logger.error(f"Subscription {provider_sub.id} references missing website {website_id}")
                return IGNORED
            if owner_id != user_id:
                logger.error(
                    f"Subscription {provider_sub.id} metadata user {user_id} "
                    f"does not own website {website_id}"
                )
                return IGNORED

        fields: Dict[str, Any] = {
            "user_id": user_id,
            "website_id": website_id,
            "product_id": provider_sub.product_id,
            "status": normalize_status(provider_sub.status),
            "plan_tier": plan_tier_from_metadata(metadata),
            "cancel_at_period_end": provider_sub.cancel_at_period_end,
            "trial_end": from_timestamp(provider_sub.trial_end),
            "metadata_": dict(metadata),
        }
        # Keep what we already know when the provider omits it
        if email:
            fields["email"] = email
        if period_start:
            fields["current_period_start"] = period_start
            if existing is None or existing.start_date is None:
                fields["start_date"] = period_start
        if period_end:
            fields["current_period_end"] = period_end
        fields.update(self._event_marker(event))

        subscription = self.repo.upsert(provider_sub.id, **fields)
        logger.info(
            f"{event.type}: subscription {subscription.subscription_id} for website "
            f"{subscription.website_id} is {subscription.status} until "
            f"{subscription.current_period_end}"
        )
        return APPLIED

    def _on_payment_failed(self, event: InvoicePaymentFailed) -> str:
        invoice = event.object
        if not invoice.subscription:
            logger.info(f"Failed invoice {invoice.id} is not tied to a subscription")
            return IGNORED

        existing = self.repo.get_by_subscription_id(invoice.subscription)
        if existing is None:
            logger.warning(f"Payment failed for unknown subscription {invoice.subscription}, ignoring")
            return IGNORED
        if self._is_stale(existing, event):
            return STALE

        self.repo.update(existing, {"status": "incomplete", **self._event_marker(event)})
        logger.warning(f"Payment failed for subscription {existing.subscription_id}, marked incomplete")
        return APPLIED

    def _on_subscription_updated(self, event: SubscriptionUpdated) -> str:
        sub = event.object
        existing = self.repo.get_by_subscription_id(sub.id)
        if existing is None:
            logger.warning(f"Update for unknown subscription {sub.id}, ignoring")
            return IGNORED
        if self._is_stale(existing, event):
            return STALE

        fields: Dict[str, Any] = {
            "status": normalize_status(sub.status),
            "cancel_at_period_end": sub.cancel_at_period_end,
            "canceled_at": from_timestamp(sub.canceled_at),
            "trial_end": from_timestamp(sub.trial_end),
        }
        if sub.period_end:
            fields["current_period_end"] = sub.period_end
        if sub.metadata.get("planTier"):
            fields["plan_tier"] = plan_tier_from_metadata(sub.metadata)
        fields.update(self._event_marker(event))

        self.repo.update(existing, fields)
        logger.info(
            f"Subscription {sub.id} updated: status={fields['status']} "
            f"cancel_at_period_end={sub.cancel_at_period_end}"
        )
        return APPLIED

    def _on_subscription_deleted(self, event: SubscriptionDeleted) -> str:
        sub = event.object
        existing = self.repo.get_by_subscription_id(sub.id)
        if existing is None:
            logger.warning(f"Deletion of unknown subscription {sub.id}, ignoring")
            return IGNORED
        if self._is_stale(existing, event):
            return STALE

        canceled_at = from_timestamp(sub.canceled_at)
        if canceled_at is None and existing.status == "canceled":
            canceled_at = as_utc(existing.canceled_at)
        canceled_at = canceled_at or event.created_at or utcnow()

        fields = {
            "status": "canceled",
            "cancel_at_period_end": False,
            "canceled_at": canceled_at,
            "ended_at": from_timestamp(sub.ended_at) or as_utc(existing.ended_at) or canceled_at,
        }
        fields.update(self._event_marker(event))

        self.repo.update(existing, fields)
        logger.info(f"Subscription {sub.id} deleted at provider, marked canceled")
        return APPLIED

    def _on_trial_will_end(self, event: SubscriptionTrialWillEnd) -> str:
        sub = event.object
        existing = self.repo.get_by_subscription_id(sub.id)
        trial_end = from_timestamp(sub.trial_end)
        email = existing.email if existing else None
        logger.info(f"Trial for subscription {sub.id} ends at {trial_end} (customer {email})")
        return IGNORED

    # --- user commands ---------------------------------------------------------------

    def _get_owned(self, subscription_id: str, user_id: Optional[int], action: str) -> Subscription:
        if not subscription_id or not SUBSCRIPTION_ID_RE.match(subscription_id):
            raise ValidationFailed("Invalid subscriptionId")
        subscription = self.repo.get_by_subscription_id(subscription_id)
        if not subscription:
            raise SubscriptionNotFound("Subscription not found in database")
        if user_id is not None and subscription.user_id != user_id:
            raise PermissionDenied(f"You don't have permission to {action} this subscription")
        return subscription

    def cancel(
        self,
        subscription_id: str,
        user_id: Optional[int] = None,
        immediate: bool = False,
    ) -> CancelResult:
        subscription = self._get_owned(subscription_id, user_id, "cancel")
        if subscription.status == "canceled":
            raise SubscriptionAlreadyCanceled()

        now = utcnow()
        if immediate:
            self.billing.cancel_subscription(subscription_id)
            subscription = self.repo.update(subscription, {
                "status": "canceled",
                "cancel_at_period_end": False,
                "current_period_end": now,
                "canceled_at": now,
                "ended_at": now,
            })
            cancel_at = now
            logger.info(f"Subscription {subscription_id} canceled immediately")
        else:
            provider_sub = self.billing.set_cancel_at_period_end(subscription_id, True)
            subscription = self.repo.update(subscription, {
                "cancel_at_period_end": True,
                "canceled_at": now,
            })
            cancel_at = from_timestamp(provider_sub.cancel_at) or as_utc(subscription.current_period_end)
            logger.info(f"Subscription {subscription_id} scheduled to cancel at {cancel_at}")

        return CancelResult(
            subscription_id=subscription.subscription_id,
            canceled_immediately=immediate,
            status=subscription.status,
            cancel_at_period_end=subscription.cancel_at_period_end,
            cancel_at=cancel_at,
            canceled_at=as_utc(subscription.canceled_at),
            current_period_end=as_utc(subscription.current_period_end),
            refundable=immediate,
        )

    def reactivate(self, subscription_id: str, user_id: Optional[int] = None) -> ReactivateResult:
        subscription = self._get_owned(subscription_id, user_id, "reactivate")
        if not subscription.cancel_at_period_end:
            raise NotScheduledForCancellation()

        self.billing.set_cancel_at_period_end(subscription_id, False)
        subscription = self.repo.update(subscription, {
            "cancel_at_period_end": False,
            "status": "active",
        })
        logger.info(f"Subscription {subscription_id} reactivated")
        return ReactivateResult(
            subscription_id=subscription.subscription_id,
            status=subscription.status,
            cancel_at_period_end=subscription.cancel_at_period_end,
            current_period_end=as_utc(subscription.current_period_end),
        )

    # --- queries -------------------------------------------------------------------------

    def query(self, user_id: int, website_id: int) -> Entitlement:
        now = utcnow()
        for subscription in self.repo.list_active_for_websites(user_id, [website_id]):
            if is_entitled(subscription, now):
                return Entitlement(True, subscription)
        return Entitlement(False, None)

    def query_bulk(self, user_id: int, website_ids: Iterable[int]) -> Dict[int, Entitlement]:
        """One entry per requested website id, in request order."""
        result = {website_id: Entitlement(False, None) for website_id in website_ids}
        now = utcnow()
        for subscription in self.repo.list_active_for_websites(user_id, result.keys()):
            current = result.get(subscription.website_id)
            if current is not None and not current.entitled and is_entitled(subscription, now):
                result[subscription.website_id] = Entitlement(True, subscription)
        return result

    def details(self, user_id: int, website_id: int) -> SubscriptionDetails:
        subscription = self.repo.get_latest_for_website(user_id, website_id)
        if not subscription:
            raise SubscriptionNotFound("No subscription found for this website")

        provider_details = None
        try:
            provider_sub = self.billing.retrieve_subscription(subscription.subscription_id)
            provider_details = ProviderSubscriptionDetails(
                status=provider_sub.status,
                current_period_start=provider_sub.period_start,
                current_period_end=provider_sub.period_end,
                cancel_at_period_end=provider_sub.cancel_at_period_end,
                cancel_at=from_timestamp(provider_sub.cancel_at),
                trial_end=from_timestamp(provider_sub.trial_end),
            )
        except (ProviderError, ConfigurationError) as e:
            logger.warning(
                f"Could not load provider details for {subscription.subscription_id}: {e.detail}"
            )

        now = utcnow()
        active = is_entitled(subscription, now)
        record = SubscriptionRecord.model_validate(subscription)
        return SubscriptionDetails(
            **record.model_dump(),
            is_active=active,
            will_renew=active and not subscription.cancel_at_period_end,
            days_remaining=days_remaining(subscription, now),
            provider_details=provider_details,
        )

    def list_for_user(self, user_id: int) -> List[UserSubscription]:
        now = utcnow()
        items = []
        for subscription in self.repo.list_by_user(user_id):
            record = SubscriptionRecord.model_validate(subscription)
            website = subscription.website
            items.append(UserSubscription(
                **record.model_dump(),
                is_active=is_entitled(subscription, now),
                days_remaining=days_remaining(subscription, now),
                website_name=website.name if website else None,
                website_slug=website.slug if website else None,
            ))
        return items

    def delete_for_website(self, website_id: int) -> int:
        """Remove the website's subscriptions. Flushes only; the caller commits."""
        deleted = self.repo.delete_by_website(website_id)
        if deleted:
            logger.info(f"Deleted {deleted} subscription(s) of website {website_id}")
        return deleted

    def create_checkout(
        self,
        website: Website,
        user_id: int,
        price_id: str,
        email: str,
        plan_tier: str = "basic",
    ) -> Dict[str, Optional[str]]:
        if not EMAIL_RE.match(email or ""):
            raise ValidationFailed("Invalid email")
        tier = (plan_tier or "basic").strip().lower()
        if tier not in PLAN_TIERS:
            raise ValidationFailed(f"Invalid plan tier. Expected one of: {', '.join(PLAN_TIERS)}")
        if website.user_id != user_id:
            raise PermissionDenied("You don't have permission to subscribe this website")

        current = self.query(user_id, website.id)
        if current.entitled:
            raise Conflict(
                "Website already has an active subscription",
                extra={"subscriptionId": current.subscription.subscription_id},
            )

        frontend = settings.frontend_url.rstrip("/")
        metadata = {
            "websiteId": str(website.id),
            "userId": str(user_id),
            "planTier": tier,
        }
        session_id, url = self.billing.create_checkout_session(
            price_id=price_id,
            email=email,
            metadata=metadata,
            success_url=f"{frontend}/dashboard?checkout=success&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{frontend}/dashboard?checkout=canceled&websiteId={website.id}",
        )
        logger.info(f"Checkout session {session_id} created for website {website.id}")
        return {"session_id": session_id, "url": url}
