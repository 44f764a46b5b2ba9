from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from app.schemas.base import CamelModel


class SubscriptionRecord(CamelModel):
    subscription_id: str
    user_id: int
    website_id: int
    email: Optional[str] = None
    product_id: Optional[str] = None
    status: str
    plan_tier: str
    start_date: Optional[datetime] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool
    canceled_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EntitlementResponse(CamelModel):
    """Entitlement predicate plus the entitling record, if any."""
    success: bool = True
    has_active_subscription: bool
    data: Optional[SubscriptionRecord] = None


class BulkEntitlementRequest(CamelModel):
    user_id: int
    website_ids: List[int] = Field(..., max_length=200)


class BulkEntitlementEntry(CamelModel):
    has_active_subscription: bool
    data: Optional[SubscriptionRecord] = None


class BulkEntitlementResponse(CamelModel):
    success: bool = True
    # Keys are website ids as strings; one entry per requested id
    data: Dict[str, BulkEntitlementEntry]


class CheckoutRequest(CamelModel):
    price_id: str = Field(..., min_length=1)
    email: str
    website_id: int
    user_id: int
    plan_tier: str = "basic"


class CheckoutResponse(CamelModel):
    success: bool = True
    session_id: str
    url: Optional[str] = None


class CancelRequest(CamelModel):
    subscription_id: str = Field(..., min_length=1)
    user_id: Optional[int] = None
    cancel_immediately: bool = False


class CancelResult(CamelModel):
    subscription_id: str
    canceled_immediately: bool
    status: str
    cancel_at_period_end: bool
    cancel_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    refundable: bool


class CancelResponse(CamelModel):
    success: bool = True
    message: str
    data: CancelResult


class ReactivateRequest(CamelModel):
    subscription_id: str = Field(..., min_length=1)
    user_id: Optional[int] = None


class ReactivateResult(CamelModel):
    subscription_id: str
    status: str
    cancel_at_period_end: bool
    current_period_end: Optional[datetime] = None


class ReactivateResponse(CamelModel):
    success: bool = True
    message: str
    data: ReactivateResult


class ProviderSubscriptionDetails(CamelModel):
    status: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool
    cancel_at: Optional[datetime] = None
    trial_end: Optional[datetime] = None


class SubscriptionDetails(SubscriptionRecord):
    is_active: bool
    will_renew: bool
    days_remaining: int
    provider_details: Optional[ProviderSubscriptionDetails] = None


class SubscriptionDetailsResponse(CamelModel):
    success: bool = True
    data: SubscriptionDetails


class UserSubscription(SubscriptionRecord):
    is_active: bool
    days_remaining: int
    website_name: Optional[str] = None
    website_slug: Optional[str] = None


class UserSubscriptionsResponse(CamelModel):
    success: bool = True
    data: List[UserSubscription]
    count: int


class FeatureAccessResponse(CamelModel):
    success: bool = True
    feature: str
    allowed: bool
    plan_tier: Optional[str] = None
