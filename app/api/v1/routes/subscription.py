from fastapi import APIRouter, Depends, status

from app.api.v1.dependencies import (
    ensure_same_user,
    get_current_user,
    get_subscription_service,
    get_website_service,
)
from app.models.user import User
from app.schemas.subscription import (
    BulkEntitlementEntry,
    BulkEntitlementRequest,
    BulkEntitlementResponse,
    CancelRequest,
    CancelResponse,
    CheckoutRequest,
    CheckoutResponse,
    EntitlementResponse,
    FeatureAccessResponse,
    ReactivateRequest,
    ReactivateResponse,
    SubscriptionDetailsResponse,
    SubscriptionRecord,
    UserSubscriptionsResponse,
)
from app.services.entitlement_service import can_access_feature
from app.services.subscription_service import SubscriptionService
from app.services.website_service import WebsiteService

router = APIRouter(tags=["subscriptions"])


@router.post("/subscribe", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
def subscribe(
    body: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    ledger: SubscriptionService = Depends(get_subscription_service),
    websites: WebsiteService = Depends(get_website_service),
):
    """Starts a Stripe Checkout session for one website."""
    ensure_same_user(current_user, body.user_id)
    website = websites.get_owned(body.website_id, current_user.id)
    session = ledger.create_checkout(
        website,
        user_id=current_user.id,
        price_id=body.price_id,
        email=body.email,
        plan_tier=body.plan_tier,
    )
    return CheckoutResponse(session_id=session["session_id"], url=session["url"])


@router.get("/check/{user_id}/{website_id}", response_model=EntitlementResponse)
def check_subscription(
    user_id: int,
    website_id: int,
    current_user: User = Depends(get_current_user),
    ledger: SubscriptionService = Depends(get_subscription_service),
):
    ensure_same_user(current_user, user_id)
    entitlement = ledger.query(user_id, website_id)
    return EntitlementResponse(
        has_active_subscription=entitlement.entitled,
        data=SubscriptionRecord.model_validate(entitlement.subscription) if entitlement.subscription else None,
    )


@router.post("/check-bulk", response_model=BulkEntitlementResponse)
def check_subscriptions_bulk(
    body: BulkEntitlementRequest,
    current_user: User = Depends(get_current_user),
    ledger: SubscriptionService = Depends(get_subscription_service),
):
    ensure_same_user(current_user, body.user_id)
    results = ledger.query_bulk(body.user_id, body.website_ids)
    return BulkEntitlementResponse(
        data={
            str(website_id): BulkEntitlementEntry(
                has_active_subscription=entitlement.entitled,
                data=(
                    SubscriptionRecord.model_validate(entitlement.subscription)
                    if entitlement.subscription else None
                ),
            )
            for website_id, entitlement in results.items()
        }
    )


@router.post("/cancel", response_model=CancelResponse)
def cancel_subscription(
    body: CancelRequest,
    current_user: User = Depends(get_current_user),
    ledger: SubscriptionService = Depends(get_subscription_service),
):
    ensure_same_user(current_user, body.user_id)
    result = ledger.cancel(
        body.subscription_id,
        user_id=current_user.id,
        immediate=body.cancel_immediately,
    )
    if result.canceled_immediately:
        message = "Subscription canceled immediately"
    else:
        message = "Subscription will be canceled at the end of the billing period"
    return CancelResponse(message=message, data=result)


@router.post("/reactivate", response_model=ReactivateResponse)
def reactivate_subscription(
    body: ReactivateRequest,
    current_user: User = Depends(get_current_user),
    ledger: SubscriptionService = Depends(get_subscription_service),
):
    ensure_same_user(current_user, body.user_id)
    result = ledger.reactivate(body.subscription_id, user_id=current_user.id)
    return ReactivateResponse(message="Subscription reactivated successfully", data=result)


@router.get("/details/{user_id}/{website_id}", response_model=SubscriptionDetailsResponse)
def subscription_details(
    user_id: int,
    website_id: int,
    current_user: User = Depends(get_current_user),
    ledger: SubscriptionService = Depends(get_subscription_service),
):
    ensure_same_user(current_user, user_id)
    return SubscriptionDetailsResponse(data=ledger.details(user_id, website_id))


@router.get("/user/{user_id}", response_model=UserSubscriptionsResponse)
def user_subscriptions(
    user_id: int,
    current_user: User = Depends(get_current_user),
    ledger: SubscriptionService = Depends(get_subscription_service),
):
    ensure_same_user(current_user, user_id)
    items = ledger.list_for_user(user_id)
    return UserSubscriptionsResponse(data=items, count=len(items))


@router.get("/features/{user_id}/{website_id}/{feature}", response_model=FeatureAccessResponse)
def feature_access(
    user_id: int,
    website_id: int,
    feature: str,
    current_user: User = Depends(get_current_user),
    ledger: SubscriptionService = Depends(get_subscription_service),
):
    ensure_same_user(current_user, user_id)
    entitlement = ledger.query(user_id, website_id)
    subscription = entitlement.subscription
    return FeatureAccessResponse(
        feature=feature,
        allowed=can_access_feature(subscription, feature),
        plan_tier=subscription.plan_tier if subscription else None,
    )
