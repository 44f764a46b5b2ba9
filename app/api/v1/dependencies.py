from typing import Optional
import logging
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.core.errors import PermissionDenied
from app.core.security import decode_access_token
from app.db.session import get_db
from app.repositories.subscription_repository import SubscriptionRepository
from app.repositories.template_repository import TemplateRepository
from app.repositories.user_repository import UserRepository
from app.repositories.website_repository import WebsiteRepository
from app.services.billing_client import BillingClient, get_stripe_billing_client
from app.services.dns_resolver import DnsResolver
from app.services.dns_resolver import get_dns_resolver as build_dns_resolver
from app.services.entitlement_service import EntitlementService
from app.services.subscription_service import SubscriptionService
from app.services.website_service import WebsiteService
from app.models.user import User

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise _unauthorized("Authentication token not provided")
    token = (credentials.credentials or "").strip()
    if token.startswith("Bearer "):
        token = token[7:].strip()
    if not token:
        raise _unauthorized("Invalid or expired token")

    payload = decode_access_token(token)
    if payload is None:
        raise _unauthorized("Invalid or expired token")

    user_id_raw = payload.get("sub")
    try:
        user_id = int(user_id_raw)
    except (ValueError, TypeError):
        logger.warning(f"Token carries an invalid subject: {user_id_raw!r}")
        raise _unauthorized("Invalid token")

    user = UserRepository(db).get_by_id(user_id)
    if user is None:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
    return user


def ensure_same_user(current_user: User, user_id: Optional[int]) -> None:
    """Routes that take a userId only act on the caller's own data."""
    if user_id is not None and user_id != current_user.id:
        raise PermissionDenied()


def get_billing_client() -> BillingClient:
    return get_stripe_billing_client()


def get_dns_resolver() -> DnsResolver:
    return build_dns_resolver()


def get_subscription_service(
    db: Session = Depends(get_db),
    billing: BillingClient = Depends(get_billing_client),
) -> SubscriptionService:
    return SubscriptionService(SubscriptionRepository(db), billing)


def get_website_service(
    db: Session = Depends(get_db),
    ledger: SubscriptionService = Depends(get_subscription_service),
) -> WebsiteService:
    return WebsiteService(WebsiteRepository(db), TemplateRepository(db), ledger)


def get_entitlement_service(
    websites: WebsiteService = Depends(get_website_service),
    ledger: SubscriptionService = Depends(get_subscription_service),
    dns: DnsResolver = Depends(get_dns_resolver),
) -> EntitlementService:
    return EntitlementService(websites, ledger, dns)
