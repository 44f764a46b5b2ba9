"""Entitlement gate for the paid website features.

Publishing and custom domains require an entitling subscription from the
ledger. Moving a website back to a free state (unpublish) never does.
"""
import logging
from typing import Optional

from app.core.config import settings
from app.core.errors import Conflict, DomainVerificationFailed, SubscriptionRequired, ValidationFailed
from app.models.subscription import Subscription
from app.models.website import Website
from app.repositories.website_repository import WebsiteRepository
from app.schemas.website import CustomDomainResult, DnsRecord, DomainVerificationResult, PublishResult
from app.services.dns_resolver import DnsResolver
from app.services.subscription_service import SubscriptionService, is_entitled
from app.services.website_service import WebsiteService, invalidate_public_cache, public_url
from app.utils.dates import utcnow
from app.utils.domains import is_valid_domain, normalize_domain
from app.utils.slugs import validate_slug

logger = logging.getLogger(__name__)


def can_access_feature(subscription: Optional[Subscription], feature: str) -> bool:
    if not is_entitled(subscription):
        return False
    return feature in settings.get_plan_features(subscription.plan_tier)


class EntitlementService:
    def __init__(self, websites: WebsiteService, ledger: SubscriptionService, dns: DnsResolver):
        self.websites = websites
        self.ledger = ledger
        self.dns = dns

    @property
    def repo(self) -> WebsiteRepository:
        return self.websites.websites

    def _require_entitlement(self, website: Website, action: str) -> Subscription:
        entitlement = self.ledger.query(website.user_id, website.id)
        if not entitlement.entitled:
            logger.info(f"Website {website.id}: {action} refused, no entitling subscription")
            raise SubscriptionRequired(f"Active subscription required to {action}")
        return entitlement.subscription

    def _validated_domain(self, domain: str) -> str:
        value = normalize_domain(domain)
        if not is_valid_domain(value):
            raise ValidationFailed("Invalid domain format")
        platform = settings.PLATFORM_DOMAIN.lower()
        if value == platform or value.endswith(f".{platform}"):
            raise ValidationFailed("Subdomains of the platform domain cannot be used as custom domains")
        return value

    def publish(self, website_id: int, user_id: int, desired: bool, slug: Optional[str] = None) -> PublishResult:
        website = self.websites.get_owned(website_id, user_id)
        if desired:
            self._require_entitlement(website, "publish websites")

        old_slug = website.slug
        if slug is not None:
            new_slug = slug.strip().lower()
            if new_slug != website.slug:
                if not validate_slug(new_slug):
                    raise ValidationFailed(
                        "Invalid slug format. Use 3-100 lowercase letters, numbers and single hyphens."
                    )
                if self.repo.slug_taken(new_slug, exclude_id=website.id):
                    raise Conflict("Slug already in use")
                website.slug = new_slug

        website.is_published = desired
        website.published_at = utcnow() if desired else None
        website = self.repo.update(website)
        invalidate_public_cache(slugs=[old_slug, website.slug], domains=[website.custom_domain])

        logger.info(f"Website {website.id} {'published' if desired else 'unpublished'} as {website.slug}")
        return PublishResult(
            website_id=website.id,
            slug=website.slug,
            is_published=website.is_published,
            published_at=website.published_at,
            public_url=public_url(website) if website.is_published else None,
        )

    def assign_custom_domain(self, website_id: int, user_id: int, domain: str) -> CustomDomainResult:
        value = self._validated_domain(domain)
        website = self.websites.get_owned(website_id, user_id)
        self._require_entitlement(website, "use custom domains")

        if self.repo.domain_taken(value, exclude_id=website.id):
            raise Conflict("Domain already in use by another website")

        old_domain = website.custom_domain
        website.custom_domain = value
        website.is_custom_domain_verified = False
        website.domain_verified_at = None
        website = self.repo.update(website)
        invalidate_public_cache(domains=[old_domain, value])

        logger.info(f"Website {website.id} custom domain set to {value}, pending verification")
        return CustomDomainResult(
            website_id=website.id,
            custom_domain=value,
            is_custom_domain_verified=False,
            dns_records=DnsRecord(name=value, value=self.cname_target(website)),
        )

    def cname_target(self, website: Website) -> str:
        return f"{website.slug}.{settings.PLATFORM_DOMAIN}"

    def verify_custom_domain(self, website_id: int, user_id: int, domain: str) -> DomainVerificationResult:
        value = self._validated_domain(domain)
        website = self.websites.get_owned(website_id, user_id)
        self._require_entitlement(website, "verify custom domains")

        if not website.custom_domain or website.custom_domain.lower() != value:
            raise ValidationFailed("Domain does not match the website's custom domain")

        target = self.cname_target(website)
        if not self.dns.points_to(value, target):
            logger.info(f"Domain {value} does not point to {target} yet")
            raise DomainVerificationFailed(extra={
                "instructions": {
                    "type": "CNAME",
                    "name": value,
                    "value": target,
                    "ttl": "3600",
                }
            })

        website.is_custom_domain_verified = True
        website.domain_verified_at = utcnow()
        website = self.repo.update(website)
        invalidate_public_cache(domains=[value])

        logger.info(f"Domain {value} verified for website {website.id}")
        return DomainVerificationResult(
            domain=value,
            is_verified=True,
            verified_at=website.domain_verified_at,
        )
