import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from app.core.cache import cache_delete, cache_get, cache_set
from app.core.config import settings
from app.core.errors import NotFound, PermissionDenied, SubscriptionRequired, ValidationFailed
from app.models.website import Website
from app.repositories.template_repository import TemplateRepository
from app.repositories.website_repository import WebsiteRepository
from app.schemas.subscription import SubscriptionRecord
from app.schemas.website import Pagination, PublicWebsite, WebsiteDetail, WebsiteSummary, WebsiteWithEntitlement
from app.services.subscription_service import SubscriptionService
from app.utils.dates import utcnow
from app.utils.domains import normalize_domain
from app.utils.slugs import generate_unique_slug

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "html", "css", "js", "components")


def slug_cache_key(slug: str) -> str:
    return f"site:slug:{slug}"


def domain_cache_key(domain: str) -> str:
    return f"site:domain:{domain}"


def invalidate_public_cache(slugs=(), domains=()) -> None:
    keys = [slug_cache_key(s) for s in slugs if s]
    keys += [domain_cache_key(d.lower()) for d in domains if d]
    cache_delete(*keys)


def public_url(website: Website) -> str:
    if website.custom_domain and website.is_custom_domain_verified:
        return f"https://{website.custom_domain}"
    return f"https://{website.slug}.{settings.PLATFORM_DOMAIN}"


def to_detail(website: Website) -> WebsiteDetail:
    detail = WebsiteDetail.model_validate(website)
    detail.public_url = public_url(website)
    return detail


class WebsiteService:
    def __init__(
        self,
        websites: WebsiteRepository,
        templates: TemplateRepository,
        ledger: SubscriptionService,
    ):
        self.websites = websites
        self.templates = templates
        self.ledger = ledger

    def get_owned(self, website_id: int, user_id: int) -> Website:
        website = self.websites.get_by_id(website_id)
        if not website:
            raise NotFound("Website not found")
        if website.user_id != user_id:
            raise PermissionDenied("You don't have permission to access this website")
        return website

    def create(self, user_id: int, template_id: int, custom_name: Optional[str] = None) -> Website:
        template = self.templates.get_by_id(template_id)
        if not template or not template.is_active:
            raise NotFound("Template not found")

        name = (custom_name or template.name).strip()
        slug = generate_unique_slug(name, self.websites.slug_taken)
        website = Website(
            user_id=user_id,
            template_id=template.id,
            name=name,
            slug=slug,
            html=template.html,
            css="",
            js=template.js or "",
            components=dict(template.components or {}),
            is_published=False,
            is_custom_domain_verified=False,
            view_count=0,
        )
        self.templates.adjust_usage(template.id, 1)
        website = self.websites.create(website)
        logger.info(f"Website {website.id} ({slug}) created for user {user_id} from template {template.id}")
        return website

    def get_with_entitlement(self, website_id: int, user_id: int) -> WebsiteWithEntitlement:
        website = self.get_owned(website_id, user_id)
        entitlement = self.ledger.query(user_id, website.id)
        return WebsiteWithEntitlement(
            **to_detail(website).model_dump(),
            has_active_subscription=entitlement.entitled,
            subscription=(
                SubscriptionRecord.model_validate(entitlement.subscription)
                if entitlement.subscription else None
            ),
        )

    def list_for_user(self, user_id: int, page: int, limit: int) -> Tuple[List[WebsiteSummary], Pagination]:
        items, total = self.websites.list_by_user(user_id, limit=limit, offset=(page - 1) * limit)
        entitlements = self.ledger.query_bulk(user_id, [w.id for w in items])

        summaries = []
        for website in items:
            entitlement = entitlements[website.id]
            summary = WebsiteSummary.model_validate(website)
            summary.has_active_subscription = entitlement.entitled
            if entitlement.subscription:
                summary.subscription = SubscriptionRecord.model_validate(entitlement.subscription)
            summaries.append(summary)

        pagination = Pagination(
            current_page=page,
            total_pages=math.ceil(total / limit) if total else 0,
            total_items=total,
        )
        return summaries, pagination

    def update(self, website_id: int, user_id: int, changes: Dict[str, Any]) -> Website:
        website = self.get_owned(website_id, user_id)
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationFailed(f"Fields cannot be updated here: {', '.join(sorted(unknown))}")
        if not changes:
            raise ValidationFailed("No fields to update")

        for key, value in changes.items():
            if key == "name":
                value = value.strip()
            setattr(website, key, value)
        website = self.websites.update(website)
        invalidate_public_cache(slugs=[website.slug], domains=[website.custom_domain])
        return website

    def delete(self, website_id: int, user_id: int) -> int:
        """Delete the website and its subscriptions in one transaction."""
        website = self.get_owned(website_id, user_id)
        slug, domain, template_id = website.slug, website.custom_domain, website.template_id
        db = self.websites.db
        try:
            deleted = self.ledger.delete_for_website(website.id)
            if template_id:
                self.templates.adjust_usage(template_id, -1)
            self.websites.delete(website)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to delete website {website_id}: {str(e)}")
            raise

        invalidate_public_cache(slugs=[slug], domains=[domain])
        logger.info(f"Website {website_id} deleted with {deleted} subscription(s)")
        return deleted

    # --- public rendering ------------------------------------------------------------

    def _load_public(self, key: str, loader) -> Tuple[int, int, PublicWebsite]:
        cached = cache_get(key)
        if cached:
            return cached["id"], cached["user_id"], PublicWebsite(**cached["site"])

        website = loader()
        if not website:
            raise NotFound("Website not found or not published")
        site = PublicWebsite.model_validate(website)
        cache_set(key, {"id": website.id, "user_id": website.user_id, "site": site.model_dump(mode="json")})
        return website.id, website.user_id, site

    def get_public_by_slug(self, slug: str) -> PublicWebsite:
        slug = (slug or "").strip().lower()
        website_id, _, site = self._load_public(
            slug_cache_key(slug),
            lambda: self.websites.get_published_by_slug(slug),
        )
        self.websites.increment_views(website_id, utcnow())
        return site

    def get_public_by_domain(self, domain: str) -> PublicWebsite:
        """Custom domains only serve while the website's subscription entitles it."""
        domain = normalize_domain(domain)
        website_id, owner_id, site = self._load_public(
            domain_cache_key(domain),
            lambda: self.websites.get_published_by_domain(domain),
        )
        if not self.ledger.query(owner_id, website_id).entitled:
            raise SubscriptionRequired("This website's subscription is not active")
        self.websites.increment_views(website_id, utcnow())
        site.has_active_subscription = True
        return site
