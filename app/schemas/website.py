from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from app.schemas.base import CamelModel
from app.schemas.subscription import SubscriptionRecord


class WebsiteCreate(CamelModel):
    user_id: int
    template_id: int
    custom_name: Optional[str] = Field(None, min_length=3, max_length=100)


class WebsiteCreated(CamelModel):
    website_id: int
    slug: str
    name: str


class WebsiteCreateResponse(CamelModel):
    success: bool = True
    message: str = "Website created successfully"
    data: WebsiteCreated


class WebsiteUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=3, max_length=100)
    html: Optional[str] = None
    css: Optional[str] = None
    js: Optional[str] = None
    components: Optional[Dict[str, Any]] = None


class WebsiteDetail(CamelModel):
    id: int
    user_id: int
    template_id: Optional[int] = None
    name: str
    slug: str
    html: str
    css: str
    js: str
    components: Dict[str, Any] = Field(default_factory=dict)
    custom_domain: Optional[str] = None
    is_custom_domain_verified: bool
    domain_verified_at: Optional[datetime] = None
    is_published: bool
    published_at: Optional[datetime] = None
    view_count: int = 0
    public_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WebsiteWithEntitlement(WebsiteDetail):
    has_active_subscription: bool = False
    subscription: Optional[SubscriptionRecord] = None


class WebsiteResponse(CamelModel):
    success: bool = True
    data: WebsiteWithEntitlement


class WebsiteUpdateResponse(CamelModel):
    success: bool = True
    message: str = "Website updated successfully"
    data: WebsiteDetail


class WebsiteSummary(CamelModel):
    id: int
    name: str
    slug: str
    custom_domain: Optional[str] = None
    is_published: bool
    is_custom_domain_verified: bool
    view_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    has_active_subscription: bool = False
    subscription: Optional[SubscriptionRecord] = None


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_items: int


class WebsiteListResponse(CamelModel):
    success: bool = True
    data: List[WebsiteSummary]
    pagination: Pagination


class PublishRequest(CamelModel):
    is_published: bool
    slug: Optional[str] = None


class PublishResult(CamelModel):
    website_id: int
    slug: str
    is_published: bool
    published_at: Optional[datetime] = None
    public_url: Optional[str] = None


class PublishResponse(CamelModel):
    success: bool = True
    message: str
    data: PublishResult


class CustomDomainRequest(CamelModel):
    domain: str = Field(..., min_length=1, max_length=253)


class DnsRecord(CamelModel):
    type: str = "CNAME"
    name: str
    value: str
    ttl: str = "3600"


class CustomDomainResult(CamelModel):
    website_id: int
    custom_domain: str
    is_custom_domain_verified: bool
    dns_records: DnsRecord


class CustomDomainResponse(CamelModel):
    success: bool = True
    message: str = "Custom domain set successfully. Please verify your domain."
    data: CustomDomainResult


class DomainVerificationResult(CamelModel):
    domain: str
    is_verified: bool
    verified_at: Optional[datetime] = None


class DomainVerificationResponse(CamelModel):
    success: bool = True
    message: str = "Domain verified successfully"
    data: DomainVerificationResult


class PublicWebsite(CamelModel):
    name: str
    html: str
    css: str = ""
    js: str = ""
    slug: str
    custom_domain: Optional[str] = None
    published_at: Optional[datetime] = None
    has_active_subscription: Optional[bool] = None


class PublicWebsiteResponse(CamelModel):
    success: bool = True
    data: PublicWebsite


class DeleteWebsiteResponse(CamelModel):
    success: bool = True
    message: str = "Website and associated subscriptions deleted successfully"
    website_id: int
    deleted_subscriptions: int
