from fastapi import APIRouter, Depends, Query, status

from app.api.v1.dependencies import (
    ensure_same_user,
    get_current_user,
    get_entitlement_service,
    get_website_service,
)
from app.models.user import User
from app.schemas.website import (
    CustomDomainRequest,
    CustomDomainResponse,
    DeleteWebsiteResponse,
    DomainVerificationResponse,
    PublicWebsiteResponse,
    PublishRequest,
    PublishResponse,
    WebsiteCreate,
    WebsiteCreated,
    WebsiteCreateResponse,
    WebsiteListResponse,
    WebsiteResponse,
    WebsiteUpdate,
    WebsiteUpdateResponse,
)
from app.services.entitlement_service import EntitlementService
from app.services.website_service import WebsiteService, to_detail

router = APIRouter(tags=["websites"])


@router.post("", response_model=WebsiteCreateResponse, status_code=status.HTTP_201_CREATED)
def create_website(
    body: WebsiteCreate,
    current_user: User = Depends(get_current_user),
    websites: WebsiteService = Depends(get_website_service),
):
    ensure_same_user(current_user, body.user_id)
    website = websites.create(current_user.id, body.template_id, body.custom_name)
    return WebsiteCreateResponse(
        data=WebsiteCreated(website_id=website.id, slug=website.slug, name=website.name)
    )


# Public lookups used by the site renderer; no authentication.

@router.get("/site/{slug}", response_model=PublicWebsiteResponse)
def get_site_by_slug(slug: str, websites: WebsiteService = Depends(get_website_service)):
    return PublicWebsiteResponse(data=websites.get_public_by_slug(slug))


@router.get("/domain/{domain}", response_model=PublicWebsiteResponse)
def get_site_by_domain(domain: str, websites: WebsiteService = Depends(get_website_service)):
    return PublicWebsiteResponse(data=websites.get_public_by_domain(domain))


@router.get("/user/{user_id}", response_model=WebsiteListResponse)
def list_user_websites(
    user_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    websites: WebsiteService = Depends(get_website_service),
):
    ensure_same_user(current_user, user_id)
    items, pagination = websites.list_for_user(user_id, page=page, limit=limit)
    return WebsiteListResponse(data=items, pagination=pagination)


@router.get("/verify-domain/{domain}", response_model=DomainVerificationResponse)
def verify_domain(
    domain: str,
    website_id: int = Query(..., alias="siteid"),
    current_user: User = Depends(get_current_user),
    gate: EntitlementService = Depends(get_entitlement_service),
):
    result = gate.verify_custom_domain(website_id, current_user.id, domain)
    return DomainVerificationResponse(data=result)


@router.get("/{website_id}", response_model=WebsiteResponse)
def get_website(
    website_id: int,
    current_user: User = Depends(get_current_user),
    websites: WebsiteService = Depends(get_website_service),
):
    return WebsiteResponse(data=websites.get_with_entitlement(website_id, current_user.id))


@router.put("/{website_id}", response_model=WebsiteUpdateResponse)
def update_website(
    website_id: int,
    body: WebsiteUpdate,
    current_user: User = Depends(get_current_user),
    websites: WebsiteService = Depends(get_website_service),
):
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    website = websites.update(website_id, current_user.id, changes)
    return WebsiteUpdateResponse(data=to_detail(website))


@router.delete("/{website_id}", response_model=DeleteWebsiteResponse)
def delete_website(
    website_id: int,
    current_user: User = Depends(get_current_user),
    websites: WebsiteService = Depends(get_website_service),
):
    deleted = websites.delete(website_id, current_user.id)
    return DeleteWebsiteResponse(website_id=website_id, deleted_subscriptions=deleted)


@router.put("/{website_id}/publish", response_model=PublishResponse)
def publish_website(
    website_id: int,
    body: PublishRequest,
    current_user: User = Depends(get_current_user),
    gate: EntitlementService = Depends(get_entitlement_service),
):
    result = gate.publish(website_id, current_user.id, body.is_published, body.slug)
    message = "Website published successfully" if result.is_published else "Website unpublished successfully"
    return PublishResponse(message=message, data=result)


@router.post("/{website_id}/custom-domain", response_model=CustomDomainResponse)
def set_custom_domain(
    website_id: int,
    body: CustomDomainRequest,
    current_user: User = Depends(get_current_user),
    gate: EntitlementService = Depends(get_entitlement_service),
):
    return CustomDomainResponse(data=gate.assign_custom_domain(website_id, current_user.id, body.domain))
