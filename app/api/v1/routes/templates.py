from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.errors import NotFound
from app.db.session import get_db
from app.models.template import TEMPLATE_CATEGORIES
from app.repositories.template_repository import TemplateRepository
from app.schemas.template import (
    TemplateCategory,
    TemplateCategoryListResponse,
    TemplateDetail,
    TemplateDetailResponse,
    TemplateListResponse,
    TemplateSummary,
)

router = APIRouter(tags=["templates"])


@router.get("", response_model=TemplateListResponse)
def list_templates(
    category: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """Active templates, most used first."""
    templates = TemplateRepository(db).list_active(category)
    return TemplateListResponse(data=[TemplateSummary.model_validate(t) for t in templates])


@router.get("/categories", response_model=TemplateCategoryListResponse)
def list_categories():
    return TemplateCategoryListResponse(
        data=[TemplateCategory(value=value, label=label) for value, label in TEMPLATE_CATEGORIES.items()]
    )


@router.get("/popular", response_model=TemplateListResponse)
def popular_templates(
    limit: int = Query(6, ge=1, le=50),
    db: Session = Depends(get_db),
):
    templates = TemplateRepository(db).list_popular(limit)
    return TemplateListResponse(data=[TemplateSummary.model_validate(t) for t in templates])


@router.get("/{template_id}", response_model=TemplateDetailResponse)
def get_template(template_id: int, db: Session = Depends(get_db)):
    """Full template for previewing before a website is created from it."""
    template = TemplateRepository(db).get_active(template_id)
    if not template:
        raise NotFound("Template not found")
    return TemplateDetailResponse(data=TemplateDetail.model_validate(template))
