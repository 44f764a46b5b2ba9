from datetime import datetime
from typing import Any, Dict, List, Optional

from app.schemas.base import CamelModel


class TemplateSummary(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    usage_count: int = 0


class TemplateDetail(TemplateSummary):
    html: str
    js: str = ""
    components: Dict[str, Any] = {}
    created_at: Optional[datetime] = None


class TemplateCategory(CamelModel):
    value: str
    label: str


class TemplateListResponse(CamelModel):
    success: bool = True
    data: List[TemplateSummary]


class TemplateDetailResponse(CamelModel):
    success: bool = True
    data: TemplateDetail


class TemplateCategoryListResponse(CamelModel):
    success: bool = True
    data: List[TemplateCategory]
