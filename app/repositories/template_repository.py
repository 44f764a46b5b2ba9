from typing import List, Optional

from sqlalchemy.orm import Session

from app.models.template import Template


class TemplateRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, template_id: int) -> Optional[Template]:
        return self.db.query(Template).filter(Template.id == template_id).first()

    def list_active(self, category: Optional[str] = None) -> List[Template]:
        q = self.db.query(Template).filter(Template.is_active.is_(True))
        if category:
            q = q.filter(Template.category == category)
        return q.order_by(Template.usage_count.desc(), Template.id).all()

    def get_active(self, template_id: int) -> Optional[Template]:
        return (
            self.db.query(Template)
            .filter(Template.id == template_id, Template.is_active.is_(True))
            .first()
        )

    def list_popular(self, limit: int) -> List[Template]:
        return (
            self.db.query(Template)
            .filter(Template.is_active.is_(True))
            .order_by(Template.usage_count.desc(), Template.created_at.desc(), Template.id.desc())
            .limit(limit)
            .all()
        )

    def adjust_usage(self, template_id: int, delta: int) -> None:
        """Flushes only; the caller commits."""
        self.db.query(Template).filter(Template.id == template_id).update(
            {Template.usage_count: Template.usage_count + delta},
            synchronize_session=False,
        )
