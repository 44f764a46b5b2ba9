from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.website import Website


class WebsiteRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, website_id: int) -> Optional[Website]:
        return self.db.query(Website).filter(Website.id == website_id).first()

    def slug_taken(self, slug: str, exclude_id: Optional[int] = None) -> bool:
        q = self.db.query(Website.id).filter(Website.slug == slug)
        if exclude_id is not None:
            q = q.filter(Website.id != exclude_id)
        return q.first() is not None

    def domain_taken(self, domain: str, exclude_id: Optional[int] = None) -> bool:
        q = self.db.query(Website.id).filter(func.lower(Website.custom_domain) == domain.lower())
        if exclude_id is not None:
            q = q.filter(Website.id != exclude_id)
        return q.first() is not None

    def list_by_user(self, user_id: int, limit: int, offset: int) -> Tuple[List[Website], int]:
        q = self.db.query(Website).filter(Website.user_id == user_id)
        total = q.count()
        items = (
            q.order_by(func.coalesce(Website.updated_at, Website.created_at).desc(), Website.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total

    def get_published_by_slug(self, slug: str) -> Optional[Website]:
        return (
            self.db.query(Website)
            .filter(Website.slug == slug, Website.is_published.is_(True))
            .order_by(Website.published_at.desc())
            .first()
        )

    def get_published_by_domain(self, domain: str) -> Optional[Website]:
        return (
            self.db.query(Website)
            .filter(
                func.lower(Website.custom_domain) == domain.lower(),
                Website.is_custom_domain_verified.is_(True),
                Website.is_published.is_(True),
            )
            .first()
        )

    def increment_views(self, website_id: int, viewed_at) -> None:
        self.db.query(Website).filter(Website.id == website_id).update(
            {
                Website.view_count: Website.view_count + 1,
                Website.last_viewed_at: viewed_at,
            },
            synchronize_session=False,
        )
        self.db.commit()

    def create(self, website: Website) -> Website:
        self.db.add(website)
        self.db.commit()
        self.db.refresh(website)
        return website

    def update(self, website: Website) -> Website:
        self.db.commit()
        self.db.refresh(website)
        return website

    def delete(self, website: Website) -> None:
        """Flushes only; the caller commits."""
        self.db.delete(website)
        self.db.flush()
