from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import Base


class Website(Base):
    __tablename__ = "websites"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    template_id = Column(Integer, ForeignKey("templates.id"), nullable=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(100), nullable=False, index=True)
    html = Column(Text, nullable=False)
    css = Column(Text, nullable=False, default="")
    js = Column(Text, nullable=False, default="")
    components = Column(JSON, nullable=False, default=dict)
    # Stored lower-cased; uniqueness across websites is enforced by the service
    custom_domain = Column(String(253), nullable=True, index=True)
    is_custom_domain_verified = Column(Boolean, nullable=False, default=False)
    domain_verified_at = Column(DateTime(timezone=True), nullable=True)
    is_published = Column(Boolean, nullable=False, default=False, index=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    view_count = Column(Integer, nullable=False, default=0)
    last_viewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="websites")
    template = relationship("Template")
    # No ORM cascade: subscriptions are removed explicitly before the website
    subscriptions = relationship("Subscription", back_populates="website", passive_deletes=True)

    __table_args__ = (
        Index("idx_website_user_slug", "user_id", "slug"),
        Index("idx_website_domain_verified", "custom_domain", "is_custom_domain_verified"),
    )
