from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import Base

SUBSCRIPTION_STATUSES = ("active", "canceled", "incomplete", "past_due", "unpaid", "trialing")
PLAN_TIERS = ("basic", "pro", "enterprise")


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    # Stripe subscription id (sub_...), natural key for webhook upserts
    subscription_id = Column(String(255), nullable=False, unique=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    website_id = Column(Integer, ForeignKey("websites.id"), nullable=False, index=True)
    email = Column(String(255), nullable=True)
    product_id = Column(String(255), nullable=True)
    status = Column(String(32), nullable=False, default="incomplete", index=True)
    plan_tier = Column(String(32), nullable=False, default="basic")
    start_date = Column(DateTime(timezone=True), nullable=True)
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True, index=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    trial_end = Column(DateTime(timezone=True), nullable=True)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    # Stripe event.created of the newest event applied to this row
    last_event_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="subscriptions")
    website = relationship("Website", back_populates="subscriptions")

    __table_args__ = (
        Index("idx_subscription_user_website", "user_id", "website_id"),
        Index("idx_subscription_website_status", "website_id", "status"),
        Index("idx_subscription_status_period_end", "status", "current_period_end"),
    )
