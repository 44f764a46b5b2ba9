import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.models.subscription import Subscription
from app.models.website import Website

logger = logging.getLogger(__name__)


class SubscriptionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_subscription_id(self, subscription_id: str) -> Optional[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.subscription_id == subscription_id)
            .first()
        )

    def upsert(self, subscription_id: str, **fields: Any) -> Subscription:
        """Create or update the row keyed by ``subscription_id``.

        Only the keys present in ``fields`` are written on update, so callers
        decide which columns an event is allowed to touch.
        """
        try:
            subscription = self.get_by_subscription_id(subscription_id)
            if not subscription:
                subscription = Subscription(subscription_id=subscription_id, **fields)
                self.db.add(subscription)
            else:
                for key, value in fields.items():
                    setattr(subscription, key, value)
            self.db.commit()
            self.db.refresh(subscription)
            return subscription
        except Exception as e:
            self.db.rollback()
            logger.error(f"Subscription upsert failed for {subscription_id}: {str(e)}")
            raise

    def update(self, subscription: Subscription, fields: Dict[str, Any]) -> Subscription:
        try:
            for key, value in fields.items():
                setattr(subscription, key, value)
            self.db.commit()
            self.db.refresh(subscription)
            return subscription
        except Exception as e:
            self.db.rollback()
            logger.error(f"Subscription update failed for {subscription.subscription_id}: {str(e)}")
            raise

    def list_active_for_websites(self, user_id: int, website_ids: Iterable[int]) -> List[Subscription]:
        """Rows with status 'active' for the given websites, newest period end first.

        Period expiry is not filtered here; callers apply ``is_entitled``.
        """
        ids = list(website_ids)
        if not ids:
            return []
        return (
            self.db.query(Subscription)
            .filter(
                Subscription.user_id == user_id,
                Subscription.website_id.in_(ids),
                Subscription.status == "active",
            )
            .order_by(Subscription.current_period_end.desc())
            .all()
        )

    def get_latest_for_website(self, user_id: int, website_id: int) -> Optional[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.user_id == user_id, Subscription.website_id == website_id)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .first()
        )

    def list_by_user(self, user_id: int) -> List[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.user_id == user_id)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .all()
        )

    def delete_by_website(self, website_id: int) -> int:
        """Delete every subscription of a website. Flushes only; the caller commits."""
        return (
            self.db.query(Subscription)
            .filter(Subscription.website_id == website_id)
            .delete(synchronize_session="fetch")
        )

    def get_website_owner(self, website_id: int) -> Optional[int]:
        """user_id owning the website, or None when the website does not exist."""
        row = self.db.query(Website.user_id).filter(Website.id == website_id).first()
        return row[0] if row else None
