# Import all models so metadata.create_all can see them
from app.models.user import User
from app.models.template import Template
from app.models.website import Website
from app.models.subscription import Subscription

__all__ = ["User", "Template", "Website", "Subscription"]
