from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, JSON
from sqlalchemy.sql import func
from app.db.base import Base


class Template(Base):
    __tablename__ = "templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=True, index=True)
    html = Column(Text, nullable=False)
    js = Column(Text, nullable=False, default="")
    components = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, default=True, index=True)
    usage_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


# value -> label shown in the template picker
TEMPLATE_CATEGORIES = {
    "business": "Business",
    "portfolio": "Portfolio",
    "blog": "Blog",
    "ecommerce": "E-commerce",
    "landing": "Landing Page",
    "other": "Other",
}
