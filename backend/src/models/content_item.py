"""
ContentItem model for the general content catalog.

Tracks usage/download/view counters; trending fields are recomputed
before every INSERT and UPDATE with the content-item weight vector.
"""

import uuid

from sqlalchemy import Column, String, Text, Integer, Float, Boolean, JSON, event

from src.db_base import Base
from src.models.base import TimestampMixin
from src.services.trending_scorer import CONTENT_ITEM_WEIGHTS, apply_trending


class ContentItem(Base, TimestampMixin):
    """Content catalog entry (reel, post, carousel, story)."""

    __tablename__ = "content_items"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    caption = Column(Text, nullable=True)
    content_type = Column(String(20), nullable=True)
    categories = Column(JSON, nullable=True)
    tags = Column(JSON, nullable=True)
    external_template_id = Column(String(255), nullable=True)

    usage_count = Column(Integer, nullable=False, default=0)
    view_count = Column(Integer, nullable=False, default=0)
    download_count = Column(Integer, nullable=False, default=0)
    trending_score = Column(Float, nullable=False, default=0.0, index=True)
    is_trending = Column(Boolean, nullable=False, default=False)

    created_by_id = Column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<ContentItem(id={self.id}, title={self.title!r})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "caption": self.caption,
            "content_type": self.content_type,
            "categories": list(self.categories or []),
            "tags": list(self.tags or []),
            "usage_count": self.usage_count or 0,
            "view_count": self.view_count or 0,
            "download_count": self.download_count or 0,
            "trending_score": self.trending_score or 0.0,
            "is_trending": bool(self.is_trending),
        }


@event.listens_for(ContentItem, "before_insert")
@event.listens_for(ContentItem, "before_update")
def _refresh_content_trending(mapper, connection, target):
    apply_trending(target, CONTENT_ITEM_WEIGHTS)
