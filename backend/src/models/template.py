"""
Template catalog models.

- Template: admin-curated design template with engagement counters
- TemplateHistory: per-user action log; "viewed" rows drive the monthly quota
- TemplateBookmark: user-owned bookmark rows

trending_score / is_trending are derived from the counters and the
template's age, recomputed before every INSERT and UPDATE.
"""

import enum
import uuid

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Float,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
    JSON,
    event,
)

from src.db_base import Base
from src.models.base import TimestampMixin, utcnow
from src.services.trending_scorer import TEMPLATE_WEIGHTS, apply_trending


class ContentType(str, enum.Enum):
    POST = "Post"
    CAROUSEL = "Carousel"
    REEL = "Reel"
    STORY = "Story"


class HistoryAction(str, enum.Enum):
    """Actions recorded in a user's template history."""
    VIEWED = "viewed"
    EDITED = "edited"
    BOOKMARKED = "bookmarked"
    DOWNLOADED = "downloaded"


class Template(Base, TimestampMixin):
    """Curated template published to the marketplace catalog."""

    __tablename__ = "templates"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    instruction = Column(Text, nullable=True)
    caption = Column(Text, nullable=True)
    tags = Column(JSON, nullable=True)
    content_type = Column(String(20), nullable=False, default=ContentType.POST.value)

    # Design-tool integration (never exposed to end users)
    external_template_id = Column(String(255), nullable=True, unique=True)
    share_url = Column(Text, nullable=True, comment="Public share/edit link at the design tool")
    thumbnail_url = Column(Text, nullable=True)

    is_published = Column(Boolean, nullable=False, default=False, index=True)
    published_at = Column(DateTime(timezone=True), nullable=True)

    view_count = Column(Integer, nullable=False, default=0)
    edit_count = Column(Integer, nullable=False, default=0)
    bookmark_count = Column(Integer, nullable=False, default=0)

    trending_score = Column(Float, nullable=False, default=0.0, index=True)
    is_trending = Column(Boolean, nullable=False, default=False)

    created_by_admin = Column(String(255), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<Template(id={self.id}, title={self.title!r}, published={self.is_published})>"

    def to_dict(self) -> dict:
        """Public representation (internal design-tool id omitted)."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "instruction": self.instruction,
            "caption": self.caption,
            "tags": list(self.tags or []),
            "content_type": self.content_type,
            "thumbnail_url": self.thumbnail_url,
            "is_published": bool(self.is_published),
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "view_count": self.view_count or 0,
            "edit_count": self.edit_count or 0,
            "bookmark_count": self.bookmark_count or 0,
            "trending_score": self.trending_score or 0.0,
            "is_trending": bool(self.is_trending),
        }


class TemplateHistory(Base):
    """One user action against a template."""

    __tablename__ = "template_history"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    template_id = Column(String(255), ForeignKey("templates.id", ondelete="CASCADE"), nullable=False)
    action = Column(String(20), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
    )

    __table_args__ = (
        Index("ix_template_history_user_template", "user_id", "template_id"),
        Index("ix_template_history_user_action", "user_id", "action"),
    )


class TemplateBookmark(Base):
    """A user's bookmark on a template."""

    __tablename__ = "template_bookmarks"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    template_id = Column(String(255), ForeignKey("templates.id", ondelete="CASCADE"), nullable=False)
    bookmarked_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "template_id", name="uq_template_bookmarks_user_template"),
    )


@event.listens_for(Template, "before_insert")
@event.listens_for(Template, "before_update")
def _refresh_template_trending(mapper, connection, target):
    apply_trending(target, TEMPLATE_WEIGHTS)
