"""
Catalog repository for templates, content items, bookmarks and history.

Counters are only ever changed with atomic UPDATE ... SET col = col + n
statements; the trending fields are recomputed from the stored counters
right after, so concurrent increments never lose an update.
"""

import json
import logging
from typing import Dict, List, Optional, Tuple, Type, Union

from sqlalchemy import String, cast, or_
from sqlalchemy.orm import Session

from src.models.content_item import ContentItem
from src.models.template import Template, TemplateHistory, TemplateBookmark
from src.services.trending_scorer import (
    TrendingWeights,
    CONTENT_ITEM_WEIGHTS,
    TEMPLATE_WEIGHTS,
    apply_trending,
)

logger = logging.getLogger(__name__)

CatalogEntity = Union[Template, ContentItem]

WEIGHTS_BY_MODEL: Dict[type, TrendingWeights] = {
    Template: TEMPLATE_WEIGHTS,
    ContentItem: CONTENT_ITEM_WEIGHTS,
}

COUNTER_COLUMNS: Dict[type, Tuple[str, ...]] = {
    Template: ("view_count", "edit_count", "bookmark_count"),
    ContentItem: ("usage_count", "view_count", "download_count"),
}

TEMPLATE_SORTS = {
    "newest": (Template.published_at.desc(), Template.created_at.desc()),
    "popular": (Template.edit_count.desc(), Template.bookmark_count.desc()),
    "trending": (Template.trending_score.desc(),),
}


class CatalogRepository:
    """Data access for the template and content catalogs."""

    def __init__(self, db_session: Session):
        self.db_session = db_session

    # =========================================================================
    # Counters
    # =========================================================================

    def increment_counter(
        self,
        model: Type[CatalogEntity],
        entity_id: str,
        column: str,
        amount: int = 1,
    ) -> Optional[CatalogEntity]:
        """
        Atomically add `amount` to a counter and refresh trending fields.

        Decrements never take a counter below zero.

        Returns:
            The refreshed entity, or None if it does not exist
        """
        if column not in COUNTER_COLUMNS[model]:
            raise ValueError(f"{column} is not a counter on {model.__name__}")

        counter = getattr(model, column)
        query = self.db_session.query(model).filter(model.id == entity_id)
        if amount < 0:
            query = query.filter(counter >= -amount)

        updated = query.update({counter: counter + amount}, synchronize_session=False)
        if updated == 0:
            return None

        entity = (
            self.db_session.query(model)
            .filter(model.id == entity_id)
            .populate_existing()
            .first()
        )
        apply_trending(entity, WEIGHTS_BY_MODEL[model])
        self.db_session.flush()
        return entity

    # =========================================================================
    # Templates
    # =========================================================================

    def get_template(self, template_id: str) -> Optional[Template]:
        return self.db_session.query(Template).filter(Template.id == template_id).first()

    def get_published_template(self, template_id: str) -> Optional[Template]:
        return (
            self.db_session.query(Template)
            .filter(Template.id == template_id, Template.is_published.is_(True))
            .first()
        )

    def get_template_by_external_ref(
        self,
        external_template_id: Optional[str] = None,
        share_url: Optional[str] = None,
    ) -> Optional[Template]:
        """Existing template imported from the same design-tool template or link."""
        conditions = []
        if external_template_id:
            conditions.append(Template.external_template_id == external_template_id)
        if share_url:
            conditions.append(Template.share_url == share_url)
        if not conditions:
            return None
        return self.db_session.query(Template).filter(or_(*conditions)).first()

    def _filtered_query(
        self,
        query,
        search: Optional[str] = None,
        content_type: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ):
        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(Template.title.ilike(pattern), Template.description.ilike(pattern))
            )
        if content_type:
            query = query.filter(Template.content_type == content_type)
        if tags:
            # tags is a JSON array; match any of the requested tags as a quoted element
            tags_text = cast(Template.tags, String)
            query = query.filter(
                or_(*[tags_text.contains(json.dumps(tag), autoescape=True) for tag in tags])
            )
        return query

    def _published_query(
        self,
        search: Optional[str] = None,
        content_type: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ):
        query = self.db_session.query(Template).filter(Template.is_published.is_(True))
        return self._filtered_query(query, search, content_type, tags)

    def list_published_templates(
        self,
        limit: int,
        offset: int = 0,
        search: Optional[str] = None,
        content_type: Optional[str] = None,
        sort: str = "newest",
        tags: Optional[List[str]] = None,
    ) -> Tuple[List[Template], int]:
        """Published templates page plus the unpaginated total."""
        query = self._published_query(search, content_type, tags)
        total = query.count()
        order_by = TEMPLATE_SORTS.get(sort, TEMPLATE_SORTS["newest"])
        templates = query.order_by(*order_by).offset(offset).limit(limit).all()
        return templates, total

    def list_admin_templates(
        self,
        admin_id: str,
        limit: int,
        offset: int = 0,
        search: Optional[str] = None,
        content_type: Optional[str] = None,
        published: Optional[bool] = None,
    ) -> Tuple[List[Template], int]:
        """An admin's own templates, drafts included, newest first."""
        query = self.db_session.query(Template).filter(Template.created_by_admin == admin_id)
        if published is not None:
            query = query.filter(Template.is_published.is_(published))
        query = self._filtered_query(query, search, content_type)
        total = query.count()
        templates = (
            query.order_by(Template.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return templates, total

    def delete_template(self, template: Template) -> None:
        """Delete a template together with its bookmarks and history rows."""
        self.db_session.query(TemplateBookmark).filter(
            TemplateBookmark.template_id == template.id
        ).delete(synchronize_session=False)
        self.db_session.query(TemplateHistory).filter(
            TemplateHistory.template_id == template.id
        ).delete(synchronize_session=False)
        self.db_session.delete(template)
        self.db_session.flush()

    # =========================================================================
    # Bookmarks and history
    # =========================================================================

    def get_bookmark(self, user_id: str, template_id: str) -> Optional[TemplateBookmark]:
        return (
            self.db_session.query(TemplateBookmark)
            .filter(
                TemplateBookmark.user_id == user_id,
                TemplateBookmark.template_id == template_id,
            )
            .first()
        )

    def add_bookmark(self, user_id: str, template_id: str) -> TemplateBookmark:
        """Insert a bookmark (unique per user and template)."""
        bookmark = TemplateBookmark(user_id=user_id, template_id=template_id)
        self.db_session.add(bookmark)
        self.db_session.flush()
        return bookmark

    def remove_bookmark(self, user_id: str, template_id: str) -> bool:
        deleted = (
            self.db_session.query(TemplateBookmark)
            .filter(
                TemplateBookmark.user_id == user_id,
                TemplateBookmark.template_id == template_id,
            )
            .delete(synchronize_session=False)
        )
        return deleted > 0

    def list_bookmarked_templates(self, user_id: str) -> List[Tuple[TemplateBookmark, Template]]:
        """User's bookmarks on published templates, newest first."""
        return (
            self.db_session.query(TemplateBookmark, Template)
            .join(Template, Template.id == TemplateBookmark.template_id)
            .filter(
                TemplateBookmark.user_id == user_id,
                Template.is_published.is_(True),
            )
            .order_by(TemplateBookmark.bookmarked_at.desc())
            .all()
        )

    def record_history(self, user_id: str, template_id: str, action: str) -> TemplateHistory:
        entry = TemplateHistory(user_id=user_id, template_id=template_id, action=action)
        self.db_session.add(entry)
        self.db_session.flush()
        return entry

    def list_history(
        self,
        user_id: str,
        action: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Tuple[TemplateHistory, Template]], int]:
        query = (
            self.db_session.query(TemplateHistory, Template)
            .join(Template, Template.id == TemplateHistory.template_id)
            .filter(TemplateHistory.user_id == user_id)
        )
        if action:
            query = query.filter(TemplateHistory.action == action)
        total = query.count()
        rows = (
            query.order_by(TemplateHistory.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return rows, total

    # =========================================================================
    # Content items
    # =========================================================================

    def get_content_item(self, item_id: str) -> Optional[ContentItem]:
        return self.db_session.query(ContentItem).filter(ContentItem.id == item_id).first()

    def list_trending_content_items(
        self,
        limit: int,
        content_type: Optional[str] = None,
    ) -> List[ContentItem]:
        """Trending content items, highest score first."""
        query = self.db_session.query(ContentItem).filter(ContentItem.is_trending.is_(True))
        if content_type:
            query = query.filter(ContentItem.content_type == content_type)
        return query.order_by(ContentItem.trending_score.desc()).limit(limit).all()
