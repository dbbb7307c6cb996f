"""
Template catalog service.

User-facing reads go through the EntitlementResolver on every call:
- list reads are never blocked, only truncated to the plan's limit
- detail reads are refused once the monthly view quota is used up

Engagement (views, edit-link opens, bookmarks) is recorded as history
rows plus atomic counter increments; trending fields follow the counters.

Admin operations cover curation (create, edit, publish, delete) and browsing the
connected design-tool account for templates to import.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.entitlements.service import EntitlementResolver
from src.integrations.design_tool.client import DesignToolClient
from src.integrations.design_tool.exceptions import DesignToolError
from src.models.content_item import ContentItem
from src.models.template import Template, HistoryAction, ContentType
from src.models.user import User
from src.platform.errors import DuplicateTemplate, NotFound, PermissionDenied, ValidationError
from src.repositories.catalog_repo import CatalogRepository
from src.services.oauth_service import OAuthConnectionManager
from src.services.provider_errors import translate_design_tool_error

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
TRENDING_LIMIT = 20

UPDATABLE_FIELDS = (
    "title",
    "description",
    "instruction",
    "caption",
    "tags",
    "content_type",
    "share_url",
    "thumbnail_url",
)

CONTENT_EVENTS = {
    "usage": "usage_count",
    "download": "download_count",
    "view": "view_count",
}


class TemplateCatalogService:
    """Catalog reads, engagement tracking and admin curation."""

    def __init__(
        self,
        session: Session,
        resolver: Optional[EntitlementResolver] = None,
        repository: Optional[CatalogRepository] = None,
    ):
        self.session = session
        self.resolver = resolver or EntitlementResolver(session)
        self.repository = repository or CatalogRepository(session)

    def _get_published(self, template_id: str) -> Template:
        template = self.repository.get_published_template(template_id)
        if not template:
            raise NotFound("Template not found")
        return template

    # =========================================================================
    # User reads
    # =========================================================================

    def list_templates(
        self,
        user_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        search: Optional[str] = None,
        content_type: Optional[str] = None,
        sort: str = "newest",
        tags: Optional[List[str]] = None,
    ) -> dict:
        """
        Browse published templates, optionally limited to any of `tags`.

        Free users get at most template_limit rows per page and the reported
        total is capped the same way.
        """
        if limit < 1 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")
        limit = min(limit, MAX_PAGE_SIZE)

        access = self.resolver.resolve_access(user_id)
        page_size = access.cap(limit)

        templates, total = self.repository.list_published_templates(
            limit=page_size,
            offset=offset,
            search=search,
            content_type=content_type,
            sort=sort,
            tags=tags,
        )

        return {
            "templates": [t.to_dict() for t in templates],
            "total_count": access.cap(total),
            "limit": page_size,
            "offset": offset,
            "user_limits": access.to_dict(),
        }

    def get_template(self, user_id: str, template_id: str) -> dict:
        """
        Template detail; counts against the monthly view quota.

        Raises:
            NotFound: Template missing or unpublished
            PermissionDenied: Monthly view limit reached
        """
        template = self._get_published(template_id)
        self.resolver.enforce_view_quota(user_id)

        template = self.repository.increment_counter(Template, template.id, "view_count")
        self.repository.record_history(user_id, template.id, HistoryAction.VIEWED.value)
        self.session.commit()

        logger.info("Template viewed", extra={"template_id": template.id, "user_id": user_id})
        return template.to_dict()

    def get_edit_link(self, user_id: str, template_id: str) -> dict:
        """
        Share/edit link at the design tool.

        Raises:
            NotFound: Template missing, unpublished, or without a share URL
        """
        template = self._get_published(template_id)
        if not template.share_url:
            raise NotFound("Template share URL not available")

        self.repository.record_history(user_id, template.id, HistoryAction.EDITED.value)
        self.repository.increment_counter(Template, template.id, "edit_count")
        self.session.commit()

        logger.info("Template edit link opened", extra={"template_id": template.id, "user_id": user_id})
        return {"edit_url": template.share_url, "template_title": template.title}

    def usage_summary(self, user_id: str) -> dict:
        return self.resolver.usage_summary(user_id).to_dict()

    # =========================================================================
    # Bookmarks and history
    # =========================================================================

    def add_bookmark(self, user_id: str, template_id: str) -> dict:
        """
        Raises:
            NotFound: Template missing or unpublished
            ValidationError: Already bookmarked
        """
        template = self._get_published(template_id)
        if self.repository.get_bookmark(user_id, template.id):
            raise ValidationError("Template already bookmarked")

        self.repository.add_bookmark(user_id, template.id)
        self.repository.record_history(user_id, template.id, HistoryAction.BOOKMARKED.value)
        self.repository.increment_counter(Template, template.id, "bookmark_count")
        self.session.commit()

        logger.info("Template bookmarked", extra={"template_id": template.id, "user_id": user_id})
        return {"template_id": template.id, "bookmarked": True}

    def remove_bookmark(self, user_id: str, template_id: str) -> dict:
        removed = self.repository.remove_bookmark(user_id, template_id)
        if removed:
            self.repository.increment_counter(Template, template_id, "bookmark_count", amount=-1)
        self.session.commit()

        logger.info(
            "Template bookmark removed",
            extra={"template_id": template_id, "user_id": user_id, "removed": removed},
        )
        return {"template_id": template_id, "bookmarked": False}

    def list_bookmarks(self, user_id: str) -> List[dict]:
        rows = self.repository.list_bookmarked_templates(user_id)
        return [
            {
                "bookmarked_at": bookmark.bookmarked_at.isoformat() if bookmark.bookmarked_at else None,
                "template": template.to_dict(),
            }
            for bookmark, template in rows
        ]

    def list_history(
        self,
        user_id: str,
        action: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> dict:
        if action and action not in {a.value for a in HistoryAction}:
            raise ValidationError(f"Unknown history action: {action}")

        rows, total = self.repository.list_history(user_id, action, min(limit, MAX_PAGE_SIZE), offset)
        return {
            "history": [
                {
                    "id": entry.id,
                    "action": entry.action,
                    "created_at": entry.created_at.isoformat() if entry.created_at else None,
                    "template": {
                        "id": template.id,
                        "title": template.title,
                        "content_type": template.content_type,
                        "thumbnail_url": template.thumbnail_url,
                    },
                }
                for entry, template in rows
            ],
            "total_count": total,
        }

    # =========================================================================
    # Content items
    # =========================================================================

    def get_content_item(self, item_id: str) -> dict:
        item = self.repository.get_content_item(item_id)
        if not item:
            raise NotFound("Content item not found")
        return item.to_dict()

    def list_trending_content(
        self,
        limit: int = TRENDING_LIMIT,
        content_type: Optional[str] = None,
    ) -> List[dict]:
        """Content items flagged as trending, highest score first."""
        items = self.repository.list_trending_content_items(
            min(limit, MAX_PAGE_SIZE), content_type=content_type
        )
        return [item.to_dict() for item in items]

    def track_content_item(self, item_id: str, event: str) -> dict:
        """Record a usage/download/view on a content item."""
        column = CONTENT_EVENTS.get(event)
        if column is None:
            raise ValidationError(f"Unknown content event: {event}")

        item = self.repository.increment_counter(ContentItem, item_id, column)
        if item is None:
            raise NotFound("Content item not found")
        self.session.commit()

        return {
            "id": item.id,
            "usage_count": item.usage_count,
            "download_count": item.download_count,
            "view_count": item.view_count,
            "trending_score": item.trending_score,
            "is_trending": item.is_trending,
        }

    # =========================================================================
    # Admin curation
    # =========================================================================

    def list_admin_templates(
        self,
        admin_id: str,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        search: Optional[str] = None,
        content_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> dict:
        """
        The admin's own templates, drafts included.

        status is "published", "draft" or None for both.
        """
        self._require_admin(admin_id)
        published = {"published": True, "draft": False, None: None}
        if status not in published:
            raise ValidationError(f"Unknown template status: {status}")

        templates, total = self.repository.list_admin_templates(
            admin_id,
            limit=min(limit, MAX_PAGE_SIZE),
            offset=offset,
            search=search,
            content_type=content_type,
            published=published[status],
        )
        return {
            "templates": [t.to_dict() for t in templates],
            "total_count": total,
            "limit": min(limit, MAX_PAGE_SIZE),
            "offset": offset,
        }

    def create_template(
        self,
        admin_id: str,
        title: str,
        description: str,
        content_type: str = ContentType.POST.value,
        tags: Optional[List[str]] = None,
        external_template_id: Optional[str] = None,
        share_url: Optional[str] = None,
        thumbnail_url: Optional[str] = None,
        instruction: Optional[str] = None,
        caption: Optional[str] = None,
        publish: bool = False,
    ) -> dict:
        """
        Raises:
            PermissionDenied: Caller is not an admin
            ValidationError: Unknown content type
            DuplicateTemplate: Same design-tool template or share link already imported
        """
        self._require_admin(admin_id)
        if content_type not in {c.value for c in ContentType}:
            raise ValidationError(f"Unknown content type: {content_type}")

        existing = self.repository.get_template_by_external_ref(external_template_id, share_url)
        if existing:
            raise DuplicateTemplate(details={"template_id": existing.id})

        template = Template(
            title=title,
            description=description,
            content_type=content_type,
            tags=list(tags or []),
            external_template_id=external_template_id,
            share_url=share_url,
            thumbnail_url=thumbnail_url,
            instruction=instruction,
            caption=caption,
            is_published=publish,
            published_at=datetime.now(timezone.utc) if publish else None,
            created_by_admin=admin_id,
        )
        self.session.add(template)
        try:
            self.session.flush()
        except IntegrityError:
            # Lost a race against a concurrent import of the same template.
            self.session.rollback()
            raise DuplicateTemplate()
        self.session.commit()

        logger.info("Template created", extra={"template_id": template.id, "admin_id": admin_id})
        return template.to_dict()

    def update_template(self, admin_id: str, template_id: str, **fields) -> dict:
        """
        Edit an admin's own template; fields left as None keep their value.

        Raises:
            NotFound: Template missing
            PermissionDenied: Template was created by another admin
            ValidationError: Unknown field or content type
            DuplicateTemplate: New share link belongs to another template
        """
        template = self._get_owned_template(admin_id, template_id)

        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {sorted(unknown)}")

        changes = {name: value for name, value in fields.items() if value is not None}
        if "content_type" in changes and changes["content_type"] not in {c.value for c in ContentType}:
            raise ValidationError(f"Unknown content type: {changes['content_type']}")
        if "share_url" in changes and changes["share_url"] != template.share_url:
            existing = self.repository.get_template_by_external_ref(share_url=changes["share_url"])
            if existing and existing.id != template.id:
                raise DuplicateTemplate(details={"template_id": existing.id})
        if "tags" in changes:
            changes["tags"] = list(changes["tags"])

        for name, value in changes.items():
            setattr(template, name, value)
        self.session.commit()

        logger.info(
            "Template updated",
            extra={"template_id": template.id, "admin_id": admin_id, "fields": sorted(changes)},
        )
        return template.to_dict()

    def delete_template(self, admin_id: str, template_id: str) -> dict:
        """
        Remove an admin's own template along with its bookmarks and history.

        Raises:
            NotFound: Template missing
            PermissionDenied: Template was created by another admin
        """
        template = self._get_owned_template(admin_id, template_id)
        self.repository.delete_template(template)
        self.session.commit()

        logger.info("Template deleted", extra={"template_id": template_id, "admin_id": admin_id})
        return {"template_id": template_id, "deleted": True}

    def set_published(self, admin_id: str, template_id: str, published: bool) -> dict:
        self._require_admin(admin_id)
        template = self.repository.get_template(template_id)
        if not template:
            raise NotFound("Template not found")

        template.is_published = published
        if published and template.published_at is None:
            template.published_at = datetime.now(timezone.utc)
        self.session.commit()

        logger.info(
            "Template publish state changed",
            extra={"template_id": template.id, "admin_id": admin_id, "published": published},
        )
        return template.to_dict()

    async def list_importable_templates(
        self,
        admin_id: str,
        connection_manager: OAuthConnectionManager,
        client: DesignToolClient,
        limit: int = DEFAULT_PAGE_SIZE,
        query: Optional[str] = None,
    ) -> dict:
        """
        Templates in the admin's design-tool account, for import.

        Raises:
            PermissionDenied: Caller is not an admin or lacks team access
            ReauthRequired: Connection expired and could not be refreshed
        """
        self._require_admin(admin_id)
        access_token = await connection_manager.ensure_valid_token(admin_id)
        try:
            listing = await client.list_templates(access_token, limit=limit, query=query)
        except DesignToolError as e:
            raise translate_design_tool_error(e)

        return {
            "source": listing.source,
            "items": [
                {
                    "external_template_id": item.external_id,
                    "title": item.title,
                    "thumbnail_url": item.thumbnail_url,
                    "view_url": item.view_url,
                    "edit_url": item.edit_url,
                }
                for item in listing.items
            ],
            "continuation": listing.continuation,
        }

    def _require_admin(self, user_id: str) -> User:
        user = self.session.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound(f"User {user_id} not found")
        if not user.is_admin:
            raise PermissionDenied("Admin role required")
        return user

    def _get_owned_template(self, admin_id: str, template_id: str) -> Template:
        self._require_admin(admin_id)
        template = self.repository.get_template(template_id)
        if not template:
            raise NotFound("Template not found")
        if template.created_by_admin != admin_id:
            logger.warning(
                "Template change by non-owner denied",
                extra={"template_id": template_id, "admin_id": admin_id},
            )
            raise PermissionDenied("Not authorized to modify this template")
        return template
