"""
Template catalog API routes.

Provides endpoints for:
- Browsing published templates (truncated to the caller's plan limit)
- Template detail (counts against the monthly view quota)
- Opening a template's edit link
- Bookmarks and view/edit history
- The caller's usage summary

SECURITY: All routes require an authenticated user (request.state.user_id).
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from src.api.dependencies import get_catalog_service, get_current_user_id
from src.services.catalog_service import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, TemplateCatalogService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/templates", tags=["templates"])


# --- Response Models ---


class UserLimitsResponse(BaseModel):
    is_unlimited: bool
    template_limit: int
    plan_name: str
    has_active_subscription: bool


class TemplateListResponse(BaseModel):
    templates: List[Dict[str, Any]]
    total_count: int
    limit: int
    offset: int
    user_limits: UserLimitsResponse


class EditLinkResponse(BaseModel):
    edit_url: str
    template_title: str


class BookmarkResponse(BaseModel):
    template_id: str
    bookmarked: bool


# --- API Endpoints ---


@router.get("", response_model=TemplateListResponse)
async def list_templates(
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    search: Optional[str] = Query(None, max_length=200),
    content_type: Optional[str] = Query(None),
    sort: str = Query("newest", pattern="^(newest|popular|trending)$"),
    tags: Optional[str] = Query(None, max_length=500, description="Comma-separated; matches any"),
    user_id: str = Depends(get_current_user_id),
    catalog: TemplateCatalogService = Depends(get_catalog_service),
):
    """
    List published templates.

    Never blocked by the view quota; free plans see at most their
    template limit per page.
    """
    tag_list = [tag.strip() for tag in tags.split(",") if tag.strip()] if tags else None
    return catalog.list_templates(
        user_id,
        limit=limit,
        offset=offset,
        search=search,
        content_type=content_type,
        sort=sort,
        tags=tag_list,
    )


@router.get("/usage")
async def get_usage(
    user_id: str = Depends(get_current_user_id),
    catalog: TemplateCatalogService = Depends(get_catalog_service),
):
    """Plan, limit and this month's template views."""
    return catalog.usage_summary(user_id)


@router.get("/bookmarks")
async def list_bookmarks(
    user_id: str = Depends(get_current_user_id),
    catalog: TemplateCatalogService = Depends(get_catalog_service),
):
    return {"bookmarks": catalog.list_bookmarks(user_id)}


@router.get("/history")
async def list_history(
    action: Optional[str] = Query(None),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    catalog: TemplateCatalogService = Depends(get_catalog_service),
):
    return catalog.list_history(user_id, action=action, limit=limit, offset=offset)


@router.get("/{template_id}")
async def get_template(
    template_id: str,
    user_id: str = Depends(get_current_user_id),
    catalog: TemplateCatalogService = Depends(get_catalog_service),
):
    """
    Template detail.

    Returns 403 once the caller's monthly view limit is reached.
    """
    return catalog.get_template(user_id, template_id)


@router.post("/{template_id}/edit-link", response_model=EditLinkResponse)
async def open_edit_link(
    template_id: str,
    user_id: str = Depends(get_current_user_id),
    catalog: TemplateCatalogService = Depends(get_catalog_service),
):
    return catalog.get_edit_link(user_id, template_id)


@router.post("/{template_id}/bookmark", response_model=BookmarkResponse)
async def add_bookmark(
    template_id: str,
    user_id: str = Depends(get_current_user_id),
    catalog: TemplateCatalogService = Depends(get_catalog_service),
):
    return catalog.add_bookmark(user_id, template_id)


@router.delete("/{template_id}/bookmark", response_model=BookmarkResponse)
async def remove_bookmark(
    template_id: str,
    user_id: str = Depends(get_current_user_id),
    catalog: TemplateCatalogService = Depends(get_catalog_service),
):
    return catalog.remove_bookmark(user_id, template_id)
