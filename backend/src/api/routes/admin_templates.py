"""
Admin template curation routes.

List, create, edit, publish and delete catalog templates, and browse the admin's connected
design-tool account for templates to import.

SECURITY: Every route requires the ADMIN role.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from src.api.dependencies import (
    get_catalog_service,
    get_client,
    get_connection_manager,
    require_admin,
)
from src.integrations.design_tool.client import DesignToolClient
from src.models.template import ContentType
from src.models.user import User
from src.services.catalog_service import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, TemplateCatalogService
from src.services.oauth_service import OAuthConnectionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/templates", tags=["admin-templates"])


class CreateTemplateBody(BaseModel):
    """Request body for creating a catalog template."""
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    content_type: str = Field(ContentType.POST.value)
    tags: List[str] = Field(default_factory=list)
    external_template_id: Optional[str] = None
    share_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    instruction: Optional[str] = None
    caption: Optional[str] = None
    publish: bool = False


class UpdateTemplateBody(BaseModel):
    """Partial update; omitted fields keep their value."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    instruction: Optional[str] = None
    caption: Optional[str] = None
    tags: Optional[List[str]] = None
    content_type: Optional[str] = None
    share_url: Optional[str] = None
    thumbnail_url: Optional[str] = None


class PublishBody(BaseModel):
    published: bool


@router.get("")
async def list_admin_templates(
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    search: Optional[str] = Query(None, max_length=200),
    content_type: Optional[str] = Query(None),
    status: Optional[str] = Query(None, pattern="^(published|draft)$"),
    admin: User = Depends(require_admin),
    catalog: TemplateCatalogService = Depends(get_catalog_service),
):
    """The caller's own templates, drafts included."""
    return catalog.list_admin_templates(
        admin.id,
        limit=limit,
        offset=offset,
        search=search,
        content_type=content_type,
        status=status,
    )


@router.post("", status_code=201)
async def create_template(
    body: CreateTemplateBody,
    admin: User = Depends(require_admin),
    catalog: TemplateCatalogService = Depends(get_catalog_service),
):
    return catalog.create_template(admin.id, **body.model_dump())


@router.patch("/{template_id}/publish")
async def set_published(
    template_id: str,
    body: PublishBody,
    admin: User = Depends(require_admin),
    catalog: TemplateCatalogService = Depends(get_catalog_service),
):
    return catalog.set_published(admin.id, template_id, body.published)


@router.get("/importable")
async def list_importable_templates(
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    query: Optional[str] = Query(None, max_length=200),
    admin: User = Depends(require_admin),
    catalog: TemplateCatalogService = Depends(get_catalog_service),
    connections: OAuthConnectionManager = Depends(get_connection_manager),
    client: DesignToolClient = Depends(get_client),
):
    """
    Templates in the admin's design-tool account.

    Refreshes an expired token first; returns 401 with reauth_required when
    the connection has to be re-established.
    """
    return await catalog.list_importable_templates(
        admin.id, connections, client, limit=limit, query=query
    )


@router.patch("/{template_id}")
async def update_template(
    template_id: str,
    body: UpdateTemplateBody,
    admin: User = Depends(require_admin),
    catalog: TemplateCatalogService = Depends(get_catalog_service),
):
    return catalog.update_template(admin.id, template_id, **body.model_dump(exclude_unset=True))


@router.delete("/{template_id}")
async def delete_template(
    template_id: str,
    admin: User = Depends(require_admin),
    catalog: TemplateCatalogService = Depends(get_catalog_service),
):
    return catalog.delete_template(admin.id, template_id)
