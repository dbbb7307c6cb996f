"""
Content item reads and engagement tracking.

Counters are incremented atomically and the trending fields are refreshed
after each increment. Reads are public; tracking requires a signed-in user.
"""

import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from src.api.dependencies import get_catalog_service, get_current_user_id
from src.services.catalog_service import MAX_PAGE_SIZE, TRENDING_LIMIT, TemplateCatalogService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/content-items", tags=["content-items"])


class TrackEventBody(BaseModel):
    event: Literal["usage", "download", "view"]


@router.get("/trending")
async def list_trending(
    limit: int = Query(TRENDING_LIMIT, ge=1, le=MAX_PAGE_SIZE),
    content_type: Optional[str] = Query(None),
    catalog: TemplateCatalogService = Depends(get_catalog_service),
):
    """Trending content items, highest trending score first."""
    return catalog.list_trending_content(limit=limit, content_type=content_type)


@router.get("/{item_id}")
async def get_content_item(
    item_id: str,
    catalog: TemplateCatalogService = Depends(get_catalog_service),
):
    return catalog.get_content_item(item_id)


@router.post("/{item_id}/track")
async def track_event(
    item_id: str,
    body: TrackEventBody,
    user_id: str = Depends(get_current_user_id),
    catalog: TemplateCatalogService = Depends(get_catalog_service),
):
    logger.info("Content item event", extra={"item_id": item_id, "event": body.event, "user_id": user_id})
    return catalog.track_content_item(item_id, body.event)
