"""
Team access request API routes.

Provides endpoints for:
- Submitting a request (users)
- Viewing one's latest request (users)
- Listing requests and status counts (admins)
- Approving / rejecting requests (admins)

Approval provisions the member through the approving admin's connected
design-tool account; on provisioning failure the request returns to
PENDING and the error is reported.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from src.api.dependencies import get_access_request_service, get_current_user_id, require_admin
from src.models.user import User
from src.services.access_request_service import DEFAULT_TEAM_ROLE, AccessRequestService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/access-requests", tags=["access-requests"])


# --- Request/Response Models ---


class SubmitAccessRequestBody(BaseModel):
    """Request body for a team access request."""
    reason: Optional[str] = Field(None, max_length=2000)
    business_type: Optional[str] = Field(None, max_length=255)


class ApproveBody(BaseModel):
    role: str = Field(DEFAULT_TEAM_ROLE, max_length=50)
    notes: Optional[str] = Field(None, max_length=2000)


class RejectBody(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


class AccessRequestResponse(BaseModel):
    id: str
    user_id: str
    user_name: str
    user_email: str
    status: str
    processed_by: Optional[str] = None
    processed_at: Optional[str] = None
    admin_notes: Optional[str] = None
    member_id: Optional[str] = None
    team_role: Optional[str] = None
    request_reason: Optional[str] = None
    business_type: Optional[str] = None
    created_at: Optional[str] = None


class AccessRequestListResponse(BaseModel):
    requests: List[AccessRequestResponse]
    total_count: int


# --- API Endpoints ---


@router.post("", response_model=AccessRequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_request(
    body: SubmitAccessRequestBody,
    user_id: str = Depends(get_current_user_id),
    service: AccessRequestService = Depends(get_access_request_service),
):
    """Submit a team access request. 409 if one is already open."""
    return service.submit(user_id, reason=body.reason, business_type=body.business_type)


@router.get("/me")
async def my_request(
    user_id: str = Depends(get_current_user_id),
    service: AccessRequestService = Depends(get_access_request_service),
):
    return {"request": service.latest_for_user(user_id)}


@router.get("", response_model=AccessRequestListResponse)
async def list_requests(
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    service: AccessRequestService = Depends(get_access_request_service),
):
    return service.list_requests(status=status_filter, limit=limit, offset=offset)


@router.get("/stats")
async def request_stats(
    admin: User = Depends(require_admin),
    service: AccessRequestService = Depends(get_access_request_service),
):
    return service.status_counts()


@router.post("/{request_id}/approve", response_model=AccessRequestResponse)
async def approve_request(
    request_id: str,
    body: ApproveBody,
    admin: User = Depends(require_admin),
    service: AccessRequestService = Depends(get_access_request_service),
):
    """
    Approve a PENDING request and provision the member.

    409 if the request is no longer PENDING or the user is already a member.
    """
    return await service.approve(request_id, admin.id, role=body.role, notes=body.notes)


@router.post("/{request_id}/reject", response_model=AccessRequestResponse)
async def reject_request(
    request_id: str,
    body: RejectBody,
    admin: User = Depends(require_admin),
    service: AccessRequestService = Depends(get_access_request_service),
):
    return await service.reject(request_id, admin.id, notes=body.notes)
