"""
Design-tool OAuth connection routes.

Flow:
1. GET  /connect   -> authorization URL (PKCE challenge, state = user id)
2. GET  /callback  -> provider redirect; exchanges the code, stores tokens
3. GET  /status    -> whether the stored token still works
4. DELETE /connection -> forget the stored credentials

SECURITY:
- /connect, /status and /connection require an authenticated user
- /callback is called by the provider's redirect; the state parameter
  identifies the user and only matches a verifier issued by /connect
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from src.api.dependencies import get_connection_manager, get_current_user_id
from src.services.oauth_service import OAuthConnectionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/design-tool", tags=["design-tool"])


class ConnectResponse(BaseModel):
    authorization_url: str
    state: str


class ConnectionResponse(BaseModel):
    connected: bool
    design_user_id: Optional[str] = None
    scopes: List[str] = []


class ConnectionStatusResponse(ConnectionResponse):
    team_access: bool
    needs_reauth: bool


@router.get("/connect", response_model=ConnectResponse)
async def connect(
    user_id: str = Depends(get_current_user_id),
    connections: OAuthConnectionManager = Depends(get_connection_manager),
):
    """Start authorization. Requires approved team access."""
    return connections.initiate(user_id)


@router.get("/callback", response_model=ConnectionResponse)
async def callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    connections: OAuthConnectionManager = Depends(get_connection_manager),
):
    return await connections.complete_callback(
        code=code,
        state=state,
        error=error,
        error_description=error_description,
    )


@router.get("/status", response_model=ConnectionStatusResponse)
async def connection_status(
    user_id: str = Depends(get_current_user_id),
    connections: OAuthConnectionManager = Depends(get_connection_manager),
):
    return await connections.connection_status(user_id)


@router.delete("/connection", response_model=ConnectionResponse)
async def disconnect(
    user_id: str = Depends(get_current_user_id),
    connections: OAuthConnectionManager = Depends(get_connection_manager),
):
    connections.disconnect(user_id)
    return ConnectionResponse(connected=False)
