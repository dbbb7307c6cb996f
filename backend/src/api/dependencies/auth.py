"""
Caller identity dependencies.

src.auth.middleware.BearerAuthMiddleware verifies the bearer token and
leaves the authenticated user id on request.state.user_id. Routes only
read it from there.
"""

import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from src.database.session import get_db_session
from src.models.user import User
from src.platform.errors import NotFound, PermissionDenied

logger = logging.getLogger(__name__)


def get_current_user_id(request: Request) -> str:
    """
    Authenticated user id for this request.

    Raises 401 if the request was not authenticated.
    """
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user_id


def require_admin(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session),
) -> User:
    """Load the caller and require the ADMIN role."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound(f"User {user_id} not found")
    if not user.is_admin:
        logger.warning("Admin route denied", extra={"user_id": user_id})
        raise PermissionDenied("Admin role required")
    return user
