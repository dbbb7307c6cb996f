"""
Session token verification.

Tokens are HS256 JWTs signed with AUTH_JWT_SECRET. The caller's user id is
taken from the `sub` claim, falling back to `id` for tokens minted by the
legacy session endpoint.

JWT Claims Used:
- sub / id: user id
- exp: Expiration timestamp
- iat: Issued at timestamp (optional)
- email: informational only
"""

import os
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
CLOCK_SKEW_SECONDS = 30


class TokenVerificationError(Exception):
    """Raised when a bearer token cannot be verified."""

    def __init__(self, message: str, error_code: str = "invalid_token"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class TokenClaims(BaseModel):
    """Verified claims of a session token."""

    sub: Optional[str] = Field(None, description="User ID")
    id: Optional[str] = Field(None, description="Legacy user ID claim")
    exp: int = Field(..., description="Expiration timestamp (Unix)")
    iat: Optional[int] = Field(None, description="Issued at timestamp (Unix)")
    email: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    @property
    def user_id(self) -> Optional[str]:
        return self.sub or self.id

    @property
    def expiration_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=timezone.utc)


def get_jwt_secret() -> Optional[str]:
    return os.getenv("AUTH_JWT_SECRET")


def decode_token(token: str, secret: Optional[str] = None) -> TokenClaims:
    """
    Verify a session token and return its claims.

    Args:
        token: Encoded JWT from the Authorization header
        secret: Signing secret (defaults to AUTH_JWT_SECRET)

    Raises:
        TokenVerificationError: Missing secret, bad signature, expired
            token, or no user id claim
    """
    secret = secret or get_jwt_secret()
    if not secret:
        logger.error("AUTH_JWT_SECRET is not set; cannot verify tokens")
        raise TokenVerificationError(
            "Authentication is not configured", error_code="auth_not_configured"
        )

    try:
        payload: Dict[str, Any] = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["exp"]},
            leeway=CLOCK_SKEW_SECONDS,
        )
    except ExpiredSignatureError:
        logger.warning("Token has expired")
        raise TokenVerificationError("Token has expired", error_code="token_expired")
    except InvalidTokenError as e:
        logger.warning(f"Invalid token: {e}")
        raise TokenVerificationError("Token invalid", error_code="invalid_token")

    claims = TokenClaims(**payload)
    if not claims.user_id:
        raise TokenVerificationError("Token has no user id", error_code="missing_claims")
    return claims
