"""
FastAPI authentication middleware for bearer session tokens.

Request Flow:
1. Middleware extracts the JWT from the Authorization header
2. JWT verified with src.auth.jwt.decode_token
3. The verified user id is attached to request.state.user_id
4. Route dependencies (src.api.dependencies.auth) read it from there

Requests without a token pass through anonymously and the route decides;
a token that fails verification is rejected with 401 before routing.

Usage:

    app.add_middleware(BearerAuthMiddleware)
"""

import logging
from typing import Optional, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse
from fastapi import status

from src.auth.jwt import TokenVerificationError, decode_token

logger = logging.getLogger(__name__)

# Paths that never carry a session token
EXEMPT_PATHS = {
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
}

EXEMPT_PREFIXES = [
    "/api/webhooks/",
]


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """
    Verifies the bearer token and sets request.state.user_id.

    The design-tool OAuth callback and the billing webhook are reached by
    redirects and provider calls without a session token; with no token the
    request simply continues with user_id = None.
    """

    def __init__(
        self,
        app,
        secret: Optional[str] = None,
        exempt_paths: Optional[set] = None,
        exempt_prefixes: Optional[list] = None,
    ):
        """
        Args:
            app: ASGI application
            secret: Signing secret (AUTH_JWT_SECRET is read per request if omitted)
            exempt_paths: Paths that skip verification entirely
            exempt_prefixes: Path prefixes that skip verification entirely
        """
        super().__init__(app)
        self._secret = secret
        self._exempt_paths = exempt_paths or EXEMPT_PATHS
        self._exempt_prefixes = exempt_prefixes or EXEMPT_PREFIXES

    def _is_exempt(self, path: str) -> bool:
        if path in self._exempt_paths:
            return True
        return any(path.startswith(prefix) for prefix in self._exempt_prefixes)

    @staticmethod
    def _extract_token(request: Request) -> Optional[str]:
        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return None
        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        return token.strip()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        request.state.user_id = None

        if self._is_exempt(path) or request.method == "OPTIONS":
            return await call_next(request)

        token = self._extract_token(request)
        if not token:
            logger.debug(f"No auth token for {path}")
            return await call_next(request)

        try:
            claims = decode_token(token, self._secret)
        except TokenVerificationError as e:
            logger.warning(
                f"Token verification failed: {e.message}",
                extra={"path": path, "error_code": e.error_code},
            )
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={
                    "detail": e.message,
                    "error_code": e.error_code,
                },
            )

        request.state.user_id = claims.user_id
        logger.debug(
            "Authenticated request",
            extra={"path": path, "user_id": claims.user_id},
        )
        return await call_next(request)
