"""
Design-tool specific exceptions for error handling.
"""

from typing import Optional, Dict, Any


class DesignToolError(Exception):
    """Base exception for design-tool API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.response = response or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, status_code={self.status_code})"


class DesignToolAuthenticationError(DesignToolError):
    """Raised when the access token is expired or invalid (401)."""

    def __init__(
        self,
        message: str = "Token expired or invalid",
        status_code: int = 401,
        **kwargs,
    ):
        super().__init__(message, status_code=status_code, **kwargs)


class DesignToolPermissionError(DesignToolError):
    """Raised when the token lacks permission for the resource (403)."""

    def __init__(
        self,
        message: str = "Insufficient permissions",
        **kwargs,
    ):
        super().__init__(message, status_code=403, **kwargs)


class DesignToolNotFoundError(DesignToolError):
    """Raised when a requested resource is not found (404)."""

    def __init__(self, message: str = "Resource not found", **kwargs):
        super().__init__(message, status_code=404, **kwargs)


class DesignToolBadRequestError(DesignToolError):
    """Raised when the provider rejects a malformed request (400/422)."""

    def __init__(self, message: str = "Invalid request", status_code: int = 400, **kwargs):
        super().__init__(message, status_code=status_code, **kwargs)


class DesignToolConflictError(DesignToolError):
    """Raised when the target is already a team member (409)."""

    def __init__(self, message: str = "User is already a member", **kwargs):
        super().__init__(message, status_code=409, **kwargs)


class DesignToolRateLimitError(DesignToolError):
    """Raised when API rate limit is exceeded (429)."""

    def __init__(
        self,
        message: str = "Rate limit exceeded - please retry after a delay",
        retry_after: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(message, status_code=429, **kwargs)
        self.retry_after = retry_after


class DesignToolConnectionError(DesignToolError):
    """Raised on timeouts, network errors and provider 5xx responses."""

    def __init__(
        self,
        message: str = "Connection error - unable to reach design-tool API",
        **kwargs,
    ):
        super().__init__(message, **kwargs)
