"""
Translation of design-tool client exceptions into the domain taxonomy.
"""

from src.integrations.design_tool.exceptions import (
    DesignToolError,
    DesignToolAuthenticationError,
    DesignToolPermissionError,
    DesignToolNotFoundError,
    DesignToolBadRequestError,
    DesignToolConflictError,
    DesignToolRateLimitError,
    DesignToolConnectionError,
)
from src.platform.errors import (
    MarketplaceError,
    ExternalServiceError,
    ExternalUnauthorized,
    PermissionDenied,
    NotFound,
    ValidationError,
    AlreadyMember,
    RateLimited,
    ServiceUnavailable,
)


def translate_design_tool_error(error: DesignToolError) -> MarketplaceError:
    """Map a provider failure to the matching domain error."""
    details = {"provider_status": error.status_code} if error.status_code else {}

    if isinstance(error, DesignToolAuthenticationError):
        return ExternalUnauthorized(details=details)
    if isinstance(error, DesignToolPermissionError):
        return PermissionDenied("Insufficient permissions at the design tool", details=details)
    if isinstance(error, DesignToolNotFoundError):
        return NotFound(error.message, details=details)
    if isinstance(error, DesignToolConflictError):
        return AlreadyMember(details=details)
    if isinstance(error, DesignToolBadRequestError):
        return ValidationError(error.message, details=details)
    if isinstance(error, DesignToolRateLimitError):
        return RateLimited(retry_after=error.retry_after, details=details)
    if isinstance(error, DesignToolConnectionError):
        return ServiceUnavailable(error.message, details=details)
    return ExternalServiceError(error.message, details=details)


def is_transient(error: DesignToolError) -> bool:
    """Rate limits and outages say nothing about the token's validity."""
    return isinstance(error, (DesignToolRateLimitError, DesignToolConnectionError))
