"""
Domain error taxonomy for the template marketplace.

Every error raised by the core services derives from MarketplaceError and
carries an ErrorKind. The kind is all a transport needs to pick a status
code; the mapping itself lives in src.api.errors so services stay
transport-agnostic.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Closed set of failure categories."""
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    VALIDATION = "validation"
    INTERNAL = "internal"


class MarketplaceError(Exception):
    """Base exception for all domain errors."""

    kind: ErrorKind = ErrorKind.INTERNAL
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kind={self.kind.value}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        body = {
            "error": self.code,
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


class PermissionDenied(MarketplaceError):
    """Missing entitlement, role or quota."""
    kind = ErrorKind.PERMISSION_DENIED
    code = "permission_denied"
    default_message = "Permission denied"


class NotFound(MarketplaceError):
    kind = ErrorKind.NOT_FOUND
    code = "not_found"
    default_message = "Resource not found"


class InvalidState(MarketplaceError):
    """State-machine precondition violated."""
    kind = ErrorKind.INVALID_STATE
    code = "invalid_state"
    default_message = "Operation not allowed in the current state"


class Conflict(MarketplaceError):
    kind = ErrorKind.CONFLICT
    code = "conflict"
    default_message = "Conflicting resource state"


class DuplicatePending(Conflict):
    """A PENDING access request already exists for the user."""
    code = "duplicate_pending"
    default_message = "An access request is already pending"


class AlreadyGranted(Conflict):
    """The user already holds team access."""
    code = "already_granted"
    default_message = "Team access has already been granted"


class DuplicateTemplate(Conflict):
    """A template imported from the same design-tool template already exists."""
    code = "duplicate_template"
    default_message = "Template with this URL already exists"


class AlreadyMember(Conflict):
    """The external provider reports the user is already a team member."""
    code = "already_member"
    default_message = "User is already a member of the design team"


class ValidationError(MarketplaceError):
    kind = ErrorKind.VALIDATION
    code = "validation_error"
    default_message = "Invalid request"


class MissingParameters(ValidationError):
    code = "missing_parameters"
    default_message = "Missing required parameters"


class OAuthDenied(ValidationError):
    """The OAuth provider reported an authorization error."""
    code = "oauth_denied"
    default_message = "Authorization was denied by the provider"


class VerifierNotFound(InvalidState):
    """No pending PKCE verifier exists for the callback state."""
    code = "verifier_not_found"
    default_message = "Authorization session expired or not found, please reconnect"


class ApproverNotConnected(InvalidState):
    """The approving admin has no connected design-tool account."""
    code = "approver_not_connected"
    default_message = "Approver must connect a design-tool account first"


class ExternalServiceError(MarketplaceError):
    """Failure talking to an external provider."""
    kind = ErrorKind.INTERNAL
    code = "external_service_error"
    default_message = "External service request failed"


class ExternalUnauthorized(ExternalServiceError):
    """Provider rejected the credentials (expired or invalid token)."""
    kind = ErrorKind.UNAUTHORIZED
    code = "external_unauthorized"
    default_message = "External token expired or invalid"


class ReauthRequired(ExternalUnauthorized):
    """Stored credentials were cleared; the user must reconnect."""
    code = "reauth_required"
    default_message = "Design-tool connection expired, please reconnect"


class RateLimited(ExternalServiceError):
    kind = ErrorKind.RATE_LIMITED
    code = "rate_limited"
    default_message = "External service rate limit exceeded"

    def __init__(self, message: Optional[str] = None, retry_after: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ServiceUnavailable(ExternalServiceError):
    kind = ErrorKind.UNAVAILABLE
    code = "service_unavailable"
    default_message = "External service unavailable"


class InternalError(MarketplaceError):
    kind = ErrorKind.INTERNAL
    code = "internal_error"
    default_message = "An unexpected error occurred"
