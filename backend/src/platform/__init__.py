"""
Platform-level modules shared by every service.

- errors: closed domain error taxonomy
- secrets: token encryption and log redaction
"""

from src.platform.errors import (
    ErrorKind,
    MarketplaceError,
    PermissionDenied,
    NotFound,
    InvalidState,
    Conflict,
    DuplicatePending,
    DuplicateTemplate,
    AlreadyGranted,
    AlreadyMember,
    ValidationError,
    MissingParameters,
    OAuthDenied,
    VerifierNotFound,
    ReauthRequired,
    ApproverNotConnected,
    ExternalServiceError,
    ExternalUnauthorized,
    RateLimited,
    ServiceUnavailable,
    InternalError,
)

from src.platform.secrets import (
    encrypt_secret,
    decrypt_secret,
    redact_secrets,
    mask_secret,
    EncryptionError,
)

__all__ = [
    # Errors
    "ErrorKind",
    "MarketplaceError",
    "PermissionDenied",
    "NotFound",
    "InvalidState",
    "Conflict",
    "DuplicatePending",
    "DuplicateTemplate",
    "AlreadyGranted",
    "AlreadyMember",
    "ValidationError",
    "MissingParameters",
    "OAuthDenied",
    "VerifierNotFound",
    "ReauthRequired",
    "ApproverNotConnected",
    "ExternalServiceError",
    "ExternalUnauthorized",
    "RateLimited",
    "ServiceUnavailable",
    "InternalError",
    # Secrets
    "encrypt_secret",
    "decrypt_secret",
    "redact_secrets",
    "mask_secret",
    "EncryptionError",
]
