"""
Secrets handling for TemplateHub.

CRITICAL SECURITY REQUIREMENTS:
- NEVER store design-tool tokens in plaintext in the DB or logs
- All token encrypt/decrypt operations MUST use this module
- Any key name containing token/secret/key MUST be redacted from logs

Encryption uses a Fernet key derived from the ENCRYPTION_KEY env var.

Usage:
    from src.platform.secrets import encrypt_secret, decrypt_secret, redact_secrets

    encrypted = await encrypt_secret(access_token)
    access_token = await decrypt_secret(encrypted)

    safe_data = redact_secrets({"access_token": "abc", "user_id": "u1"})
"""

import base64
import hashlib
import logging
import os
import re
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

# Patterns for detecting secrets in logs
SECRET_PATTERNS = [
    re.compile(r"(api[_-]?key)", re.IGNORECASE),
    re.compile(r"(access[_-]?token)", re.IGNORECASE),
    re.compile(r"(refresh[_-]?token)", re.IGNORECASE),
    re.compile(r"(code[_-]?verifier)", re.IGNORECASE),
    re.compile(r"(client[_-]?secret)", re.IGNORECASE),
    re.compile(r"(password)", re.IGNORECASE),
    re.compile(r"(webhook[_-]?secret)", re.IGNORECASE),
    re.compile(r"(encryption[_-]?key)", re.IGNORECASE),
    re.compile(r"(authorization)", re.IGNORECASE),
]

SECRET_VALUE_PATTERNS = [
    re.compile(r"(Bearer\s+[a-zA-Z0-9._-]+)"),
    re.compile(r"(sk_(live|test)_[a-zA-Z0-9]{16,})"),  # Stripe secret keys
    re.compile(r"(whsec_[a-zA-Z0-9]{16,})"),  # Stripe webhook secrets
]

REDACTED_VALUE = "[REDACTED]"

KEY_DERIVATION_SALT = b"templatehub-token-salt"
KEY_DERIVATION_ITERATIONS = 100000


class EncryptionError(Exception):
    """Raised when encryption/decryption operations fail."""
    pass


class SecretsManager:
    """Fernet encryption keyed from ENCRYPTION_KEY (lazy init)."""

    def __init__(self, encryption_key: Optional[str] = None):
        self._encryption_key = encryption_key
        self._fernet: Optional[Fernet] = None

    def _get_fernet(self) -> Fernet:
        if self._fernet is not None:
            return self._fernet

        encryption_key = self._encryption_key or os.getenv("ENCRYPTION_KEY")
        if not encryption_key:
            raise EncryptionError("ENCRYPTION_KEY is not configured")

        derived_key = hashlib.pbkdf2_hmac(
            "sha256",
            encryption_key.encode(),
            KEY_DERIVATION_SALT,
            KEY_DERIVATION_ITERATIONS,
            dklen=32,  # Fernet requires 32 bytes
        )
        self._fernet = Fernet(base64.urlsafe_b64encode(derived_key))
        logger.info("Token encryption initialized")
        return self._fernet

    async def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a plaintext string.

        Raises:
            ValueError: If plaintext is empty
            EncryptionError: If no key is configured
        """
        if not plaintext:
            raise ValueError("Cannot encrypt empty string")
        encrypted = self._get_fernet().encrypt(plaintext.encode("utf-8"))
        return encrypted.decode("utf-8")

    async def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt an encrypted string.

        Raises:
            ValueError: If ciphertext is empty
            EncryptionError: If the key is missing or does not match
        """
        if not ciphertext:
            raise ValueError("Cannot decrypt empty string")
        try:
            decrypted = self._get_fernet().decrypt(ciphertext.encode("utf-8"))
        except InvalidToken:
            raise EncryptionError("Invalid ciphertext or wrong encryption key")
        return decrypted.decode("utf-8")


# Singleton instance
_secrets_manager = SecretsManager()


async def encrypt_secret(plaintext: str) -> str:
    """Encrypt a secret for database storage."""
    return await _secrets_manager.encrypt(plaintext)


async def decrypt_secret(ciphertext: str) -> str:
    """Decrypt a secret read from the database."""
    return await _secrets_manager.decrypt(ciphertext)


def is_secret_key(key: str) -> bool:
    """Check if a dictionary key likely holds a secret."""
    return any(pattern.search(key) for pattern in SECRET_PATTERNS)


def redact_value(value: Any) -> Any:
    if not isinstance(value, str):
        return value

    result = value
    for pattern in SECRET_VALUE_PATTERNS:
        result = pattern.sub(REDACTED_VALUE, result)
    return result


def redact_secrets(data: Any, _depth: int = 0) -> Any:
    """
    Recursively redact secrets from a data structure.

    Use this before logging provider payloads.

    Usage:
        logger.info("Token response", extra=redact_secrets(payload))
    """
    if _depth > 10:
        return data

    if isinstance(data, dict):
        return {
            key: REDACTED_VALUE if is_secret_key(str(key)) else redact_secrets(value, _depth + 1)
            for key, value in data.items()
        }

    if isinstance(data, list):
        return [redact_secrets(item, _depth + 1) for item in data]

    if isinstance(data, str):
        return redact_value(data)

    return data


def mask_secret(secret: Optional[str], visible_chars: int = 4) -> str:
    """Mask a secret showing only the last few characters ("****abcd")."""
    if not secret or len(secret) <= visible_chars:
        return "*" * max(len(secret) if secret else 0, 4)

    return "*" * (len(secret) - visible_chars) + secret[-visible_chars:]
