"""
Short-lived storage for pending OAuth PKCE verifiers.

One slot per user: a new authorization attempt overwrites the previous
verifier, so only the latest attempt can complete its callback. Entries
expire after OAUTH_VERIFIER_TTL_SECONDS (default 10 minutes).

Backends:
- InMemoryVerifierStore: single-instance deployments and tests
- RedisVerifierStore: shared across instances (REDIS_URL)
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from threading import Lock
from typing import Callable, Dict, Optional, Tuple

import redis

from src.platform.errors import ServiceUnavailable

logger = logging.getLogger(__name__)

DEFAULT_VERIFIER_TTL_SECONDS = 600
KEY_PREFIX = "oauth:verifier:"


def _ttl_from_env() -> int:
    return int(os.getenv("OAUTH_VERIFIER_TTL_SECONDS", str(DEFAULT_VERIFIER_TTL_SECONDS)))


class VerifierStore(ABC):
    """Single-slot-per-user key/value store with expiry."""

    @abstractmethod
    def put(self, user_id: str, verifier: str) -> None:
        """Store the verifier, replacing any previous one for the user."""
        pass

    @abstractmethod
    def get(self, user_id: str) -> Optional[str]:
        """Return the live verifier, or None if absent or expired."""
        pass

    @abstractmethod
    def delete(self, user_id: str) -> None:
        pass


class InMemoryVerifierStore(VerifierStore):
    """
    Process-local verifier store.

    Thread-safe with TTL support. Verifiers are lost on restart, which
    surfaces as VerifierNotFound at the callback.
    """

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = Lock()
        self._ttl_seconds = ttl_seconds if ttl_seconds is not None else _ttl_from_env()
        self._clock = clock

    def put(self, user_id: str, verifier: str) -> None:
        with self._lock:
            self._entries[user_id] = (verifier, self._clock() + self._ttl_seconds)

    def get(self, user_id: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            verifier, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[user_id]
                return None
            return verifier

    def delete(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisVerifierStore(VerifierStore):
    """
    Redis-backed verifier store for multi-instance deployments.

    Redis enforces the TTL (SETEX). Unlike a cache, losing a write here
    breaks the flow, so Redis errors surface as ServiceUnavailable.
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        redis_url: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
    ):
        if redis_client is None:
            redis_url = redis_url or os.getenv("REDIS_URL")
            if not redis_url:
                raise ValueError("REDIS_URL is required for RedisVerifierStore")
            redis_client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_timeout=5.0,
                socket_connect_timeout=5.0,
            )
        self._redis = redis_client
        self._ttl_seconds = ttl_seconds if ttl_seconds is not None else _ttl_from_env()

    @staticmethod
    def _key(user_id: str) -> str:
        return f"{KEY_PREFIX}{user_id}"

    def put(self, user_id: str, verifier: str) -> None:
        try:
            self._redis.setex(self._key(user_id), self._ttl_seconds, verifier)
        except redis.RedisError as e:
            logger.error("Redis SETEX failed for OAuth verifier", extra={"user_id": user_id, "error": str(e)})
            raise ServiceUnavailable("Authorization session store unavailable")

    def get(self, user_id: str) -> Optional[str]:
        try:
            value = self._redis.get(self._key(user_id))
        except redis.RedisError as e:
            logger.error("Redis GET failed for OAuth verifier", extra={"user_id": user_id, "error": str(e)})
            raise ServiceUnavailable("Authorization session store unavailable")
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def delete(self, user_id: str) -> None:
        try:
            self._redis.delete(self._key(user_id))
        except redis.RedisError as e:
            # The entry still expires on its own TTL.
            logger.warning("Redis DELETE failed for OAuth verifier", extra={"user_id": user_id, "error": str(e)})


_default_store: Optional[VerifierStore] = None
_default_store_lock = Lock()


def get_verifier_store() -> VerifierStore:
    """
    Process-wide verifier store.

    Uses Redis when REDIS_URL is set, otherwise an in-memory store.
    """
    global _default_store
    if _default_store is None:
        with _default_store_lock:
            if _default_store is None:
                if os.getenv("REDIS_URL"):
                    _default_store = RedisVerifierStore()
                    logger.info("OAuth verifier store: redis")
                else:
                    _default_store = InMemoryVerifierStore()
                    logger.info("OAuth verifier store: in-memory (single instance only)")
    return _default_store


def reset_verifier_store() -> None:
    """Drop the process-wide store (tests)."""
    global _default_store
    with _default_store_lock:
        _default_store = None
