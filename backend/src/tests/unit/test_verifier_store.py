"""
Unit tests for the OAuth verifier stores.

Tests cover:
- Single slot per user (overwrite)
- TTL expiry
- Redis key layout and error handling
"""

import pytest
from unittest.mock import MagicMock

import redis

from src.platform.errors import ServiceUnavailable
from src.services.verifier_store import (
    InMemoryVerifierStore,
    RedisVerifierStore,
    KEY_PREFIX,
    get_verifier_store,
    reset_verifier_store,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestInMemoryVerifierStore:

    def test_put_and_get(self):
        store = InMemoryVerifierStore(ttl_seconds=600)

        store.put("user-1", "verifier-a")

        assert store.get("user-1") == "verifier-a"
        assert store.get("user-2") is None

    def test_second_put_overwrites(self):
        store = InMemoryVerifierStore(ttl_seconds=600)

        store.put("user-1", "verifier-a")
        store.put("user-1", "verifier-b")

        assert store.get("user-1") == "verifier-b"
        assert len(store) == 1

    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        store = InMemoryVerifierStore(ttl_seconds=600, clock=clock)
        store.put("user-1", "verifier-a")

        clock.now += 599
        assert store.get("user-1") == "verifier-a"

        clock.now += 1
        assert store.get("user-1") is None
        assert len(store) == 0

    def test_delete(self):
        store = InMemoryVerifierStore(ttl_seconds=600)
        store.put("user-1", "verifier-a")

        store.delete("user-1")
        store.delete("never-stored")

        assert store.get("user-1") is None

    def test_ttl_from_environment(self, monkeypatch):
        monkeypatch.setenv("OAUTH_VERIFIER_TTL_SECONDS", "5")
        clock = FakeClock()
        store = InMemoryVerifierStore(clock=clock)
        store.put("user-1", "verifier-a")

        clock.now += 5

        assert store.get("user-1") is None


class TestRedisVerifierStore:

    @pytest.fixture
    def redis_client(self):
        return MagicMock()

    def test_put_uses_setex_with_ttl(self, redis_client):
        store = RedisVerifierStore(redis_client=redis_client, ttl_seconds=600)

        store.put("user-1", "verifier-a")

        redis_client.setex.assert_called_once_with(f"{KEY_PREFIX}user-1", 600, "verifier-a")

    def test_get_decodes_bytes(self, redis_client):
        redis_client.get.return_value = b"verifier-a"
        store = RedisVerifierStore(redis_client=redis_client, ttl_seconds=600)

        assert store.get("user-1") == "verifier-a"
        redis_client.get.assert_called_once_with(f"{KEY_PREFIX}user-1")

    def test_get_missing_returns_none(self, redis_client):
        redis_client.get.return_value = None
        store = RedisVerifierStore(redis_client=redis_client, ttl_seconds=600)

        assert store.get("user-1") is None

    def test_put_failure_is_service_unavailable(self, redis_client):
        redis_client.setex.side_effect = redis.ConnectionError("down")
        store = RedisVerifierStore(redis_client=redis_client, ttl_seconds=600)

        with pytest.raises(ServiceUnavailable):
            store.put("user-1", "verifier-a")

    def test_get_failure_is_service_unavailable(self, redis_client):
        redis_client.get.side_effect = redis.TimeoutError("slow")
        store = RedisVerifierStore(redis_client=redis_client, ttl_seconds=600)

        with pytest.raises(ServiceUnavailable):
            store.get("user-1")

    def test_delete_failure_is_logged_not_raised(self, redis_client):
        redis_client.delete.side_effect = redis.ConnectionError("down")
        store = RedisVerifierStore(redis_client=redis_client, ttl_seconds=600)

        store.delete("user-1")

    def test_requires_url_without_client(self, monkeypatch):
        monkeypatch.delenv("REDIS_URL", raising=False)

        with pytest.raises(ValueError):
            RedisVerifierStore()


class TestDefaultStore:

    def test_in_memory_without_redis_url(self, monkeypatch):
        monkeypatch.delenv("REDIS_URL", raising=False)
        reset_verifier_store()
        try:
            store = get_verifier_store()
            assert isinstance(store, InMemoryVerifierStore)
            assert get_verifier_store() is store
        finally:
            reset_verifier_store()
