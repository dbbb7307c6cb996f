"""
Tests for the design-tool OAuth connection manager.

Tests cover:
- PKCE verifier/challenge generation
- initiate: team access gate, single verifier slot per user
- complete_callback: error ordering, encrypted storage, single-use verifier
- ensure_valid_token: probe, refresh, destructive reset, transient errors
- connection_status, disconnect, require_scopes
"""

import base64
import hashlib
import logging
import pytest

from src.integrations.design_tool.exceptions import (
    DesignToolAuthenticationError,
    DesignToolBadRequestError,
    DesignToolConnectionError,
    DesignToolRateLimitError,
)
from src.integrations.design_tool.models import DesignToolUser, TokenSet
from src.models.user import User
from src.platform.errors import (
    PermissionDenied,
    MissingParameters,
    OAuthDenied,
    VerifierNotFound,
    ReauthRequired,
    RateLimited,
    ServiceUnavailable,
    ValidationError,
)
from src.platform.secrets import encrypt_secret, decrypt_secret
from src.services.oauth_service import (
    OAuthConnectionManager,
    generate_code_verifier,
    derive_code_challenge,
)


@pytest.fixture
def manager(db_session, design_tool_client, verifier_store):
    return OAuthConnectionManager(db_session, design_tool_client, verifier_store)


@pytest.fixture
def connected_user(db_session, make_user):
    """Factory for a team user holding encrypted tokens."""
    async def _make(access_token="at-1", refresh_token="rt-1", scopes=None):
        user = make_user(team_access=True)
        user.design_access_token = await encrypt_secret(access_token)
        user.design_refresh_token = await encrypt_secret(refresh_token) if refresh_token else None
        user.design_user_id = "ext-1"
        user.design_connected = True
        user.design_scopes = scopes if scopes is not None else ["design:content:read", "design:meta:read"]
        db_session.flush()
        return user
    return _make


def assert_cleared(db_session, user_id):
    user = db_session.query(User).filter(User.id == user_id).populate_existing().one()
    assert user.design_access_token is None
    assert user.design_refresh_token is None
    assert user.design_user_id is None
    assert user.design_connected is False
    assert user.design_scopes is None


class TestPkce:

    def test_verifier_is_url_safe_and_long(self):
        verifier = generate_code_verifier()

        assert len(verifier) == 128
        assert "=" not in verifier
        assert generate_code_verifier() != verifier

    def test_challenge_is_unpadded_sha256(self):
        verifier = "a" * 64
        expected = base64.urlsafe_b64encode(
            hashlib.sha256(verifier.encode()).digest()
        ).decode().rstrip("=")

        assert derive_code_challenge(verifier) == expected
        assert len(derive_code_challenge(verifier)) == 43


class TestInitiate:

    def test_requires_team_access(self, manager, make_user, verifier_store):
        user = make_user(team_access=False)

        with pytest.raises(PermissionDenied):
            manager.initiate(user.id)

        assert verifier_store.get(user.id) is None

    def test_stores_verifier_and_returns_url(self, manager, make_user, verifier_store, design_tool_client):
        user = make_user(team_access=True)

        result = manager.initiate(user.id)

        verifier = verifier_store.get(user.id)
        assert verifier is not None
        assert result["state"] == user.id
        design_tool_client.build_authorization_url.assert_called_once_with(
            derive_code_challenge(verifier), state=user.id
        )

    def test_second_initiate_overwrites_verifier(self, manager, make_user, verifier_store):
        user = make_user(team_access=True)

        manager.initiate(user.id)
        first = verifier_store.get(user.id)
        manager.initiate(user.id)

        assert verifier_store.get(user.id) != first
        assert len(verifier_store) == 1


class TestCompleteCallback:

    @pytest.mark.asyncio
    async def test_provider_error_first(self, manager):
        with pytest.raises(OAuthDenied) as exc_info:
            await manager.complete_callback(None, None, error="access_denied", error_description="User denied")

        assert exc_info.value.message == "User denied"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code,state", [(None, "user-1"), ("code-1", None), ("", "")])
    async def test_missing_parameters(self, manager, code, state):
        with pytest.raises(MissingParameters):
            await manager.complete_callback(code, state)

    @pytest.mark.asyncio
    async def test_unknown_state(self, db_session, manager, make_user, design_tool_client):
        user = make_user(team_access=True)

        with pytest.raises(VerifierNotFound):
            await manager.complete_callback("code-1", user.id)

        design_tool_client.exchange_code.assert_not_called()
        db_session.refresh(user)
        assert user.design_connected is False

    @pytest.mark.asyncio
    async def test_success_stores_encrypted_tokens(self, db_session, manager, make_user, verifier_store, design_tool_client):
        user = make_user(team_access=True)
        manager.initiate(user.id)
        verifier = verifier_store.get(user.id)
        design_tool_client.exchange_code.return_value = TokenSet(
            access_token="at-new", refresh_token="rt-new", scopes=["design:content:read"]
        )
        design_tool_client.get_user.return_value = DesignToolUser(user_id="ext-42")

        summary = await manager.complete_callback("code-1", user.id)

        design_tool_client.exchange_code.assert_awaited_once_with("code-1", verifier)
        design_tool_client.get_user.assert_awaited_once_with("at-new")
        assert summary == {"connected": True, "design_user_id": "ext-42", "scopes": ["design:content:read"]}

        db_session.refresh(user)
        assert user.design_access_token != "at-new"
        assert await decrypt_secret(user.design_access_token) == "at-new"
        assert await decrypt_secret(user.design_refresh_token) == "rt-new"
        assert verifier_store.get(user.id) is None

    @pytest.mark.asyncio
    async def test_connection_log_carries_masked_token(self, caplog, manager, make_user, design_tool_client):
        user = make_user(team_access=True)
        manager.initiate(user.id)
        design_tool_client.exchange_code.return_value = TokenSet(
            access_token="at-live-secret-9876", refresh_token="rt-new", scopes=[]
        )
        design_tool_client.get_user.return_value = DesignToolUser(user_id="ext-42")

        with caplog.at_level(logging.INFO, logger="src.services.oauth_service"):
            await manager.complete_callback("code-1", user.id)

        record = next(r for r in caplog.records if r.getMessage() == "Design-tool account connected")
        assert record.token_hint == "*" * 15 + "9876"
        assert "at-live-secret" not in caplog.text

    @pytest.mark.asyncio
    async def test_replayed_callback_fails(self, manager, make_user, design_tool_client):
        user = make_user(team_access=True)
        manager.initiate(user.id)
        design_tool_client.exchange_code.return_value = TokenSet(access_token="at-new")
        design_tool_client.get_user.return_value = DesignToolUser(user_id="ext-42")
        await manager.complete_callback("code-1", user.id)

        with pytest.raises(VerifierNotFound):
            await manager.complete_callback("code-1", user.id)

    @pytest.mark.asyncio
    async def test_revoked_team_access_rejected_before_storage(self, db_session, manager, make_user, design_tool_client):
        user = make_user(team_access=True)
        manager.initiate(user.id)
        user.team_access = False
        db_session.flush()

        with pytest.raises(PermissionDenied):
            await manager.complete_callback("code-1", user.id)

        design_tool_client.exchange_code.assert_not_called()

    @pytest.mark.asyncio
    async def test_exchange_failure_keeps_verifier(self, manager, make_user, verifier_store, design_tool_client):
        user = make_user(team_access=True)
        manager.initiate(user.id)
        design_tool_client.exchange_code.side_effect = DesignToolBadRequestError("Invalid request: code expired")

        with pytest.raises(ValidationError):
            await manager.complete_callback("code-1", user.id)

        assert verifier_store.get(user.id) is not None


class TestEnsureValidToken:

    @pytest.mark.asyncio
    async def test_requires_team_access(self, manager, make_user):
        user = make_user(team_access=False)

        with pytest.raises(PermissionDenied):
            await manager.ensure_valid_token(user.id)

    @pytest.mark.asyncio
    async def test_not_connected(self, manager, make_user):
        user = make_user(team_access=True)

        with pytest.raises(ReauthRequired):
            await manager.ensure_valid_token(user.id)

    @pytest.mark.asyncio
    async def test_valid_token_returned(self, manager, connected_user, design_tool_client):
        user = await connected_user(access_token="at-1")
        design_tool_client.get_user.return_value = DesignToolUser(user_id="ext-1")

        token = await manager.ensure_valid_token(user.id)

        assert token == "at-1"
        design_tool_client.refresh_token.assert_not_called()

    @pytest.mark.asyncio
    async def test_expired_token_refreshed(self, db_session, manager, connected_user, design_tool_client):
        user = await connected_user(access_token="at-old", refresh_token="rt-old")
        design_tool_client.get_user.side_effect = DesignToolAuthenticationError()
        design_tool_client.refresh_token.return_value = TokenSet(access_token="at-new", refresh_token="rt-new")

        token = await manager.ensure_valid_token(user.id)

        assert token == "at-new"
        design_tool_client.refresh_token.assert_awaited_once_with("rt-old")
        db_session.refresh(user)
        assert await decrypt_secret(user.design_access_token) == "at-new"
        assert await decrypt_secret(user.design_refresh_token) == "rt-new"
        assert user.design_connected is True

    @pytest.mark.asyncio
    async def test_refresh_without_rotation_keeps_refresh_token(self, db_session, manager, connected_user, design_tool_client):
        user = await connected_user(access_token="at-old", refresh_token="rt-old")
        design_tool_client.get_user.side_effect = DesignToolAuthenticationError()
        design_tool_client.refresh_token.return_value = TokenSet(access_token="at-new")

        await manager.ensure_valid_token(user.id)

        db_session.refresh(user)
        assert await decrypt_secret(user.design_refresh_token) == "rt-old"

    @pytest.mark.asyncio
    async def test_refresh_failure_clears_credentials(self, db_session, manager, connected_user, design_tool_client):
        user = await connected_user()
        design_tool_client.get_user.side_effect = DesignToolAuthenticationError()
        design_tool_client.refresh_token.side_effect = DesignToolBadRequestError("Invalid request: revoked")

        with pytest.raises(ReauthRequired):
            await manager.ensure_valid_token(user.id)

        assert_cleared(db_session, user.id)

    @pytest.mark.asyncio
    async def test_no_refresh_token_clears_credentials(self, db_session, manager, connected_user, design_tool_client):
        user = await connected_user(refresh_token=None)
        design_tool_client.get_user.side_effect = DesignToolAuthenticationError()

        with pytest.raises(ReauthRequired):
            await manager.ensure_valid_token(user.id)

        assert_cleared(db_session, user.id)
        design_tool_client.refresh_token.assert_not_called()

    @pytest.mark.asyncio
    async def test_rate_limited_probe_keeps_credentials(self, db_session, manager, connected_user, design_tool_client):
        user = await connected_user()
        design_tool_client.get_user.side_effect = DesignToolRateLimitError(retry_after=5)

        with pytest.raises(RateLimited):
            await manager.ensure_valid_token(user.id)

        db_session.refresh(user)
        assert user.design_connected is True

    @pytest.mark.asyncio
    async def test_outage_during_refresh_keeps_credentials(self, db_session, manager, connected_user, design_tool_client):
        user = await connected_user()
        design_tool_client.get_user.side_effect = DesignToolAuthenticationError()
        design_tool_client.refresh_token.side_effect = DesignToolConnectionError()

        with pytest.raises(ServiceUnavailable):
            await manager.ensure_valid_token(user.id)

        db_session.refresh(user)
        assert user.design_connected is True

    @pytest.mark.asyncio
    async def test_undecryptable_token_clears_credentials(self, db_session, manager, make_user):
        user = make_user(team_access=True)
        user.design_access_token = "not-a-fernet-token"
        user.design_connected = True
        db_session.flush()

        with pytest.raises(ReauthRequired):
            await manager.ensure_valid_token(user.id)

        assert_cleared(db_session, user.id)


class TestStatusAndScopes:

    @pytest.mark.asyncio
    async def test_status_connected(self, manager, connected_user, design_tool_client):
        user = await connected_user()
        design_tool_client.get_user.return_value = DesignToolUser(user_id="ext-1")

        status = await manager.connection_status(user.id)

        assert status["connected"] is True
        assert status["team_access"] is True
        assert status["needs_reauth"] is False

    @pytest.mark.asyncio
    async def test_status_expired_does_not_mutate(self, db_session, manager, connected_user, design_tool_client):
        user = await connected_user()
        design_tool_client.get_user.side_effect = DesignToolAuthenticationError()

        status = await manager.connection_status(user.id)

        assert status["connected"] is False
        assert status["needs_reauth"] is True
        db_session.refresh(user)
        assert user.design_connected is True

    @pytest.mark.asyncio
    async def test_disconnect(self, db_session, manager, connected_user):
        user = await connected_user()

        manager.disconnect(user.id)

        assert_cleared(db_session, user.id)

    @pytest.mark.asyncio
    async def test_require_scopes(self, manager, connected_user):
        user = await connected_user(scopes=["design:content:read"])

        assert manager.require_scopes(user.id, ["design:content:read"]) == ["design:content:read"]

        with pytest.raises(PermissionDenied) as exc_info:
            manager.require_scopes(user.id, ["design:content:read", "design:content:write"])

        assert exc_info.value.details["missing_scopes"] == ["design:content:write"]

    def test_require_scopes_falls_back_to_requested(self, manager, make_user):
        user = make_user(team_access=True)

        granted = manager.require_scopes(user.id, ["design:meta:read"])

        assert "design:meta:read" in granted
