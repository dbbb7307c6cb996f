"""
OAuth connection manager for design-tool accounts.

Handles:
- PKCE authorization start (verifier + S256 challenge)
- Callback: code exchange, profile fetch, encrypted token storage
- Token validation gate with refresh-on-expiry
- Forced reconnection (credentials cleared) when refresh is impossible

States per user:
    disconnected -> pending-authorization -> connected -> (expired | revoked) -> disconnected

RULES:
- Only users with team_access may connect (checked before anything is stored)
- The verifier is single use; it is deleted after a successful callback
- Credential writes are single UPDATE statements: a refresh never leaves
  a half-updated token pair, a reset clears every OAuth field at once
"""

import base64
import hashlib
import logging
import secrets
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from src.integrations.design_tool.client import DesignToolClient
from src.integrations.design_tool.exceptions import (
    DesignToolError,
    DesignToolAuthenticationError,
)
from src.models.user import User
from src.platform.errors import (
    PermissionDenied,
    NotFound,
    MissingParameters,
    OAuthDenied,
    VerifierNotFound,
    ReauthRequired,
)
from src.platform.secrets import encrypt_secret, decrypt_secret, mask_secret, EncryptionError
from src.services.provider_errors import translate_design_tool_error, is_transient
from src.services.verifier_store import VerifierStore

logger = logging.getLogger(__name__)

VERIFIER_BYTES = 96


def generate_code_verifier() -> str:
    """URL-safe base64 of 96 random bytes (128 chars, no padding)."""
    return base64.urlsafe_b64encode(secrets.token_bytes(VERIFIER_BYTES)).decode("ascii").rstrip("=")


def derive_code_challenge(verifier: str) -> str:
    """S256 challenge: URL-safe base64 SHA-256 of the verifier, unpadded."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


class OAuthConnectionManager:
    """Owns every write to a user's design-tool credential fields."""

    def __init__(
        self,
        session: Session,
        client: DesignToolClient,
        verifier_store: VerifierStore,
    ):
        self.session = session
        self.client = client
        self.verifier_store = verifier_store

    def _get_user(self, user_id: str) -> User:
        user = self.session.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound(f"User {user_id} not found")
        return user

    def initiate(self, user_id: str) -> dict:
        """
        Start the PKCE authorization flow.

        Overwrites any verifier from an earlier attempt, so only the most
        recent authorization can complete.

        Returns:
            Dict with authorization_url and state

        Raises:
            PermissionDenied: If the user has no team access
        """
        user = self._get_user(user_id)
        if not user.team_access:
            raise PermissionDenied("Team access approval required to connect a design-tool account")

        verifier = generate_code_verifier()
        challenge = derive_code_challenge(verifier)
        self.verifier_store.put(user.id, verifier)

        logger.info("OAuth authorization started", extra={"user_id": user.id})

        return {
            "authorization_url": self.client.build_authorization_url(challenge, state=user.id),
            "state": user.id,
        }

    async def complete_callback(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> dict:
        """
        Finish authorization: exchange the code and store the credentials.

        Args:
            code: Authorization code from the provider
            state: User id echoed back by the provider
            error: Provider error code, if authorization failed
            error_description: Provider error description

        Returns:
            Connection summary (no token material)

        Raises:
            OAuthDenied: Provider reported an error
            MissingParameters: code or state absent
            VerifierNotFound: No live verifier for state (unknown, expired or replayed)
        """
        if error:
            logger.warning("OAuth provider returned error", extra={"error": error, "state": state})
            raise OAuthDenied(error_description or error, details={"provider_error": error})

        if not code or not state:
            raise MissingParameters("Authorization code and state are required")

        verifier = self.verifier_store.get(state)
        if verifier is None:
            logger.warning("OAuth verifier not found", extra={"state": state})
            raise VerifierNotFound()

        user = self._get_user(state)
        if not user.team_access:
            raise PermissionDenied("Team access approval required to connect a design-tool account")

        try:
            tokens = await self.client.exchange_code(code, verifier)
            profile = await self.client.get_user(tokens.access_token)
        except DesignToolError as e:
            logger.error(
                "OAuth code exchange failed",
                extra={"user_id": user.id, "error": e.message, "status_code": e.status_code},
            )
            raise translate_design_tool_error(e)

        values = {
            User.design_access_token: await encrypt_secret(tokens.access_token),
            User.design_refresh_token: (
                await encrypt_secret(tokens.refresh_token) if tokens.refresh_token else None
            ),
            User.design_user_id: profile.user_id,
            User.design_connected: True,
            User.design_scopes: list(tokens.scopes),
        }
        self.session.query(User).filter(User.id == user.id).update(values)
        self.session.commit()
        self.verifier_store.delete(state)

        logger.info(
            "Design-tool account connected",
            extra={
                "user_id": user.id,
                "design_user_id": profile.user_id,
                "scopes": tokens.scopes,
                "token_hint": mask_secret(tokens.access_token),
            },
        )

        self.session.refresh(user)
        return user.credential_summary()

    async def ensure_valid_token(self, user_id: str) -> str:
        """
        Gate before any template-edit action; returns a usable access token.

        Probe, conditional refresh, destructive reset, in that order.
        Rate limits and provider outages surface without touching the
        stored credentials.

        Raises:
            PermissionDenied: User lacks team access
            ReauthRequired: Not connected, or credentials were cleared
            RateLimited / ServiceUnavailable: Transient provider failure
        """
        user = self._get_user(user_id)
        if not user.team_access:
            raise PermissionDenied("Team access approval required")
        if not user.has_design_credentials:
            raise ReauthRequired("Design-tool account not connected")

        try:
            access_token = await decrypt_secret(user.design_access_token)
        except EncryptionError:
            logger.error("Stored access token could not be decrypted", extra={"user_id": user.id})
            self._clear_credentials(user.id)
            raise ReauthRequired()

        try:
            await self.client.get_user(access_token)
            return access_token
        except DesignToolAuthenticationError:
            logger.info("Design-tool token rejected, attempting refresh", extra={"user_id": user.id})
        except DesignToolError as e:
            raise translate_design_tool_error(e)

        if not user.design_refresh_token:
            self._clear_credentials(user.id)
            raise ReauthRequired()

        try:
            refresh_token = await decrypt_secret(user.design_refresh_token)
            tokens = await self.client.refresh_token(refresh_token)
        except EncryptionError:
            self._clear_credentials(user.id)
            raise ReauthRequired()
        except DesignToolError as e:
            if is_transient(e):
                raise translate_design_tool_error(e)
            logger.warning(
                "Design-tool token refresh failed",
                extra={"user_id": user.id, "status_code": e.status_code},
            )
            self._clear_credentials(user.id)
            raise ReauthRequired()

        # Providers may omit a rotated refresh token; keep the current one then.
        new_refresh = (
            await encrypt_secret(tokens.refresh_token)
            if tokens.refresh_token
            else user.design_refresh_token
        )
        self.session.query(User).filter(User.id == user.id).update({
            User.design_access_token: await encrypt_secret(tokens.access_token),
            User.design_refresh_token: new_refresh,
        })
        self.session.commit()

        logger.info(
            "Design-tool token refreshed",
            extra={"user_id": user.id, "token_hint": mask_secret(tokens.access_token)},
        )
        return tokens.access_token

    async def connection_status(self, user_id: str) -> dict:
        """
        Report whether the stored token still works. Never mutates state.
        """
        user = self._get_user(user_id)
        status = {
            "team_access": bool(user.team_access),
            "connected": False,
            "design_user_id": user.design_user_id,
            "scopes": user.granted_scopes,
            "needs_reauth": False,
        }
        if not user.has_design_credentials:
            return status

        try:
            access_token = await decrypt_secret(user.design_access_token)
            await self.client.get_user(access_token)
        except (EncryptionError, DesignToolAuthenticationError):
            status["needs_reauth"] = True
            return status
        except DesignToolError as e:
            logger.warning(
                "Connection status probe failed",
                extra={"user_id": user.id, "status_code": e.status_code},
            )
            return status

        status["connected"] = True
        return status

    def disconnect(self, user_id: str) -> None:
        """Forget the user's design-tool credentials."""
        user = self._get_user(user_id)
        self._clear_credentials(user.id)
        logger.info("Design-tool account disconnected", extra={"user_id": user.id})

    def require_scopes(self, user_id: str, scopes: Iterable[str]) -> List[str]:
        """
        Check that every required scope was granted.

        Connections stored without a scope list count as holding the
        scopes this deployment requests.

        Raises:
            PermissionDenied: With the missing scopes in details
        """
        user = self._get_user(user_id)
        granted = user.granted_scopes or list(self.client.scopes)
        missing = [scope for scope in scopes if scope not in granted]
        if missing:
            raise PermissionDenied(
                "Insufficient design-tool permissions for this action",
                details={"missing_scopes": missing, "granted_scopes": granted},
            )
        return granted

    def _clear_credentials(self, user_id: str) -> None:
        self.session.query(User).filter(User.id == user_id).update(User.cleared_credentials())
        self.session.commit()
        logger.info("Design-tool credentials cleared", extra={"user_id": user_id})
