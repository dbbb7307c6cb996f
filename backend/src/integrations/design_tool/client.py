"""
Design-tool REST API client (OAuth, profile, templates, team access).

This client handles:
- OAuth token exchange and refresh (PKCE, form-encoded token endpoint)
- Profile lookup, used as the lightweight token validity probe
- Template listing (brand templates, falling back to designs on 403/404)
- Team access provisioning through an admin's connected account

All calls have bounded timeouts and are never retried here; callers
surface failures immediately.

SECURITY: access tokens and the client secret must never be logged.
"""

import logging
import os
import random
import string
import time
from typing import Optional, List, Dict, Any
from urllib.parse import urlencode

import httpx

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
from src.integrations.design_tool.models import (
    TokenSet,
    DesignToolUser,
    ExternalTemplate,
    TemplateListing,
    ProvisionedMember,
)
from src.platform.secrets import redact_secrets

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_API_URL = "https://api.canva.com/rest/v1"
DEFAULT_AUTHORIZE_URL = "https://www.canva.com/api/oauth/authorize"
DEFAULT_SCOPES = ["design:content:read", "design:meta:read"]
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
DEFAULT_TEMPLATE_LIMIT = 20
CODE_CHALLENGE_METHOD = "s256"

BRAND_TEMPLATES_SOURCE = "brand-templates"
DESIGNS_SOURCE = "designs"


def _scopes_from_env() -> List[str]:
    raw = os.getenv("DESIGN_TOOL_SCOPES")
    if not raw:
        return list(DEFAULT_SCOPES)
    return [scope for scope in raw.replace(",", " ").split() if scope]


class DesignToolClient:
    """
    Async client for the design-tool REST API.

    One instance can serve many users: the access token is passed per call
    rather than baked into the client headers.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        api_url: Optional[str] = None,
        authorize_url: Optional[str] = None,
        scopes: Optional[List[str]] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize design-tool client.

        Args:
            client_id: OAuth client id (default: DESIGN_TOOL_CLIENT_ID)
            client_secret: OAuth client secret (default: DESIGN_TOOL_CLIENT_SECRET)
            redirect_uri: OAuth redirect URI (default: DESIGN_TOOL_REDIRECT_URI)
            api_url: REST API base URL (default: DESIGN_TOOL_API_URL or public API)
            authorize_url: Browser authorization URL (default: DESIGN_TOOL_AUTHORIZE_URL)
            scopes: Requested scopes (default: DESIGN_TOOL_SCOPES or read scopes)
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.client_id = client_id or os.getenv("DESIGN_TOOL_CLIENT_ID")
        self.client_secret = client_secret or os.getenv("DESIGN_TOOL_CLIENT_SECRET")
        self.redirect_uri = redirect_uri or os.getenv("DESIGN_TOOL_REDIRECT_URI")
        self.api_url = (
            api_url or os.getenv("DESIGN_TOOL_API_URL") or DEFAULT_API_URL
        ).rstrip("/")
        self.authorize_url = (
            authorize_url or os.getenv("DESIGN_TOOL_AUTHORIZE_URL") or DEFAULT_AUTHORIZE_URL
        )
        self.scopes = list(scopes) if scopes is not None else _scopes_from_env()

        if not self.client_id:
            raise ValueError(
                "Design-tool client id is required. Set DESIGN_TOOL_CLIENT_ID environment "
                "variable or pass client_id parameter."
            )

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "DesignToolClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        endpoint: str,
        access_token: Optional[str] = None,
        json: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make an HTTP request to the design-tool API.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            access_token: Bearer token for user-scoped calls
            json: Request body as JSON
            data: Request body as form fields
            params: Query parameters

        Returns:
            Response data as dictionary

        Raises:
            DesignToolError: On API errors
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        headers = {}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        try:
            response = await self._client.request(
                method=method,
                url=url,
                json=json,
                data=data,
                params=params,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            logger.error(
                "Design-tool API timeout",
                extra={"endpoint": endpoint, "error": str(e)},
            )
            raise DesignToolConnectionError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.error(
                "Design-tool API connection error",
                extra={"endpoint": endpoint, "error": str(e)},
            )
            raise DesignToolConnectionError(f"Connection error: {e}")

        if response.status_code < 400:
            if response.status_code == 204 or not response.content:
                return {}
            return response.json()

        error_body: Dict[str, Any] = {}
        try:
            error_body = response.json()
        except ValueError:
            pass
        provider_message = error_body.get("message") or error_body.get("error_description")

        if response.status_code == 401:
            logger.warning(
                "Design-tool API authentication failed",
                extra={"status_code": 401, "endpoint": endpoint},
            )
            raise DesignToolAuthenticationError(response=error_body)

        if response.status_code == 403:
            logger.warning(
                "Design-tool API authorization failed",
                extra={"status_code": 403, "endpoint": endpoint},
            )
            raise DesignToolPermissionError(response=error_body)

        if response.status_code == 404:
            raise DesignToolNotFoundError(
                message=f"Resource not found: {endpoint}",
                response=error_body,
            )

        if response.status_code == 409:
            raise DesignToolConflictError(response=error_body)

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            logger.warning(
                "Design-tool API rate limited",
                extra={"endpoint": endpoint, "retry_after": retry_after},
            )
            raise DesignToolRateLimitError(
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
            )

        if response.status_code in (400, 422):
            raise DesignToolBadRequestError(
                message=f"Invalid request: {provider_message or 'Bad request'}",
                status_code=response.status_code,
                code=error_body.get("error") or error_body.get("code"),
                response=error_body,
            )

        logger.error(
            "Design-tool API error",
            extra={
                "status_code": response.status_code,
                "endpoint": endpoint,
                "response": str(redact_secrets(error_body))[:500],
            },
        )
        if response.status_code >= 500:
            raise DesignToolConnectionError(
                message=f"Design-tool API unavailable: {response.status_code}",
                status_code=response.status_code,
                response=error_body,
            )
        raise DesignToolError(
            message=f"Design-tool API error: {response.status_code}",
            status_code=response.status_code,
            response=error_body,
        )

    # =========================================================================
    # OAuth
    # =========================================================================

    def build_authorization_url(self, code_challenge: str, state: str) -> str:
        """Browser URL that starts the PKCE authorization flow."""
        query = urlencode({
            "code_challenge": code_challenge,
            "code_challenge_method": CODE_CHALLENGE_METHOD,
            "scope": " ".join(self.scopes),
            "response_type": "code",
            "client_id": self.client_id,
            "state": state,
            "redirect_uri": self.redirect_uri or "",
        })
        return f"{self.authorize_url}?{query}"

    async def exchange_code(self, code: str, code_verifier: str) -> TokenSet:
        """
        Exchange an authorization code plus PKCE verifier for tokens.

        Raises:
            DesignToolBadRequestError: Code invalid, expired or already used
            DesignToolError: On other API errors
        """
        data = await self._request(
            "POST",
            "/oauth/token",
            data={
                "grant_type": "authorization_code",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "code": code,
                "code_verifier": code_verifier,
            },
        )
        tokens = TokenSet.from_dict(data)
        if not tokens.scopes:
            tokens.scopes = list(self.scopes)
        return tokens

    async def refresh_token(self, refresh_token: str) -> TokenSet:
        """
        Obtain a fresh access token with the refresh_token grant.

        Raises:
            DesignToolBadRequestError: Refresh token revoked or expired
            DesignToolError: On other API errors
        """
        data = await self._request(
            "POST",
            "/oauth/token",
            data={
                "grant_type": "refresh_token",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
            },
        )
        return TokenSet.from_dict(data)

    async def get_user(self, access_token: str) -> DesignToolUser:
        """
        Fetch the profile of the token's owner.

        Raises:
            DesignToolAuthenticationError: Token expired or invalid
            DesignToolError: On other API errors
        """
        data = await self._request("GET", "/users/me", access_token=access_token)
        return DesignToolUser.from_dict(data)

    # =========================================================================
    # Templates
    # =========================================================================

    async def list_templates(
        self,
        access_token: str,
        limit: int = DEFAULT_TEMPLATE_LIMIT,
        query: Optional[str] = None,
    ) -> TemplateListing:
        """
        List templates importable by the token's owner.

        Brand templates need an enterprise account; a 403 or 404 there is a
        signal to fall back to the owner's designs, not a hard error.

        Raises:
            DesignToolAuthenticationError: Token expired or invalid
            DesignToolError: Both listings failed, or any other API error
        """
        params: Dict[str, Any] = {"limit": limit}
        if query:
            params["query"] = query

        try:
            data = await self._request(
                "GET", "/brand-templates", access_token=access_token, params=params
            )
            source = BRAND_TEMPLATES_SOURCE
        except (DesignToolPermissionError, DesignToolNotFoundError) as brand_error:
            logger.info(
                "Brand templates not accessible, falling back to designs",
                extra={"status_code": brand_error.status_code},
            )
            data = await self._request(
                "GET", "/designs", access_token=access_token, params={"limit": limit}
            )
            source = DESIGNS_SOURCE

        items = [ExternalTemplate.from_dict(item) for item in data.get("items", [])]

        logger.debug(
            "Listed design-tool templates",
            extra={"source": source, "count": len(items)},
        )

        return TemplateListing(
            items=items,
            source=source,
            continuation=data.get("continuation"),
        )

    # =========================================================================
    # Team access
    # =========================================================================

    async def find_team_member(
        self, admin_access_token: str, email: str
    ) -> Optional[ProvisionedMember]:
        """
        Look up an existing team membership for an email.

        The provider exposes no membership query, so this always reports
        "not found". Callers must not treat None as a verified negative.
        """
        logger.info(
            "Team membership lookup unsupported by provider; treating as not found",
            extra={"email": email},
        )
        return None

    async def provision_member(
        self,
        admin_access_token: str,
        email: str,
        role: str = "member",
    ) -> ProvisionedMember:
        """
        Grant a user team access through an admin's connected account.

        The provider has no team-management endpoint: provisioning verifies
        the admin's connection and issues a local approval id. The user
        connects their own account afterwards.

        Raises:
            DesignToolAuthenticationError: Admin token expired or invalid
            DesignToolPermissionError: Admin lacks permission
            DesignToolError: On other API errors
        """
        admin = await self.get_user(admin_access_token)

        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
        member_id = f"approval_{int(time.time() * 1000)}_{suffix}"

        logger.info(
            "Provisioned design-tool team access",
            extra={"email": email, "role": role, "admin_id": admin.user_id, "member_id": member_id},
        )

        return ProvisionedMember(
            member_id=member_id,
            email=email,
            role=role,
            approved_by=admin.user_id,
        )


def get_design_tool_client(
    client_id: Optional[str] = None,
    client_secret: Optional[str] = None,
    redirect_uri: Optional[str] = None,
) -> DesignToolClient:
    """
    Factory function to create a DesignToolClient.

    Args:
        client_id: Override OAuth client id
        client_secret: Override OAuth client secret
        redirect_uri: Override redirect URI

    Returns:
        Configured DesignToolClient instance
    """
    return DesignToolClient(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=redirect_uri,
    )
