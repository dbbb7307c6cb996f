"""
Data models for design-tool API responses.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any


@dataclass
class TokenSet:
    """Token endpoint response (authorization_code or refresh_token grant)."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: str = "Bearer"
    scopes: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenSet":
        scope = data.get("scope") or ""
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
            token_type=data.get("token_type", "Bearer"),
            scopes=scope.split() if isinstance(scope, str) else list(scope),
        )


@dataclass
class DesignToolUser:
    """Profile returned by /users/me."""

    user_id: str
    team_id: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DesignToolUser":
        team_user = data.get("team_user") or {}
        return cls(
            user_id=str(team_user.get("user_id") or data.get("id") or ""),
            team_id=team_user.get("team_id") or data.get("team_id"),
            display_name=data.get("display_name"),
            email=data.get("email"),
        )


@dataclass
class ExternalTemplate:
    """Brand template or design available for import into the catalog."""

    external_id: str
    title: str
    thumbnail_url: Optional[str] = None
    view_url: Optional[str] = None
    edit_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExternalTemplate":
        thumbnail = data.get("thumbnail") or {}
        urls = data.get("urls") or {}
        return cls(
            external_id=data.get("id", ""),
            title=data.get("title") or "Untitled",
            thumbnail_url=thumbnail.get("url"),
            view_url=data.get("view_url") or urls.get("view_url"),
            edit_url=data.get("create_url") or urls.get("edit_url"),
        )


@dataclass
class TemplateListing:
    """Result of a template listing, tagged with the endpoint that served it."""

    items: List[ExternalTemplate]
    source: str
    continuation: Optional[str] = None


@dataclass
class ProvisionedMember:
    """Outcome of granting a user access through the admin's account."""

    member_id: str
    email: str
    role: str
    approved_by: Optional[str] = None
