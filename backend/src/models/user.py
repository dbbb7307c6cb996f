"""
User model for the template marketplace.

A User carries identity plus every entitlement flag the core consults:
- role (ADMIN | USER)
- optional subscription reference (mirror of billing state)
- team access flag and team role (written only by the access request workflow)
- design-tool OAuth credentials (written only by the connection manager)

CRITICAL SECURITY:
- OAuth tokens are stored encrypted (see src.platform.secrets)
- Tokens are NEVER logged or serialized to API responses
- team_access=False users cannot store a connected credential pair
"""

import enum
import uuid
from typing import List

from sqlalchemy import Column, String, Boolean, Text, ForeignKey, JSON
from sqlalchemy.orm import relationship

from src.db_base import Base
from src.models.base import TimestampMixin


class UserRole(str, enum.Enum):
    """Platform role of a user."""
    ADMIN = "ADMIN"
    USER = "USER"


class User(Base, TimestampMixin):
    """
    Marketplace user.

    Ownership:
    - Embedded OAuth credential fields belong exclusively to this row
    - Bookmarks and template history are user-owned sub-collections
    - AccessRequest rows reference users weakly (by id, no cascade)
    """

    __tablename__ = "users"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Internal UUID primary key"
    )

    email = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="User email address"
    )

    name = Column(
        String(255),
        nullable=False,
        comment="Display name"
    )

    role = Column(
        String(20),
        nullable=False,
        default=UserRole.USER.value,
        comment="ADMIN or USER"
    )

    business_type = Column(
        String(255),
        nullable=True,
        comment="Self-reported business type"
    )

    # Billing
    subscription_id = Column(
        String(36),
        ForeignKey("subscriptions.id", ondelete="SET NULL"),
        nullable=True,
        comment="Current subscription mirror row (optional)"
    )

    # Team access (access request workflow only)
    team_access = Column(
        Boolean,
        nullable=False,
        default=False,
        comment="Approved for design-tool team access"
    )

    team_role = Column(
        String(50),
        nullable=True,
        comment="Role granted on approval (e.g. member)"
    )

    # Design-tool OAuth credentials (connection manager only)
    design_access_token = Column(
        Text,
        nullable=True,
        comment="Encrypted OAuth access token"
    )

    design_refresh_token = Column(
        Text,
        nullable=True,
        comment="Encrypted OAuth refresh token"
    )

    design_user_id = Column(
        String(255),
        nullable=True,
        comment="User id at the design-tool provider"
    )

    design_connected = Column(
        Boolean,
        nullable=False,
        default=False,
        comment="Whether a usable credential pair is stored"
    )

    design_scopes = Column(
        JSON,
        nullable=True,
        comment="Scopes granted at the last successful authorization"
    )

    subscription = relationship("Subscription", foreign_keys=[subscription_id], lazy="joined")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def has_design_credentials(self) -> bool:
        """Connected and holding an access token."""
        return bool(self.design_connected and self.design_access_token)

    @property
    def granted_scopes(self) -> List[str]:
        return list(self.design_scopes or [])

    def credential_summary(self) -> dict:
        """Connection state safe to expose (no token material)."""
        return {
            "connected": bool(self.design_connected),
            "design_user_id": self.design_user_id,
            "scopes": self.granted_scopes,
        }

    @classmethod
    def cleared_credentials(cls) -> dict:
        """Column values that reset every stored OAuth field."""
        return {
            cls.design_access_token: None,
            cls.design_refresh_token: None,
            cls.design_user_id: None,
            cls.design_connected: False,
            cls.design_scopes: None,
        }
