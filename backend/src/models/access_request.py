"""
AccessRequest model for the team-access approval workflow.

Flow:
1. User submits a PENDING request (name/email snapshotted)
2. Admin approves -> PROCESSING while the external account is provisioned
3. Provisioning success -> APPROVED, user.team_access set
4. Provisioning failure -> back to PENDING (compensating rollback)
5. Admin rejects -> REJECTED

RULES:
- At most one PENDING request per user
- APPROVED and REJECTED are terminal and immutable
- Status changes out of PENDING go through status-guarded UPDATEs
"""

import enum
import uuid

from sqlalchemy import Column, String, DateTime, Text, Index, text

from src.db_base import Base
from src.models.base import TimestampMixin


class AccessRequestStatus(str, enum.Enum):
    """Lifecycle status of a team access request."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


OPEN_STATUSES = frozenset({
    AccessRequestStatus.PENDING.value,
    AccessRequestStatus.PROCESSING.value,
})

TERMINAL_STATUSES = frozenset({
    AccessRequestStatus.APPROVED.value,
    AccessRequestStatus.REJECTED.value,
})


class AccessRequest(Base, TimestampMixin):
    """
    One user's request for elevated (team) access.

    - user_id: requester (weak reference, no cascade)
    - user_name / user_email: snapshot at request time
    - processed_by / processed_at: approving or rejecting admin
    - member_id / team_role: recorded after successful provisioning
    """

    __tablename__ = "access_requests"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Internal UUID primary key",
    )

    user_id = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Requesting user id",
    )

    user_name = Column(String(255), nullable=False, comment="Requester name at request time")
    user_email = Column(String(255), nullable=False, comment="Requester email at request time")

    status = Column(
        String(20),
        nullable=False,
        default=AccessRequestStatus.PENDING.value,
        index=True,
        comment="PENDING, PROCESSING, APPROVED or REJECTED",
    )

    processed_by = Column(
        String(255),
        nullable=True,
        index=True,
        comment="Admin user id who processed the request",
    )

    processed_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the request was processed",
    )

    admin_notes = Column(Text, nullable=True)

    member_id = Column(
        String(255),
        nullable=True,
        comment="External team member / approval id after provisioning",
    )

    team_role = Column(String(50), nullable=True, comment="Role provisioned on approval")

    request_reason = Column(Text, nullable=True)
    business_type = Column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_access_requests_user_status", "user_id", "status"),
        Index(
            "uq_access_requests_user_pending",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<AccessRequest(id={self.id}, user={self.user_id}, status={self.status})>"

    @property
    def is_pending(self) -> bool:
        return self.status == AccessRequestStatus.PENDING.value

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "user_email": self.user_email,
            "status": self.status,
            "processed_by": self.processed_by,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "admin_notes": self.admin_notes,
            "member_id": self.member_id,
            "team_role": self.team_role,
            "request_reason": self.request_reason,
            "business_type": self.business_type,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
