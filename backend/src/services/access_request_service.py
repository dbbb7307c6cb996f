"""
Team access request workflow.

Flow:
1. User calls submit() -> creates PENDING request (name/email snapshotted)
2. Admin lists requests via list_requests() / status_counts()
3. Admin calls approve():
   - PENDING -> PROCESSING (status-guarded UPDATE, committed before any
     external call so a concurrent approval sees zero rows)
   - provisioning through the admin's connected design-tool account
   - success: APPROVED, then user.team_access / team_role granted
   - failure: compensating rollback to PENDING, error classified
4. Admin calls reject(): PENDING -> REJECTED, no external call

RULES:
- At most one open (PENDING or PROCESSING) request per user
- team_access is only set after provisioning succeeded
- APPROVED and REJECTED are terminal and never updated again
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.integrations.design_tool.client import DesignToolClient
from src.integrations.design_tool.exceptions import DesignToolError
from src.integrations.design_tool.models import ProvisionedMember
from src.models.access_request import (
    AccessRequest,
    AccessRequestStatus,
    OPEN_STATUSES,
)
from src.models.user import User
from src.platform.errors import (
    ErrorKind,
    MarketplaceError,
    PermissionDenied,
    NotFound,
    InvalidState,
    DuplicatePending,
    AlreadyGranted,
    ApproverNotConnected,
    InternalError,
)
from src.platform.secrets import decrypt_secret, EncryptionError
from src.services.access_notifications import AccessRequestNotifier
from src.services.provider_errors import translate_design_tool_error

logger = logging.getLogger(__name__)

DEFAULT_TEAM_ROLE = "member"

# Provider failures keep their kind only if it is one of these
_SURFACED_PROVISIONING_KINDS = frozenset({
    ErrorKind.UNAUTHORIZED,
    ErrorKind.PERMISSION_DENIED,
    ErrorKind.CONFLICT,
    ErrorKind.VALIDATION,
})


def classify_provisioning_error(error: Exception) -> MarketplaceError:
    """
    Classify a provisioning failure for the caller.

    token expired -> unauthorized, insufficient permission -> permission
    denied, already member -> conflict, malformed request -> validation,
    anything else -> internal. Domain errors raised before the provider
    call (e.g. ApproverNotConnected) pass through unchanged.
    """
    if isinstance(error, DesignToolError):
        translated = translate_design_tool_error(error)
        if translated.kind in _SURFACED_PROVISIONING_KINDS:
            return translated
        return InternalError(f"Provisioning failed: {error.message}")
    if isinstance(error, MarketplaceError):
        return error
    return InternalError("Provisioning failed")


class AccessRequestService:
    """
    Service for the team access request state machine.

    Provisioning goes through the approving admin's design-tool account.
    """

    def __init__(
        self,
        session: Session,
        client: DesignToolClient,
        notifier: Optional[AccessRequestNotifier] = None,
    ):
        self.session = session
        self.client = client
        self.notifier = notifier

    def submit(
        self,
        user_id: str,
        reason: Optional[str] = None,
        business_type: Optional[str] = None,
    ) -> dict:
        """
        Create a PENDING team access request.

        Raises:
            NotFound: User does not exist
            DuplicatePending: An open request already exists
            AlreadyGranted: User already has team access
        """
        user = self._get_user(user_id)

        existing = (
            self.session.query(AccessRequest)
            .filter(
                AccessRequest.user_id == user.id,
                AccessRequest.status.in_(OPEN_STATUSES),
            )
            .first()
        )
        if existing:
            raise DuplicatePending(details={"request_id": existing.id, "status": existing.status})

        if user.team_access:
            raise AlreadyGranted()

        request = AccessRequest(
            user_id=user.id,
            user_name=user.name,
            user_email=user.email,
            status=AccessRequestStatus.PENDING.value,
            request_reason=reason,
            business_type=business_type or user.business_type,
        )
        self.session.add(request)
        try:
            self.session.flush()
        except IntegrityError:
            # Lost a race against a concurrent submit for the same user.
            self.session.rollback()
            raise DuplicatePending()
        self.session.commit()

        logger.info(
            "Team access request submitted",
            extra={"request_id": request.id, "user_id": user.id},
        )

        return request.to_dict()

    async def approve(
        self,
        request_id: str,
        approver_id: str,
        role: str = DEFAULT_TEAM_ROLE,
        notes: Optional[str] = None,
    ) -> dict:
        """
        Approve a PENDING request and provision the user.

        Raises:
            NotFound: Request (or approver) does not exist
            PermissionDenied: Approver is not an admin
            InvalidState: Request is not PENDING
            ApproverNotConnected: Approver has no design-tool connection
            ExternalUnauthorized / PermissionDenied / AlreadyMember /
            ValidationError / InternalError: Provisioning failed (request
            is PENDING again)
        """
        request = self._get_request(request_id)
        approver = self._get_admin(approver_id)
        role = role or DEFAULT_TEAM_ROLE

        self._transition(
            request.id,
            AccessRequestStatus.PENDING,
            {
                AccessRequest.status: AccessRequestStatus.PROCESSING.value,
                AccessRequest.processed_by: approver.id,
                AccessRequest.processed_at: datetime.now(timezone.utc),
            },
        )
        self.session.commit()

        logger.info(
            "Team access request processing",
            extra={"request_id": request.id, "approver_id": approver.id, "role": role},
        )

        try:
            member = await self._provision(approver, request, role)
        except Exception as e:
            self._rollback_processing(request.id)
            classified = classify_provisioning_error(e)
            logger.warning(
                "Team access provisioning failed, request reverted to PENDING",
                extra={
                    "request_id": request.id,
                    "approver_id": approver.id,
                    "error_kind": classified.kind.value,
                    "error": str(e),
                },
            )
            raise classified from e

        self._transition(
            request.id,
            AccessRequestStatus.PROCESSING,
            {
                AccessRequest.status: AccessRequestStatus.APPROVED.value,
                AccessRequest.member_id: member.member_id,
                AccessRequest.team_role: member.role,
                AccessRequest.admin_notes: notes,
            },
        )
        self.session.query(User).filter(User.id == request.user_id).update({
            User.team_access: True,
            User.team_role: member.role,
        })
        self.session.commit()
        self.session.refresh(request)

        logger.info(
            "Team access request approved",
            extra={
                "request_id": request.id,
                "user_id": request.user_id,
                "approver_id": approver.id,
                "member_id": member.member_id,
            },
        )

        if self.notifier:
            await self.notifier.notify_approved(request)

        return request.to_dict()

    async def reject(
        self,
        request_id: str,
        approver_id: str,
        notes: Optional[str] = None,
    ) -> dict:
        """
        Reject a PENDING request. No external call.

        Raises:
            NotFound: Request does not exist
            PermissionDenied: Approver is not an admin
            InvalidState: Request is not PENDING
        """
        request = self._get_request(request_id)
        approver = self._get_admin(approver_id)

        self._transition(
            request.id,
            AccessRequestStatus.PENDING,
            {
                AccessRequest.status: AccessRequestStatus.REJECTED.value,
                AccessRequest.processed_by: approver.id,
                AccessRequest.processed_at: datetime.now(timezone.utc),
                AccessRequest.admin_notes: notes,
            },
        )
        self.session.commit()
        self.session.refresh(request)

        logger.info(
            "Team access request rejected",
            extra={"request_id": request.id, "approver_id": approver.id},
        )

        if self.notifier:
            await self.notifier.notify_rejected(request)

        return request.to_dict()

    def latest_for_user(self, user_id: str) -> Optional[dict]:
        """Most recent request for the user, or None."""
        request = (
            self.session.query(AccessRequest)
            .filter(AccessRequest.user_id == user_id)
            .order_by(AccessRequest.created_at.desc())
            .first()
        )
        return request.to_dict() if request else None

    def list_requests(
        self,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> dict:
        """List requests, newest first, optionally filtered by status."""
        query = self.session.query(AccessRequest)
        if status:
            query = query.filter(AccessRequest.status == status.upper())

        total = query.count()
        requests = (
            query.order_by(AccessRequest.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return {
            "requests": [r.to_dict() for r in requests],
            "total_count": total,
        }

    def status_counts(self) -> dict:
        """Count of requests per status, plus the total."""
        rows = (
            self.session.query(AccessRequest.status, func.count(AccessRequest.id))
            .group_by(AccessRequest.status)
            .all()
        )
        counts = {s.value.lower(): 0 for s in AccessRequestStatus}
        for status, count in rows:
            counts[status.lower()] = count
        counts["total"] = sum(count for _, count in rows)
        return counts

    async def _provision(
        self,
        approver: User,
        request: AccessRequest,
        role: str,
    ) -> ProvisionedMember:
        if not approver.has_design_credentials:
            raise ApproverNotConnected()
        try:
            admin_token = await decrypt_secret(approver.design_access_token)
        except EncryptionError:
            raise ApproverNotConnected("Approver design-tool credentials are unreadable, please reconnect")

        existing = await self.client.find_team_member(admin_token, request.user_email)
        if existing is not None:
            return existing
        return await self.client.provision_member(admin_token, request.user_email, role)

    def _transition(self, request_id: str, expected: AccessRequestStatus, values: dict) -> None:
        """Status-guarded UPDATE; zero rows means someone else moved it first."""
        updated = (
            self.session.query(AccessRequest)
            .filter(
                AccessRequest.id == request_id,
                AccessRequest.status == expected.value,
            )
            .update(values, synchronize_session="fetch")
        )
        if updated == 0:
            current = self.session.query(AccessRequest.status).filter(
                AccessRequest.id == request_id
            ).scalar()
            raise InvalidState(
                f"Request is {current}, expected {expected.value}",
                details={"request_id": request_id, "status": current},
            )

    def _rollback_processing(self, request_id: str) -> None:
        self.session.query(AccessRequest).filter(
            AccessRequest.id == request_id,
            AccessRequest.status == AccessRequestStatus.PROCESSING.value,
        ).update(
            {
                AccessRequest.status: AccessRequestStatus.PENDING.value,
                AccessRequest.processed_by: None,
                AccessRequest.processed_at: None,
            },
            synchronize_session="fetch",
        )
        self.session.commit()

    def _get_request(self, request_id: str) -> AccessRequest:
        request = (
            self.session.query(AccessRequest)
            .filter(AccessRequest.id == request_id)
            .first()
        )
        if not request:
            raise NotFound(f"Access request {request_id} not found")
        return request

    def _get_user(self, user_id: str) -> User:
        user = self.session.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound(f"User {user_id} not found")
        return user

    def _get_admin(self, user_id: str) -> User:
        user = self._get_user(user_id)
        if not user.is_admin:
            raise PermissionDenied("Admin role required")
        return user
