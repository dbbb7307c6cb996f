"""
Email notifications for team-access request decisions.

Requester-supplied text is HTML-escaped before it reaches the body.
Fire-and-forget: a delivery failure is logged and never propagates to
the approval or rejection that triggered it.
"""

import html
import logging
from typing import Optional

from src.models.access_request import AccessRequest
from src.services.email_sender import EmailMessage, EmailSender

logger = logging.getLogger(__name__)


class AccessRequestNotifier:
    """Sends decision emails to the requester snapshot on the request."""

    def __init__(self, sender: EmailSender, app_name: str = "TemplateHub"):
        self.sender = sender
        self.app_name = app_name

    async def notify_approved(self, request: AccessRequest) -> bool:
        subject = f"Your {self.app_name} team access was approved"
        body = (
            f"<p>Hi {html.escape(request.user_name or '')},</p>"
            f"<p>Your request for team access has been approved with the "
            f"<strong>{html.escape(request.team_role or '')}</strong> role. Connect your design-tool "
            f"account from your dashboard to start editing templates.</p>"
        )
        return await self._deliver(request, subject, body, tag="access-approved")

    async def notify_rejected(self, request: AccessRequest) -> bool:
        subject = f"Update on your {self.app_name} team access request"
        notes = f"<p>Notes from the team: {html.escape(request.admin_notes)}</p>" if request.admin_notes else ""
        body = (
            f"<p>Hi {html.escape(request.user_name or '')},</p>"
            f"<p>Your request for team access was not approved at this time.</p>"
            f"{notes}"
        )
        return await self._deliver(request, subject, body, tag="access-rejected")

    async def _deliver(
        self,
        request: AccessRequest,
        subject: str,
        html_body: str,
        tag: Optional[str] = None,
    ) -> bool:
        message = EmailMessage(
            to_email=request.user_email,
            to_name=request.user_name,
            subject=subject,
            html_body=html_body,
            tags=[tag] if tag else None,
        )
        try:
            delivered = await self.sender.send(message)
        except Exception:
            logger.exception(
                "Access request notification failed",
                extra={"request_id": request.id, "status": request.status},
            )
            return False

        if not delivered:
            logger.warning(
                "Access request notification not delivered",
                extra={"request_id": request.id, "status": request.status},
            )
        return delivered
