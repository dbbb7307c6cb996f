"""
Entitlement resolver for template access.

Provides:
- resolve_access(user_id)  -> TemplateAccess
- monthly_view_count(user_id) -> int
- enforce_view_quota(user_id) -> TemplateAccess (raises PermissionDenied)
- usage_summary(user_id)   -> UsageSummary

Only an "active" subscription unlocks a paid tier; trialing, past_due and
every other status resolve to free. Nothing is cached: every call
re-reads the subscription, so an upgrade is visible on the very next call.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from src.entitlements.models import TemplateAccess, UsageSummary, UNLIMITED
from src.entitlements.rules import resolve_plan
from src.models.plan import Plan
from src.models.subscription import Subscription
from src.models.template import TemplateHistory, HistoryAction
from src.models.user import User
from src.platform.errors import NotFound, PermissionDenied

logger = logging.getLogger(__name__)


def current_month_start(now: Optional[datetime] = None) -> datetime:
    """
    First instant of the current month on the server's local clock, in UTC.
    """
    local_now = (now or datetime.now(timezone.utc)).astimezone()
    local_start = local_now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return local_start.astimezone(timezone.utc)


class EntitlementResolver:
    """Resolves plan tier and template view quota for users."""

    def __init__(self, session: Session):
        self.session = session

    def _get_user(self, user_id: str) -> User:
        user = self.session.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound(f"User {user_id} not found")
        return user

    def _subscription_for(self, user: User) -> Optional[Subscription]:
        if not user.subscription_id:
            return None
        return (
            self.session.query(Subscription)
            .filter(Subscription.id == user.subscription_id)
            .populate_existing()
            .first()
        )

    def resolve_access(self, user_id: str) -> TemplateAccess:
        """
        Determine the user's plan tier and template limit.

        Returns:
            TemplateAccess (free: limit 10; paid: unlimited, limit -1)
        """
        user = self._get_user(user_id)
        subscription = self._subscription_for(user)

        if subscription is None or not subscription.is_active:
            return TemplateAccess.free()

        identifier = subscription.plan_name
        candidates = []
        if identifier:
            candidates = (
                self.session.query(Plan)
                .filter(or_(Plan.slug == identifier, Plan.name == identifier))
                .all()
            )

        match = resolve_plan(identifier, candidates)
        if match is None:
            return TemplateAccess.free(has_active_subscription=True)

        logger.debug(
            "Resolved plan for user",
            extra={"user_id": user.id, "plan": match.display_name, "match_source": match.source.value},
        )

        if match.is_unlimited:
            return TemplateAccess.unlimited(match.display_name)
        return TemplateAccess.free(has_active_subscription=True, plan_name=match.display_name)

    def monthly_view_count(self, user_id: str, now: Optional[datetime] = None) -> int:
        """Count of "viewed" history rows since the 1st of this month."""
        return (
            self.session.query(TemplateHistory)
            .filter(
                TemplateHistory.user_id == user_id,
                TemplateHistory.action == HistoryAction.VIEWED.value,
                TemplateHistory.created_at >= current_month_start(now),
            )
            .count()
        )

    def enforce_view_quota(self, user_id: str) -> TemplateAccess:
        """
        Gate for single-template detail reads.

        Raises:
            PermissionDenied: Monthly view limit reached
        """
        access = self.resolve_access(user_id)
        if access.is_unlimited:
            return access

        views = self.monthly_view_count(user_id)
        if views >= access.template_limit:
            logger.info(
                "Monthly template view limit reached",
                extra={"user_id": user_id, "views": views, "limit": access.template_limit},
            )
            raise PermissionDenied(
                "Monthly template view limit reached. Upgrade for unlimited access.",
                details={"template_limit": access.template_limit, "current_month_views": views},
            )
        return access

    def usage_summary(self, user_id: str) -> UsageSummary:
        access = self.resolve_access(user_id)
        views = self.monthly_view_count(user_id)
        remaining = UNLIMITED if access.is_unlimited else max(0, access.template_limit - views)
        return UsageSummary(
            plan_name=access.plan_name,
            template_limit=access.template_limit,
            is_unlimited=access.is_unlimited,
            has_active_subscription=access.has_active_subscription,
            current_month_views=views,
            remaining_views=remaining,
        )
