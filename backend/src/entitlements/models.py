"""
Entitlement types for template access.

- TemplateAccess: resolved plan tier and monthly template view quota
- UsageSummary: TemplateAccess plus this month's consumption

A template_limit of -1 means unlimited.
"""

from dataclasses import dataclass, asdict

FREE_TEMPLATE_LIMIT = 10
UNLIMITED = -1
FREE_PLAN_NAME = "free"


@dataclass(frozen=True)
class TemplateAccess:
    """Resolved template entitlement for a user."""

    is_unlimited: bool
    template_limit: int
    plan_name: str
    has_active_subscription: bool

    @classmethod
    def free(cls, has_active_subscription: bool = False, plan_name: str = FREE_PLAN_NAME) -> "TemplateAccess":
        return cls(
            is_unlimited=False,
            template_limit=FREE_TEMPLATE_LIMIT,
            plan_name=plan_name,
            has_active_subscription=has_active_subscription,
        )

    @classmethod
    def unlimited(cls, plan_name: str) -> "TemplateAccess":
        return cls(
            is_unlimited=True,
            template_limit=UNLIMITED,
            plan_name=plan_name,
            has_active_subscription=True,
        )

    def cap(self, requested: int) -> int:
        """Clamp a list size to the quota (never blocks, only truncates)."""
        if self.is_unlimited:
            return requested
        return min(requested, self.template_limit)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class UsageSummary:
    """Plan, quota and consumption for the current month."""

    plan_name: str
    template_limit: int
    is_unlimited: bool
    has_active_subscription: bool
    current_month_views: int
    remaining_views: int

    def to_dict(self) -> dict:
        return asdict(self)
