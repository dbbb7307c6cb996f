"""
Template entitlements: plan tier resolution and monthly view quota.

- EntitlementResolver: resolve_access / enforce_view_quota / usage_summary
- resolve_plan: ordered plan matchers (slug -> name -> free text)
"""

from src.entitlements.models import (
    TemplateAccess,
    UsageSummary,
    FREE_TEMPLATE_LIMIT,
    UNLIMITED,
)
from src.entitlements.rules import (
    MatchSource,
    PlanMatch,
    PLAN_MATCHERS,
    resolve_plan,
)
from src.entitlements.service import EntitlementResolver, current_month_start

__all__ = [
    "TemplateAccess",
    "UsageSummary",
    "FREE_TEMPLATE_LIMIT",
    "UNLIMITED",
    "MatchSource",
    "PlanMatch",
    "PLAN_MATCHERS",
    "resolve_plan",
    "EntitlementResolver",
    "current_month_start",
]
