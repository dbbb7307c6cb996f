"""
Plan resolution rules.

A subscription stores its plan as free text captured at checkout, and the
plan catalog may lag behind it. Resolution walks an explicit, ordered list
of matchers and the first hit wins:

    1. exact slug match (case-sensitive)
    2. exact display-name match (case-sensitive)
    3. free-text fallback: no catalog row, identifier lowercased != "free"

No match at all means the free tier.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from src.models.plan import Plan, FREE_PLAN_SLUG


class MatchSource(str, Enum):
    """Which rule produced a plan match."""
    SLUG = "slug"
    NAME = "name"
    FREE_TEXT = "free_text"


@dataclass(frozen=True)
class PlanMatch:
    """
    Outcome of plan resolution.

    plan is None only for FREE_TEXT matches.
    """

    source: MatchSource
    identifier: str
    plan: Optional[Plan] = None

    @property
    def is_unlimited(self) -> bool:
        if self.plan is not None:
            return self.plan.is_unlimited
        return True

    @property
    def display_name(self) -> str:
        if self.plan is not None:
            return self.plan.name or self.plan.slug
        return self.identifier


PlanMatcher = Callable[[str, Sequence[Plan]], Optional[PlanMatch]]


def match_by_slug(identifier: str, plans: Sequence[Plan]) -> Optional[PlanMatch]:
    for plan in plans:
        if plan.slug == identifier:
            return PlanMatch(MatchSource.SLUG, identifier, plan)
    return None


def match_by_name(identifier: str, plans: Sequence[Plan]) -> Optional[PlanMatch]:
    for plan in plans:
        if plan.name == identifier:
            return PlanMatch(MatchSource.NAME, identifier, plan)
    return None


def match_free_text(identifier: str, plans: Sequence[Plan]) -> Optional[PlanMatch]:
    # Only reached once the catalog matchers missed.
    if identifier.lower() != FREE_PLAN_SLUG:
        return PlanMatch(MatchSource.FREE_TEXT, identifier)
    return None


PLAN_MATCHERS: Sequence[PlanMatcher] = (
    match_by_slug,
    match_by_name,
    match_free_text,
)


def resolve_plan(
    identifier: Optional[str],
    plans: Sequence[Plan],
    matchers: Sequence[PlanMatcher] = PLAN_MATCHERS,
) -> Optional[PlanMatch]:
    """
    Resolve a stored plan identifier against catalog rows.

    Args:
        identifier: Subscription's free-text plan identifier
        plans: Candidate catalog rows
        matchers: Ordered rules; first non-None result wins

    Returns:
        PlanMatch, or None when the identifier maps to the free tier
    """
    if not identifier:
        return None
    for matcher in matchers:
        match = matcher(identifier, plans)
        if match is not None:
            return match
    return None
