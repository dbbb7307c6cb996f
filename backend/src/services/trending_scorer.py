"""
Trending score computation for catalog entities.

score = weighted_sum(counters) * recency_weight
recency_weight = max(0, 30 - age_days) / 30, clamped to [0, 1]

Each catalog kind keeps its own weight vector and threshold:
- Content items: usage 0.4 / download 0.4 / view 0.2, trending above 10
- Templates:     edit 0.5 / bookmark 0.3 / view 0.2, trending above 15

Everything here is pure given (counters, created_at, now). The SQLAlchemy
listeners in src.models.template and src.models.content_item call
apply_trending() right before every INSERT/UPDATE.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

RECENCY_WINDOW_DAYS = 30
SECONDS_PER_DAY = 60 * 60 * 24


@dataclass(frozen=True)
class TrendingWeights:
    """Weight per counter attribute plus the trending threshold."""
    weights: Mapping[str, float]
    threshold: float


@dataclass(frozen=True)
class TrendingScore:
    score: float
    is_trending: bool


CONTENT_ITEM_WEIGHTS = TrendingWeights(
    weights={"usage_count": 0.4, "download_count": 0.4, "view_count": 0.2},
    threshold=10.0,
)

TEMPLATE_WEIGHTS = TrendingWeights(
    weights={"edit_count": 0.5, "bookmark_count": 0.3, "view_count": 0.2},
    threshold=15.0,
)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def age_in_days(created_at: Optional[datetime], now: datetime) -> float:
    """Fractional days between creation and now; unsaved rows are age 0."""
    if created_at is None:
        return 0.0
    delta = _as_utc(now) - _as_utc(created_at)
    return delta.total_seconds() / SECONDS_PER_DAY


def recency_weight(age_days: float) -> float:
    """Linear decay to 0 at 30 days; clock skew never pushes it above 1."""
    weight = max(0.0, RECENCY_WINDOW_DAYS - age_days) / RECENCY_WINDOW_DAYS
    return min(1.0, weight)


def compute_score(
    counters: Mapping[str, Optional[int]],
    weights: TrendingWeights,
    age_days: float,
) -> TrendingScore:
    """Weighted engagement times recency; missing counters count as 0."""
    weighted = sum(
        (counters.get(name) or 0) * weight
        for name, weight in weights.weights.items()
    )
    score = weighted * recency_weight(age_days)
    return TrendingScore(score=score, is_trending=score > weights.threshold)


def apply_trending(
    entity: Any,
    weights: TrendingWeights,
    now: Optional[datetime] = None,
) -> TrendingScore:
    """
    Recompute trending_score / is_trending on a catalog entity in place.

    Args:
        entity: Template or ContentItem (any object exposing the counters)
        weights: Weight vector for the entity kind
        now: Reference time (defaults to current UTC time)

    Returns:
        The computed TrendingScore
    """
    now = now or datetime.now(timezone.utc)
    counters = {name: getattr(entity, name, 0) for name in weights.weights}
    result = compute_score(counters, weights, age_in_days(entity.created_at, now))
    entity.trending_score = result.score
    entity.is_trending = result.is_trending
    return result


def score_content_item(
    usage_count: Optional[int],
    download_count: Optional[int],
    view_count: Optional[int],
    created_at: Optional[datetime],
    now: datetime,
) -> TrendingScore:
    counters = {
        "usage_count": usage_count,
        "download_count": download_count,
        "view_count": view_count,
    }
    return compute_score(counters, CONTENT_ITEM_WEIGHTS, age_in_days(created_at, now))


def score_template(
    edit_count: Optional[int],
    bookmark_count: Optional[int],
    view_count: Optional[int],
    created_at: Optional[datetime],
    now: datetime,
) -> TrendingScore:
    counters = {
        "edit_count": edit_count,
        "bookmark_count": bookmark_count,
        "view_count": view_count,
    }
    return compute_score(counters, TEMPLATE_WEIGHTS, age_in_days(created_at, now))
