"""
Database models for the template marketplace.

Importing this package registers every table on Base.metadata.
"""

from src.models.base import TimestampMixin
from src.models.subscription import Subscription, SubscriptionStatus
from src.models.user import User, UserRole
from src.models.plan import Plan, FREE_PLAN_SLUG
from src.models.access_request import AccessRequest, AccessRequestStatus
from src.models.template import (
    Template,
    TemplateHistory,
    TemplateBookmark,
    ContentType,
    HistoryAction,
)
from src.models.content_item import ContentItem
from src.models.billing_event import ProcessedBillingEvent

__all__ = [
    "TimestampMixin",
    "Subscription",
    "SubscriptionStatus",
    "User",
    "UserRole",
    "Plan",
    "FREE_PLAN_SLUG",
    "AccessRequest",
    "AccessRequestStatus",
    "Template",
    "TemplateHistory",
    "TemplateBookmark",
    "ContentType",
    "HistoryAction",
    "ContentItem",
    "ProcessedBillingEvent",
]
