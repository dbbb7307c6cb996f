"""
Plan model for subscription tiers.

Plans are static reference data seeded from config/plans.yml.
A plan is unlimited iff its slug is not "free".
"""

from sqlalchemy import Column, String, Text, Integer, Boolean, JSON

from src.models.base import Base, TimestampMixin, generate_uuid

FREE_PLAN_SLUG = "free"


class Plan(Base, TimestampMixin):
    """Pricing tier offered on the marketplace."""

    __tablename__ = "plans"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )

    slug = Column(
        String(50),
        nullable=False,
        unique=True,
        index=True,
        comment="URL-safe identifier (free, pro, monthly_basic)"
    )
    name = Column(
        String(100),
        nullable=False,
        comment="Display name (Free, Pro)"
    )
    description = Column(Text, nullable=True)

    price_cents = Column(
        Integer,
        nullable=False,
        default=0,
        comment="Monthly price in cents (2900 = $29.00)"
    )
    external_price_id = Column(
        String(255),
        nullable=True,
        comment="Payment processor price id"
    )
    is_active = Column(
        Boolean,
        default=True,
        index=True,
        comment="Whether plan is available for new subscriptions"
    )
    features = Column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Plan(slug={self.slug}, price_cents={self.price_cents})>"

    @property
    def is_unlimited(self) -> bool:
        return self.slug != FREE_PLAN_SLUG
