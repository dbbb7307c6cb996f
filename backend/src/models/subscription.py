"""
Subscription model mirroring payment-processor state.

The billing webhook handler owns every write to this table.
The entitlement resolver only reads `status` and `plan_name`.
"""

import enum

from sqlalchemy import Column, String, Boolean, DateTime, Text, Index

from src.models.base import Base, TimestampMixin, generate_uuid


class SubscriptionStatus(str, enum.Enum):
    """Subscription status values as reported by the payment processor."""
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"


class Subscription(Base, TimestampMixin):
    """
    Mirror of an external billing subscription.

    Only status == "active" grants paid entitlements; trialing, past_due and
    every other status are treated as no access.
    """

    __tablename__ = "subscriptions"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )

    user_id = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Owning user id (weak reference)"
    )

    external_customer_id = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Payment processor customer id"
    )

    external_subscription_id = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Payment processor subscription id"
    )

    plan_name = Column(
        String(100),
        nullable=True,
        index=True,
        comment="Free-text plan identifier captured at checkout"
    )

    status = Column(
        String(30),
        nullable=False,
        default=SubscriptionStatus.INCOMPLETE.value,
        index=True,
        comment="Payment processor subscription status"
    )

    start_date = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)

    last_payment_success = Column(DateTime(timezone=True), nullable=True)
    last_payment_failure = Column(DateTime(timezone=True), nullable=True)
    payment_failure_reason = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_subscriptions_plan_status", "plan_name", "status"),
        Index("ix_subscriptions_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, user_id={self.user_id}, status={self.status})>"

    @property
    def is_active(self) -> bool:
        """Only an active subscription allows paid access."""
        return self.status == SubscriptionStatus.ACTIVE.value
