"""
ProcessedBillingEvent model for tracking handled payment-processor webhooks.

Used for idempotency - ensures each Stripe event is applied exactly once.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, func

from src.db_base import Base


class ProcessedBillingEvent(Base):
    """
    Tracks processed billing webhook events for deduplication.

    Stripe may deliver an event multiple times. This table ensures
    each unique event id mutates the Subscription mirror once.
    """

    __tablename__ = "processed_billing_events"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Primary key (UUID)"
    )

    external_event_id = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Stripe event id (evt_...)"
    )

    event_type = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Event type (e.g., invoice.payment_failed)"
    )

    processed_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        comment="When the event was processed"
    )

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="When the record was created"
    )

    def __repr__(self) -> str:
        return f"<ProcessedBillingEvent(event_id={self.external_event_id}, type={self.event_type})>"
