"""
Billing webhook handler with idempotency support.

Keeps the Subscription mirror in sync with Stripe events:
- checkout.session.completed      -> upsert subscription, link it to the user
- customer.subscription.updated   -> status, period end, cancellation fields
- customer.subscription.deleted   -> canceled
- invoice.payment_failed          -> past_due + failure reason
- invoice.payment_succeeded       -> active, failure fields cleared

Each Stripe event id is applied at most once (ProcessedBillingEvent).
Entitlements read only status and plan_name from the mirror.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import stripe
from sqlalchemy.orm import Session

from src.models.billing_event import ProcessedBillingEvent
from src.models.subscription import Subscription, SubscriptionStatus
from src.models.user import User
from src.platform.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PLAN_NAME = "monthly_basic"
DEFAULT_FAILURE_REASON = "Payment failed"

SubscriptionFetcher = Callable[[str], Mapping[str, Any]]


@dataclass
class WebhookProcessingResult:
    """Result of webhook processing."""
    processed: bool
    message: str
    subscription_id: Optional[str] = None
    skipped_reason: Optional[str] = None
    error: Optional[str] = None


def _to_datetime(timestamp: Optional[int]) -> Optional[datetime]:
    if not timestamp:
        return None
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc)


def retrieve_stripe_subscription(subscription_id: str) -> Mapping[str, Any]:
    """Fetch a subscription from Stripe (used for checkout completion)."""
    return stripe.Subscription.retrieve(
        subscription_id,
        api_key=os.getenv("STRIPE_SECRET_KEY"),
    )


def construct_webhook_event(
    payload: bytes,
    signature: Optional[str],
    webhook_secret: Optional[str] = None,
) -> Mapping[str, Any]:
    """
    Verify the Stripe-Signature header and parse the event.

    Raises:
        ValidationError: Missing secret/signature, bad payload or bad signature
    """
    secret = webhook_secret or os.getenv("STRIPE_WEBHOOK_SECRET")
    if not secret:
        raise ValidationError("STRIPE_WEBHOOK_SECRET not configured")
    if not signature:
        raise ValidationError("Missing Stripe-Signature header")

    try:
        return stripe.Webhook.construct_event(payload, signature, secret)
    except ValueError as e:
        raise ValidationError(f"Invalid webhook payload: {e}")
    except stripe.SignatureVerificationError as e:
        raise ValidationError(f"Invalid webhook signature: {e}")


class BillingWebhookHandler:
    """
    Handler for Stripe billing webhooks with idempotency.

    Ensures each event is processed exactly once using the Stripe event id.
    """

    def __init__(
        self,
        db_session: Session,
        subscription_fetcher: SubscriptionFetcher = retrieve_stripe_subscription,
    ):
        """
        Initialize webhook handler.

        Args:
            db_session: Database session
            subscription_fetcher: Loads a Stripe subscription by id
        """
        self.db = db_session
        self.fetch_subscription = subscription_fetcher
        self._handlers: Dict[str, Callable[[Mapping[str, Any]], WebhookProcessingResult]] = {
            "checkout.session.completed": self._handle_checkout_completed,
            "customer.subscription.updated": self._handle_subscription_updated,
            "customer.subscription.deleted": self._handle_subscription_deleted,
            "invoice.payment_failed": self._handle_payment_failed,
            "invoice.payment_succeeded": self._handle_payment_succeeded,
        }

    def _is_duplicate(self, event_id: str) -> bool:
        existing = self.db.query(ProcessedBillingEvent).filter(
            ProcessedBillingEvent.external_event_id == event_id
        ).first()
        return existing is not None

    def _record_event(self, event_id: str, event_type: str) -> None:
        self.db.add(ProcessedBillingEvent(
            external_event_id=event_id,
            event_type=event_type,
            processed_at=datetime.now(timezone.utc),
        ))

    def handle_event(self, event: Mapping[str, Any]) -> WebhookProcessingResult:
        """
        Apply a verified Stripe event to the Subscription mirror.

        Unknown event types are recorded and acknowledged. On a processing
        error nothing is recorded, so a redelivery is applied again.
        """
        event_id = event["id"]
        event_type = event["type"]

        if self._is_duplicate(event_id):
            logger.info("Duplicate billing webhook skipped", extra={
                "event_id": event_id,
                "event_type": event_type,
            })
            return WebhookProcessingResult(
                processed=False,
                message="Duplicate webhook - already processed",
                skipped_reason="duplicate",
            )

        handler = self._handlers.get(event_type)
        data_object = event["data"]["object"]

        try:
            if handler is None:
                result = WebhookProcessingResult(
                    processed=False,
                    message=f"Unhandled event type: {event_type}",
                    skipped_reason="unhandled_event_type",
                )
            else:
                result = handler(data_object)

            self._record_event(event_id, event_type)
            self.db.commit()
        except Exception as e:
            logger.error("Error processing billing webhook", extra={
                "event_id": event_id,
                "event_type": event_type,
                "error": str(e),
            })
            self.db.rollback()
            return WebhookProcessingResult(
                processed=False,
                message=f"Processing error: {e}",
                error="processing_error",
            )

        logger.info("Billing webhook processed", extra={
            "event_id": event_id,
            "event_type": event_type,
            "processed": result.processed,
            "subscription_id": result.subscription_id,
        })
        return result

    def _find_subscription(self, external_subscription_id: Optional[str]) -> Optional[Subscription]:
        if not external_subscription_id:
            return None
        return self.db.query(Subscription).filter(
            Subscription.external_subscription_id == external_subscription_id
        ).first()

    def _not_found(self, external_subscription_id: Optional[str]) -> WebhookProcessingResult:
        logger.warning("Subscription not found for billing webhook", extra={
            "external_subscription_id": external_subscription_id,
        })
        return WebhookProcessingResult(
            processed=False,
            message="Subscription not found",
            skipped_reason="subscription_not_found",
        )

    def _handle_checkout_completed(self, session: Mapping[str, Any]) -> WebhookProcessingResult:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("userId") or metadata.get("user_id")
        external_subscription_id = session.get("subscription")

        if not external_subscription_id:
            return WebhookProcessingResult(
                processed=False,
                message="Checkout session has no subscription",
                skipped_reason="no_subscription",
            )
        if not user_id:
            logger.warning("Checkout session missing user id metadata", extra={
                "external_subscription_id": external_subscription_id,
            })
            return WebhookProcessingResult(
                processed=False,
                message="Missing user id in checkout metadata",
                error="missing_user_id",
            )

        stripe_sub = self.fetch_subscription(external_subscription_id)
        items = (stripe_sub.get("items") or {}).get("data") or []
        first_item = items[0] if items else {}
        price = first_item.get("price") or {}

        values = {
            "user_id": user_id,
            "external_customer_id": session.get("customer") or stripe_sub.get("customer"),
            "status": stripe_sub.get("status", SubscriptionStatus.INCOMPLETE.value),
            "plan_name": price.get("nickname") or DEFAULT_PLAN_NAME,
            "start_date": _to_datetime(stripe_sub.get("start_date")),
            "current_period_end": _to_datetime(
                stripe_sub.get("current_period_end") or first_item.get("current_period_end")
            ),
            "cancel_at_period_end": bool(stripe_sub.get("cancel_at_period_end")),
        }

        subscription = self._find_subscription(external_subscription_id)
        if subscription is None:
            subscription = Subscription(external_subscription_id=external_subscription_id, **values)
            self.db.add(subscription)
        else:
            for key, value in values.items():
                setattr(subscription, key, value)
        self.db.flush()

        self.db.query(User).filter(User.id == user_id).update(
            {User.subscription_id: subscription.id}
        )

        return WebhookProcessingResult(
            processed=True,
            message="Subscription created from checkout",
            subscription_id=subscription.id,
        )

    def _handle_subscription_updated(self, stripe_sub: Mapping[str, Any]) -> WebhookProcessingResult:
        subscription = self._find_subscription(stripe_sub.get("id"))
        if subscription is None:
            return self._not_found(stripe_sub.get("id"))

        items = (stripe_sub.get("items") or {}).get("data") or []
        first_item = items[0] if items else {}

        subscription.status = stripe_sub.get("status", subscription.status)
        subscription.cancel_at_period_end = bool(stripe_sub.get("cancel_at_period_end"))
        subscription.current_period_end = _to_datetime(
            stripe_sub.get("current_period_end") or first_item.get("current_period_end")
        )
        subscription.canceled_at = _to_datetime(stripe_sub.get("canceled_at"))
        subscription.end_date = _to_datetime(stripe_sub.get("ended_at"))

        return WebhookProcessingResult(
            processed=True,
            message=f"Subscription status is {subscription.status}",
            subscription_id=subscription.id,
        )

    def _handle_subscription_deleted(self, stripe_sub: Mapping[str, Any]) -> WebhookProcessingResult:
        subscription = self._find_subscription(stripe_sub.get("id"))
        if subscription is None:
            return self._not_found(stripe_sub.get("id"))

        now = datetime.now(timezone.utc)
        subscription.status = SubscriptionStatus.CANCELED.value
        subscription.canceled_at = now
        subscription.end_date = now

        return WebhookProcessingResult(
            processed=True,
            message="Subscription canceled",
            subscription_id=subscription.id,
        )

    def _handle_payment_failed(self, invoice: Mapping[str, Any]) -> WebhookProcessingResult:
        subscription = self._find_subscription(invoice.get("subscription"))
        if subscription is None:
            return self._not_found(invoice.get("subscription"))

        last_error = invoice.get("last_payment_error") or {}
        subscription.status = SubscriptionStatus.PAST_DUE.value
        subscription.last_payment_failure = datetime.now(timezone.utc)
        subscription.payment_failure_reason = last_error.get("message") or DEFAULT_FAILURE_REASON

        return WebhookProcessingResult(
            processed=True,
            message="Subscription marked past_due",
            subscription_id=subscription.id,
        )

    def _handle_payment_succeeded(self, invoice: Mapping[str, Any]) -> WebhookProcessingResult:
        subscription = self._find_subscription(invoice.get("subscription"))
        if subscription is None:
            return self._not_found(invoice.get("subscription"))

        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.last_payment_success = datetime.now(timezone.utc)
        subscription.last_payment_failure = None
        subscription.payment_failure_reason = None

        return WebhookProcessingResult(
            processed=True,
            message="Subscription payment succeeded",
            subscription_id=subscription.id,
        )
