"""
Stripe webhook endpoint.

SECURITY: Every delivery MUST pass Stripe-Signature verification before it
touches the database.

Processing errors return 500 so Stripe redelivers; duplicates and
unhandled event types are acknowledged with 200.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.api.dependencies import get_billing_webhook_handler
from src.services.billing_webhook_handler import BillingWebhookHandler, construct_webhook_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks/stripe", tags=["webhooks"])


class WebhookResponse(BaseModel):
    """Standard webhook response."""
    received: bool = True
    message: str = "Webhook processed"


@router.post("", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    handler: BillingWebhookHandler = Depends(get_billing_webhook_handler),
):
    body = await request.body()
    event = construct_webhook_event(body, stripe_signature)

    result = handler.handle_event(event)
    if result.error == "processing_error":
        return JSONResponse(
            status_code=500,
            content={"received": False, "message": result.message},
        )

    return WebhookResponse(message=result.message)
