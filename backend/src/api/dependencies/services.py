"""
Collaborator dependencies for route handlers.

Each dependency builds (or hands out) one collaborator so tests can swap it
through app.dependency_overrides.
"""

import logging
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.orm import Session

from src.database.session import get_db_session
from src.integrations.design_tool.client import DesignToolClient, get_design_tool_client
from src.platform.errors import ServiceUnavailable
from src.services.access_notifications import AccessRequestNotifier
from src.services.access_request_service import AccessRequestService
from src.services.billing_webhook_handler import BillingWebhookHandler
from src.services.catalog_service import TemplateCatalogService
from src.services.email_sender import get_email_sender
from src.services.oauth_service import OAuthConnectionManager
from src.services.verifier_store import VerifierStore, get_verifier_store

logger = logging.getLogger(__name__)


async def get_client() -> AsyncGenerator[DesignToolClient, None]:
    """Per-request design-tool client, closed after the response."""
    try:
        client = get_design_tool_client()
    except ValueError as e:
        logger.error("Design-tool client not configured", extra={"error": str(e)})
        raise ServiceUnavailable("Design-tool integration not configured")

    try:
        yield client
    finally:
        await client.close()


def get_store() -> VerifierStore:
    return get_verifier_store()


def get_notifier() -> AccessRequestNotifier:
    return AccessRequestNotifier(get_email_sender())


def get_catalog_service(db: Session = Depends(get_db_session)) -> TemplateCatalogService:
    return TemplateCatalogService(db)


def get_connection_manager(
    db: Session = Depends(get_db_session),
    client: DesignToolClient = Depends(get_client),
    store: VerifierStore = Depends(get_store),
) -> OAuthConnectionManager:
    return OAuthConnectionManager(db, client, store)


def get_access_request_service(
    db: Session = Depends(get_db_session),
    client: DesignToolClient = Depends(get_client),
    notifier: AccessRequestNotifier = Depends(get_notifier),
) -> AccessRequestService:
    return AccessRequestService(db, client, notifier=notifier)


def get_billing_webhook_handler(db: Session = Depends(get_db_session)) -> BillingWebhookHandler:
    return BillingWebhookHandler(db)
