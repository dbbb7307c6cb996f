"""
API Dependencies module.

Provides shared FastAPI dependencies for route handlers.
"""

from src.api.dependencies.auth import get_current_user_id, require_admin
from src.api.dependencies.services import (
    get_client,
    get_store,
    get_notifier,
    get_catalog_service,
    get_connection_manager,
    get_access_request_service,
    get_billing_webhook_handler,
)

__all__ = [
    "get_current_user_id",
    "require_admin",
    "get_client",
    "get_store",
    "get_notifier",
    "get_catalog_service",
    "get_connection_manager",
    "get_access_request_service",
    "get_billing_webhook_handler",
]
