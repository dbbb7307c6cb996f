# API routes
from src.api.routes import templates
from src.api.routes import admin_templates
from src.api.routes import design_tool_oauth
from src.api.routes import access_requests
from src.api.routes import billing_webhooks
from src.api.routes import content_items

__all__ = [
    "templates",
    "admin_templates",
    "design_tool_oauth",
    "access_requests",
    "billing_webhooks",
    "content_items",
]
