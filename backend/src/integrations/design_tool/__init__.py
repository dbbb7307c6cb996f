"""
Design-tool integration (OAuth provider and template source).

This module provides a client for the design-tool REST API used for
account connection, template import and team access provisioning.
"""

from src.integrations.design_tool.client import DesignToolClient, get_design_tool_client
from src.integrations.design_tool.exceptions import (
    DesignToolError,
    DesignToolAuthenticationError,
    DesignToolPermissionError,
    DesignToolNotFoundError,
    DesignToolBadRequestError,
    DesignToolConflictError,
    DesignToolRateLimitError,
    DesignToolConnectionError,
)
from src.integrations.design_tool.models import (
    TokenSet,
    DesignToolUser,
    ExternalTemplate,
    TemplateListing,
    ProvisionedMember,
)

__all__ = [
    # Client
    "DesignToolClient",
    "get_design_tool_client",
    # Exceptions
    "DesignToolError",
    "DesignToolAuthenticationError",
    "DesignToolPermissionError",
    "DesignToolNotFoundError",
    "DesignToolBadRequestError",
    "DesignToolConflictError",
    "DesignToolRateLimitError",
    "DesignToolConnectionError",
    # Models
    "TokenSet",
    "DesignToolUser",
    "ExternalTemplate",
    "TemplateListing",
    "ProvisionedMember",
]
