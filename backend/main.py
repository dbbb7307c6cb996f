"""
FastAPI application entry point for TemplateHub.

BearerAuthMiddleware verifies the session token and leaves the caller on
request.state.user_id for the route dependencies. Domain errors are mapped to HTTP responses by
src.api.errors.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from src.api.errors import register_error_handlers
from src.api.routes import templates
from src.api.routes import admin_templates
from src.api.routes import design_tool_oauth
from src.api.routes import access_requests
from src.api.routes import billing_webhooks
from src.api.routes import content_items
from src.auth.middleware import BearerAuthMiddleware
from src.config.plan_catalog import seed_plans
from src.database.session import get_db_session_sync, init_db

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting TemplateHub API")

    integration_vars = ["DESIGN_TOOL_CLIENT_ID", "DESIGN_TOOL_CLIENT_SECRET", "ENCRYPTION_KEY"]
    missing_vars = [var for var in integration_vars if not os.getenv(var)]
    app.state.design_tool_configured = len(missing_vars) == 0
    if missing_vars:
        logger.warning(
            f"Design-tool integration not configured (missing: {missing_vars}). "
            "Connection and approval endpoints will return 503."
        )

    if not os.getenv("AUTH_JWT_SECRET"):
        logger.warning("AUTH_JWT_SECRET not set; bearer tokens will be rejected")

    if not os.getenv("STRIPE_WEBHOOK_SECRET"):
        logger.warning("STRIPE_WEBHOOK_SECRET not set; billing webhooks will be rejected")

    app.state.database_configured = False
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        logger.error("DATABASE_URL is not set. All endpoints will return 503.")
    else:
        masked = database_url.split("@")[-1] if "@" in database_url else database_url.split("://")[0]
        logger.info("DATABASE_URL configured", extra={"host_db": masked})
        try:
            init_db()
            for db in get_db_session_sync():
                plans = seed_plans(db)
            app.state.database_configured = True
            logger.info("Plan catalog seeded", extra={"plan_count": len(plans)})
        except Exception as e:
            logger.exception("Database initialization failed", extra={"error": str(e)})

    yield

    logger.info("Shutting down TemplateHub API")


app = FastAPI(
    title="TemplateHub API",
    description="Design-template marketplace with plan-based access and team provisioning",
    version="1.0.0",
    lifespan=lifespan
)

# Registered before CORS: the last middleware added runs outermost
app.add_middleware(BearerAuthMiddleware)

cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(templates.router)
app.include_router(admin_templates.router)
app.include_router(design_tool_oauth.router)
app.include_router(access_requests.router)
app.include_router(billing_webhooks.router)
app.include_router(content_items.router)


@app.get("/health", tags=["health"])
async def health(request: Request):
    return {
        "status": "ok",
        "database_configured": getattr(request.app.state, "database_configured", False),
        "design_tool_configured": getattr(request.app.state, "design_tool_configured", False),
    }


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with proper logging."""
    logger.error(
        "Unhandled exception",
        extra={
            "user_id": getattr(request.state, "user_id", None),
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development"
    )
