"""FastAPI application entry point and lifecycle management."""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from subscription_manager.exceptions import SubscriptionManagerError
from subscription_manager.logging_config import configure_logging, get_logger
from subscription_manager.middleware import ContextMiddleware, RequestLoggingMiddleware

VERSION = "0.1.0"

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Handles startup and shutdown events.
    """
    from subscription_manager.config import get_config
    from subscription_manager.services.notification_service import reset_notification_service

    logger.info("subscription_manager_starting", version=VERSION)
    try:
        config = get_config()
        logger.info(
            "subscription_manager_started",
            config_path=str(config.config_path),
            processor_configured=config.stripe_secret_key is not None,
            webhook_secret_configured=config.stripe_webhook_secret is not None,
            notifications_enabled=config.notifications.enabled,
        )
        yield
    finally:
        logger.info("subscription_manager_shutting_down")
        # Drain queued notices before exit
        reset_notification_service()
        logger.info("subscription_manager_stopped")


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    log_level = os.getenv("LOG_LEVEL", "INFO")
    json_format = os.getenv("LOG_FORMAT", "json").lower() == "json"
    configure_logging(log_level=log_level, json_format=json_format)

    app = FastAPI(
        title="Subscription Manager",
        description="Subscription lifecycle service backed by Stripe",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    include_request_details = os.getenv("LOG_REQUEST_DETAILS", "true").lower() == "true"
    app.add_middleware(RequestLoggingMiddleware, include_request_details=include_request_details)
    app.add_middleware(ContextMiddleware)

    from subscription_manager.api.plans import router as plans_router
    from subscription_manager.api.subscriptions import router as subscriptions_router
    from subscription_manager.api.users import router as users_router
    from subscription_manager.api.webhook import router as webhook_router

    app.include_router(subscriptions_router)
    app.include_router(webhook_router)
    app.include_router(plans_router)
    app.include_router(users_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Health check endpoint."""
        logger.debug("root_endpoint_called")
        return {
            "service": "subscription-manager",
            "status": "running",
            "version": VERSION,
        }

    @app.get("/health")
    def health() -> dict[str, str]:
        """Detailed health check."""
        from subscription_manager.config import get_config
        from subscription_manager.repositories.event_store import get_event_store
        from subscription_manager.repositories.subscription_store import get_subscription_store

        config = get_config()
        return {
            "status": "healthy",
            "processor": "configured" if config.stripe_secret_key else "missing_api_key",
            "webhooks": "configured" if config.stripe_webhook_secret else "missing_secret",
            "subscriptions": str(get_subscription_store().count()),
            "processed_events": str(get_event_store().count()),
        }

    @app.exception_handler(SubscriptionManagerError)
    async def subscription_error_handler(request: Request, exc: SubscriptionManagerError) -> JSONResponse:
        """Map domain errors to their HTTP status."""
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "request_error",
            error=exc.error_code,
            message=str(exc),
            status_code=exc.status_code,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.error_code, "message": str(exc)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning("request_validation_failed", path=request.url.path, errors=len(exc.errors()))
        return JSONResponse(
            status_code=400,
            content={
                "error": "validation_error",
                "message": "; ".join(
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
                ),
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    logger.info("app_created", endpoints=len(app.routes))
    return app


app = create_app()
