"""
FastAPI application for the rental order lifecycle service.

`create_app()` wires middleware, the error envelope, lifecycle hooks and the
/api/v1 routers; the module-level `app` is what uvicorn serves:

    uvicorn rental_api.api.main:app --port 3001
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rental_api.core.errors import DomainError
from rental_api.core.logging import actor_id_var, configure_logging, correlation_id_var
from rental_api.core.settings import AppSettings, get_app_settings
from rental_api.db.run_migrations import main as run_alembic
from rental_api.db.seed import seed_all
from rental_api.db.session import dispose_engine
from rental_api.schemas.common import ErrorInfo, ErrorResponse, HealthResponse
from rental_api.services.notifications import get_dispatcher

from rental_api.api.routes.cron import router as cron_router
from rental_api.api.routes.notifications import router as notifications_router
from rental_api.api.routes.orders import router as orders_router
from rental_api.api.routes.pricing import router as pricing_router, tiers_router as pricing_tiers_router
from rental_api.api.routes.scanning import router as scanning_router, events_router as scan_events_router

logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "Health", "description": "Liveness probe and notification worker state."},
    {"name": "Orders", "description": "Order creation and lifecycle transitions."},
    {"name": "Pricing", "description": "Estimates and the A2/PMG pricing approval workflow."},
    {"name": "Pricing Tiers", "description": "Location and volume based pricing tiers."},
    {"name": "Scanning", "description": "Outbound/inbound scan events and gate progress."},
    {"name": "Scheduler", "description": "Cron-triggered event date transitions and reminders."},
    {"name": "Notifications", "description": "Notification delivery ledger."},
]


def error_response(
    request: Request,
    status_code: int,
    error_type: str,
    message: str,
    details: Any = None,
    retryable: bool = False,
) -> JSONResponse:
    envelope = ErrorResponse(
        status=status_code,
        error=ErrorInfo(type=error_type, message=message, details=details, retryable=retryable),
        correlation_id=getattr(request.state, "correlation_id", None),
        actor_id=actor_id_var.get(),
        path=request.url.path,
        method=request.method,
        timestamp=datetime.now(tz=timezone.utc),
    )
    return JSONResponse(status_code=status_code, content=envelope.model_dump(mode="json"))


async def _handle_domain_error(request: Request, exc: DomainError) -> JSONResponse:
    logger.info("Domain error %s on %s %s: %s", exc.error_type, request.method, request.url.path, exc.message)
    return error_response(request, exc.status_code, exc.error_type, exc.message, exc.details, exc.retryable)


async def _handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, str):
        return error_response(request, exc.status_code, "http_error", exc.detail)
    return error_response(request, exc.status_code, "http_error", "HTTP Error", exc.detail)


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(request, 422, "validation_error", "Request validation failed", exc.errors())


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    # No stack traces in responses; the log has them.
    logger.exception("Unhandled error processing %s %s", request.method, request.url.path)
    return error_response(request, 500, "internal_error", "An unexpected error occurred")


def register_exception_handlers(app: FastAPI) -> None:
    """Every error leaves the service as an ErrorResponse envelope."""
    app.add_exception_handler(DomainError, _handle_domain_error)
    app.add_exception_handler(HTTPException, _handle_http_exception)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(Exception, _handle_unexpected)


async def request_context_middleware(request: Request, call_next):
    """
    Bind a correlation id (taken from X-Correlation-ID / X-Request-ID or
    generated) for logs and error envelopes, and echo it on the response.
    The actor id is filled in by the auth dependency once the token is decoded.
    """
    corr = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or str(uuid4())
    token_corr = correlation_id_var.set(corr)
    token_actor = actor_id_var.set(None)
    request.state.correlation_id = corr

    logger.info("Incoming request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(token_corr)
        actor_id_var.reset(token_actor)

    response.headers["X-Correlation-ID"] = corr
    return response


def _add_cors(app: FastAPI, settings: AppSettings) -> None:
    allow_credentials = settings.CORS_ALLOW_CREDENTIALS
    if settings.CORS_ORIGINS == ["*"] and allow_credentials:
        logger.warning("CORS_ALLOW_CREDENTIALS=True with '*' origins is not permitted; disabling credentials.")
        allow_credentials = False
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=allow_credentials,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )


async def _prepare_database(settings: AppSettings) -> None:
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            logger.info("Running Alembic migrations: upgrade head")
            # env.py drives its own event loop, so keep it off this one.
            await asyncio.to_thread(run_alembic, ["upgrade", "head"])
            logger.info("Migrations completed.")
        except Exception:
            # A database that is still coming up must not keep the API down; readiness is retried.
            logger.exception("Migration step failed")

    if settings.AUTO_SEED:
        try:
            await seed_all()
        except Exception:
            logger.exception("Seeding step failed")


def build_api_router(settings: AppSettings) -> APIRouter:
    api_v1 = APIRouter(prefix="/api/v1")

    # PUBLIC_INTERFACE
    @api_v1.get("/health", response_model=HealthResponse, summary="Health Check", tags=["Health"])
    async def health_check() -> HealthResponse:
        """Liveness probe; also reports whether queued notifications are being sent."""
        dispatcher = get_dispatcher()
        return HealthResponse(
            version=settings.APP_VERSION,
            environment=settings.ENVIRONMENT,
            notification_worker_running=dispatcher.is_running,
            notifications_queued=dispatcher.queue.qsize(),
        )

    for router in (
        orders_router,
        pricing_router,
        pricing_tiers_router,
        scanning_router,
        scan_events_router,
        cron_router,
        notifications_router,
    ):
        api_v1.include_router(router)
    return api_v1


# PUBLIC_INTERFACE
def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Build the FastAPI application."""
    settings = settings or get_app_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        description=settings.APP_DESCRIPTION,
        version=settings.APP_VERSION,
        openapi_tags=OPENAPI_TAGS,
    )
    _add_cors(app, settings)
    app.middleware("http")(request_context_middleware)
    register_exception_handlers(app)

    @app.on_event("startup")
    async def on_startup() -> None:
        await _prepare_database(settings)
        if settings.START_NOTIFICATION_WORKER:
            get_dispatcher().start()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        # Queued notifications get a bounded chance to go out first.
        await get_dispatcher().stop()
        await dispose_engine()

    app.include_router(build_api_router(settings))
    return app


app = create_app()
