"""
FastAPI application factory.

* Registers one router per back-office resource under ``/api``.
* Starts / stops the daily notification worker via lifespan events.
* Maps domain errors to ``{"detail", "code"}`` JSON responses.
* Applies rate-limiting middleware and CORS for the dashboard.
* Serves uploaded files from ``/uploads``.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from backoffice.api.middleware import limiter
from backoffice.api.routes import (
    admin,
    audit,
    auth,
    availability,
    bookings,
    branches,
    cars,
    customers,
    expenses,
    incidents,
    integrations,
    maintenance,
    notifications,
    reports,
    settings as settings_routes,
    users,
)
from backoffice.config import settings
from backoffice.domain.errors import DomainError
from backoffice.infrastructure.redis_client import close_redis
from backoffice.infrastructure.storage import URL_PREFIX, upload_root
from backoffice.workers import notifier as _notifier

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the notification worker on startup; stop on shutdown."""
    if settings.scheduler_enabled:
        await _notifier.start_notification_loop()
    yield
    await _notifier.stop_notification_loop()
    await close_redis()


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "code": "internal_error"},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Car Rental Back-Office API",
        description=(
            "Fleet, bookings, customers, incidents, maintenance and expenses "
            "for a car-rental agency.  Bookings are conflict-checked against "
            "occupying bookings and maintenance windows per car."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Error mapping
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    for module in (
        auth,
        users,
        cars,
        availability,
        bookings,
        maintenance,
        incidents,
        customers,
        expenses,
        branches,
        reports,
        notifications,
        settings_routes,
        audit,
        integrations,
        admin,
    ):
        app.include_router(module.router, prefix="/api")

    upload_root().mkdir(parents=True, exist_ok=True)
    app.mount(URL_PREFIX, StaticFiles(directory=upload_root()), name="uploads")

    return app
