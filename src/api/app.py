"""
FastAPI application factory.

* Registers routes for rides, recurring series, staff and admin.
* Maps ``DispatchError`` subclasses onto HTTP status codes.
* Starts / stops the stale-ride monitor via lifespan events.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.middleware import limiter
from src.api.routes import admin, recurring, rides, staff
from src.domain.errors import (
    AuthorizationFailure,
    DispatchError,
    NotFound,
    PreconditionFailure,
    ValidationError,
)
from src.infrastructure.redis_client import close_redis
from src.workers import stale_monitor as _stale_monitor

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_ERROR_STATUS: list[tuple[type[DispatchError], int]] = [
    (ValidationError, 400),
    (AuthorizationFailure, 403),
    (NotFound, 404),
    (PreconditionFailure, 409),
]


async def _dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    status = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 400)
    logger.info("%s %s -> %d %s", request.method, request.url.path, status, exc.code)
    return JSONResponse(
        status_code=status, content={"detail": exc.message, "code": exc.code}
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the stale-ride monitor on startup; stop it and drop Redis connections on shutdown."""
    await _stale_monitor.start_stale_monitor()
    yield
    await _stale_monitor.stop_stale_monitor()
    await close_redis()


def create_app() -> FastAPI:
    app = FastAPI(
        title="RideOps Campus Dispatch API",
        description=(
            "Campus paratransit dispatch: riders request rides, office staff "
            "approve and oversee, drivers claim and run them through a fixed "
            "lifecycle with a consecutive no-show policy."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(DispatchError, _dispatch_error_handler)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(recurring.router, prefix="/api/v1")
    app.include_router(staff.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
