"""FastAPI application entry point.

Wires together: CORS, middleware, exception handlers, routes, metrics.
Validates config at startup.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from accounts.api import admin_router
from accounts.api import router as accounts_router
from shared.config import settings
from shared.database import dispose_engine
from shared.exceptions import ProblemDetailError
from shared.logging import configure_logging
from shared.metrics import create_metrics_app
from shared.middleware import (
    RequestIdMiddleware,
    http_exception_handler,
    problem_detail_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from sleepdebt.api import router as sleep_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    configure_logging(json_output=settings.is_production)
    logger.info(
        "app_starting",
        environment=settings.environment,
        database_url=settings.database_url.split("@")[-1],  # hide credentials
        default_timezone=settings.default_timezone,
    )
    yield
    await dispose_engine()
    logger.info("app_shutting_down")


app = FastAPI(
    title="Sleep Debt Tracker API",
    description=(
        "Logs sleep intervals per user and reports daily sleep debt: the "
        "shortfall of each calendar day's sleep against the user's goal."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestIdMiddleware)
# Cookies need a concrete origin, not "*"
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

# All errors emit application/problem+json (RFC 9457)
app.add_exception_handler(ProblemDetailError, problem_detail_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(accounts_router)
app.include_router(admin_router)
app.include_router(sleep_router)

metrics_app = create_metrics_app()
app.mount("/metrics", metrics_app)


@app.get("/health")
async def health():
    return {"status": "ok"}
