"""FastAPI middleware for request ID injection and error handling."""

from collections.abc import Callable
from contextvars import ContextVar
from uuid import uuid4

import structlog
from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from shared.exceptions import ProblemDetailError, problem_type

logger = structlog.get_logger()

PROBLEM_JSON = "application/problem+json"

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Inject a unique request ID into every request and response.

    Header name: X-Request-ID. Default format: UUID v4.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Callable[..., Response]]
    ):
        rid = request.headers.get("X-Request-ID", str(uuid4()))
        request_id_var.set(rid)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=rid)

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = rid
            return response
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "user_id")


def _problem(request: Request, status: int, body: dict) -> JSONResponse:
    body["status"] = status
    body["instance"] = str(request.url.path)
    return JSONResponse(status_code=status, content=body, media_type=PROBLEM_JSON)


async def problem_detail_handler(request: Request, exc: ProblemDetailError) -> JSONResponse:
    """Convert ProblemDetailError exceptions into RFC 9457 responses."""
    body: dict = {
        "type": exc.type_uri,
        "title": exc.title,
        "detail": exc.detail,
    }
    if exc.violations:
        body["violations"] = exc.violations
    if exc.status >= 500:
        logger.error("request_failed", status=exc.status, detail=exc.detail)
    return _problem(request, exc.status, body)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Convert FastAPI/Pydantic native validation errors into RFC 9457 format.

    All 422 errors use application/problem+json with a violations array,
    not FastAPI's default {detail: [...]}.
    """
    violations = []
    for err in exc.errors():
        loc = err.get("loc", ())
        field = ".".join(str(part) for part in loc if part not in ("body", "query", "path"))
        violations.append(
            {
                "field": field or "(root)",
                "message": err.get("msg", "Validation error"),
                "constraint": err.get("type", "validation"),
            }
        )

    body = {
        "type": problem_type("validation-error"),
        "title": "Validation Error",
        "detail": f"Request contains {len(violations)} validation error(s)",
        "violations": violations,
    }
    return _problem(request, 422, body)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Convert generic HTTP exceptions (404 route, 405 method) into RFC 9457 format."""
    body = {
        "type": "about:blank",
        "title": exc.detail if isinstance(exc.detail, str) else "Error",
        "detail": exc.detail if isinstance(exc.detail, str) else str(exc.detail),
    }
    return _problem(request, exc.status_code, body)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: log with traceback, answer with an opaque 500."""
    logger.exception("unhandled_exception", path=str(request.url.path))
    body = {
        "type": problem_type("internal-error"),
        "title": "Internal Server Error",
        "detail": "An unexpected error occurred.",
    }
    return _problem(request, 500, body)
