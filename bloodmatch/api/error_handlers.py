"""Error Handlers — map BloodMatchError and friends onto JSON error bodies.

Invariants:
    - Every error body has the shape {"error": {code, message, category, severity, ...}}
    - The error code is the client contract (BANNED, DONOR_UNAVAILABLE, ...)
    - Guard violations (4xx) log at WARNING, infrastructure failures (5xx) at ERROR
    - Unhandled exceptions never leak internals

Design Decisions:
    - Handlers are module-level coroutines registered with add_exception_handler,
      so tests can call them without building an app
    - Validation details name the offending field without the FastAPI location
      prefix; the location (body/header/path/query) is reported separately
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from bloodmatch.core.errors import BloodMatchError, ErrorCategory, ErrorSeverity

logger = logging.getLogger(__name__)

_LOCATIONS = {"body", "header", "path", "query", "cookie"}


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BloodMatchError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)


async def handle_domain_error(request: Request, exc: BloodMatchError) -> JSONResponse:
    exc.context.actor_id = exc.context.actor_id or request.headers.get("x-actor-id")
    logger.log(
        logging.ERROR if exc.http_status >= 500 else logging.WARNING,
        f"{request.method} {request.url.path} -> {exc.code}: {exc.message}",
        extra={
            "error_code": exc.code,
            "path": request.url.path,
            "actor_id": exc.context.actor_id,
        },
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


async def handle_validation_error(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    details = [_describe(e) for e in exc.errors()]
    logger.warning(
        f"Rejected payload on {request.url.path}: "
        + ", ".join(d["field"] for d in details),
        extra={"error_code": "VALIDATION_ERROR", "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Invalid request data",
                "category": ErrorCategory.VALIDATION.value,
                "severity": ErrorSeverity.ERROR.value,
                "details": details,
            },
        },
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.url.path}",
        extra={"path": request.url.path},
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "category": ErrorCategory.INTERNAL.value,
                "severity": ErrorSeverity.CRITICAL.value,
            },
        },
    )


def _describe(error: dict) -> dict:
    loc = [str(part) for part in error.get("loc", ())]
    location = loc[0] if loc and loc[0] in _LOCATIONS else None
    field_path = loc[1:] if location else loc
    return {
        "location": location,
        "field": ".".join(field_path) or location or "request",
        "message": error["msg"],
        "type": error["type"],
    }
