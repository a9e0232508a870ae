"""Exception → JSON mapping for the whole app.

Every error body has the shape::

    {"success": false, "error": {"code": ..., "message": ..., "details"?: [...]}}

Storage rule violations carry their own status and code (see
``core.exceptions``); any other ValueError from a service is a 400.
Database and unexpected errors are logged with a traceback and reported
without internals unless DEBUG is on.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from labvault.config import settings
from labvault.core.exceptions import StorageError

logger = logging.getLogger(__name__)


def error_body(code: str, message: str, details: list | None = None) -> dict:
    error: dict = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"success": False, "error": error}


def _respond(status_code: int, code: str, message: str, details: list | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_body(code, message, details))


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    if exc.status_code == status.HTTP_409_CONFLICT:
        logger.info("%s on %s %s: %s", exc.code, request.method, request.url.path, exc)
    return _respond(exc.status_code, exc.code, str(exc))


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return _respond(status.HTTP_400_BAD_REQUEST, "BAD_REQUEST", str(exc))


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _respond(exc.status_code, f"HTTP_{exc.status_code}", message)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """One detail entry per invalid field, e.g. ``body -> rows -> 3 -> sample_code``."""
    details = [
        {
            "field": " -> ".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg", "Invalid value"),
            "type": err.get("type", "value_error"),
        }
        for err in exc.errors()
    ]
    return _respond(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Request validation failed. Check the details for specific field errors.",
        details,
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        "Database error on %s %s", request.method, request.url.path, exc_info=exc
    )
    message = f"Database error: {exc}" if settings.DEBUG else (
        "A database error occurred. Please try again later."
    )
    return _respond(status.HTTP_500_INTERNAL_SERVER_ERROR, "DATABASE_ERROR", message)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc
    )
    message = f"Internal error: {exc}" if settings.DEBUG else (
        "An unexpected error occurred. Please try again later."
    )
    return _respond(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", message)


def register_error_handlers(app: FastAPI) -> None:
    # StorageError before ValueError: handlers resolve along the MRO
    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
