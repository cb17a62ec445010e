"""Error taxonomy and the FastAPI handlers that render it.

Every failure leaves the API as ``{"success": false, "message": ...}``.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings

logger = logging.getLogger("logbook.errors")


class LogbookError(Exception):
    status_code = 500
    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(LogbookError):
    status_code = 400
    default_message = "Invalid request"


class AuthError(LogbookError):
    status_code = 401
    default_message = "Access token required"

    def __init__(self, message: str | None = None, status_code: int = 401) -> None:
        super().__init__(message)
        self.status_code = status_code


class PermissionDenied(LogbookError):
    status_code = 403
    default_message = "You do not have permission to perform this action"


class NotFound(LogbookError):
    status_code = 404
    default_message = "Not found"


class EditWindowExpired(LogbookError):
    status_code = 403
    default_message = "Entries can only be changed within 24 hours of creation"


class ConflictError(LogbookError):
    status_code = 400
    default_message = "Record already exists"


class DependencyFailure(LogbookError):
    status_code = 500
    default_message = "Backing service failure"


def error_body(message: str, **extra) -> dict:
    return {"success": False, "message": message, **extra}


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def _logbook_error_handler(request: Request, exc: LogbookError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(error_body(exc.message), status_code=exc.status_code)


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and message == "Not Found":
        message = "Route not found"
    return JSONResponse(error_body(message), status_code=exc.status_code)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(error_body("; ".join(parts) or "Invalid request"), status_code=400)


def integrity_message(exc: IntegrityError) -> str:
    detail = str(exc.orig).lower()
    if "foreign key" in detail:
        return "Referenced record does not exist"
    if "unique" in detail or "duplicate" in detail:
        return ConflictError.default_message
    return "Record violates a data constraint"


async def _integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(error_body(integrity_message(exc)), status_code=400)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    if settings.is_production:
        return JSONResponse(error_body("Internal server error"), status_code=500)
    return JSONResponse(
        error_body("Internal server error", error=str(exc)), status_code=500,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LogbookError, _logbook_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(IntegrityError, _integrity_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
