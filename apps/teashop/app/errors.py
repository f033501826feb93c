"""
Domain error taxonomy.

Services raise these; the handlers registered by `install_error_handlers`
turn them into `{message, error?}` JSON bodies at the request boundary.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from teashop_shared import get_request_id

from .config import is_prod_env

log = logging.getLogger("teashop.errors")


class AppError(Exception):
    status_code = 500
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None, *, status_code: Optional[int] = None, error: Any = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.error = error
        super().__init__(self.message)


class Unauthenticated(AppError):
    status_code = 401
    default_message = "No token provided"


class InvalidCredential(AppError):
    status_code = 401
    default_message = "Invalid token"


class Forbidden(AppError):
    status_code = 403
    default_message = "Insufficient permissions"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class Conflict(AppError):
    status_code = 400
    default_message = "Already exists"


class InvalidState(AppError):
    status_code = 400
    default_message = "Invalid state"


class InsufficientStock(InvalidState):
    default_message = "Insufficient stock"


class InsufficientPoints(InvalidState):
    default_message = "Insufficient loyalty points"


class Unavailable(InvalidState):
    default_message = "Item is not available"


class ValidationError(AppError):
    status_code = 400
    default_message = "Validation failed"


class Internal(AppError):
    status_code = 500
    default_message = "Internal server error"


def _body(message: str, error: Any = None) -> dict:
    payload: dict[str, Any] = {"message": message}
    if error is not None:
        payload["error"] = error
    rid = get_request_id()
    if rid:
        payload["requestId"] = rid
    return payload


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            log.error("request failed", extra={"path": request.url.path, "error_type": type(exc).__name__})
        return JSONResponse(status_code=exc.status_code, content=_body(exc.message, exc.error))

    @app.exception_handler(RequestValidationError)
    async def _validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in e.get("loc", ()) if p != "body"), "message": e.get("msg", "")}
            for e in exc.errors()
        ]
        return JSONResponse(status_code=400, content=_body("Validation failed", errors))

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = "API endpoint not found"
        return JSONResponse(status_code=exc.status_code, content=_body(message), headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        log.exception("unhandled exception", extra={"path": request.url.path})
        # Never leak exception details outside dev/test.
        error = "Something went wrong" if is_prod_env() else str(exc)
        return JSONResponse(status_code=500, content=_body("Internal server error", error))
