"""Domain error types and the FastAPI handlers that render them.

Services and the data layer raise ``AppError`` subclasses; routers let them
propagate and the handlers below turn them into ``{"error", "detail"}``
bodies.
"""

import logging
import math
import sqlite3

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("trip_planner.errors")


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_error"

    def __init__(self, detail: str = "An unexpected error occurred.", extra: dict | None = None):
        super().__init__(detail)
        self.detail = detail
        self.extra = extra or {}


class BadRequestError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "bad_request"


class UnauthorizedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


_STATUS_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
}


def _error_body(code: str, detail, extra: dict | None = None) -> dict:
    body = {"error": code, "detail": detail}
    if extra:
        body.update(extra)
    return body


def app_error_handler(request: Request, exc: AppError):  # type: ignore
    if exc.status_code >= 500:
        logger.error("%s: %s", type(exc).__name__, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.code, exc.detail, exc.extra),
    )


def http_error_handler(request: Request, exc: StarletteHTTPException):  # type: ignore
    code = _STATUS_CODES.get(exc.status_code, "http_error")
    detail = exc.detail
    if exc.status_code == status.HTTP_404_NOT_FOUND and detail == "Not Found":
        detail = f"No route for {request.method} {request.url.path}"
    headers = getattr(exc, "headers", None)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(code, detail),
        headers=headers,
    )


def validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body("validation_error", _jsonable_errors(exc)),
    )


def integrity_error_handler(request: Request, exc: sqlite3.IntegrityError):  # type: ignore
    logger.warning("integrity error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=_error_body("conflict", "The request conflicts with existing data."),
    )


def server_error_handler(request: Request, exc: Exception):  # type: ignore
    logger.exception("unhandled exception")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("internal_error", "An unexpected error occurred."),
    )


def _jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold the raw ValueError raised by a validator
    errors = []
    for err in exc.errors():
        item = dict(err)
        ctx = item.get("ctx")
        if ctx:
            item["ctx"] = {k: str(v) for k, v in ctx.items()}
        value = item.get("input")
        if isinstance(value, float) and not math.isfinite(value):
            item["input"] = str(value)
        item.pop("url", None)
        errors.append(item)
    return errors
