"""
HTTP error type and the app-level handlers that render ``{code, message}`` bodies.
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from coffeerate.services import ServiceError

import logging

logger = logging.getLogger(__name__)

# Fallback codes for HTTP errors raised by the framework itself.
_STATUS_CODES = {
    400: "validation_failed",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    429: "too_many_requests",
}

# Service error code -> (status, public message). None keeps the service message.
SERVICE_ERRORS: dict[str, tuple[int, Optional[str]]] = {
    "invalid_email": (400, None),
    "weak_password": (400, None),
    "invalid_credentials": (401, "Invalid credentials"),
    "invalid_token": (401, "Invalid or expired token"),
    "email_not_confirmed": (403, "Email not confirmed"),
    "roastery_not_found": (404, "Roastery not found"),
    "coffee_not_found": (404, "Coffee not found"),
    "email_taken": (409, "Email already registered"),
    "roastery_duplicate": (409, "Roastery already exists"),
    "coffee_duplicate": (409, None),
    "display_name_already_set": (409, "Display name already set"),
    "display_name_conflict": (409, "Display name already taken"),
    "too_many_requests": (429, "Too many requests"),
    "delete_profile_failed": (500, "Failed to delete profile"),
    "delete_auth_user_failed": (500, "Failed to delete account"),
}


class ApiError(Exception):
    """An error response with a short machine-readable code."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.headers = headers


def error_response(
    status_code: int, code: str, message: str, headers: Optional[dict[str, str]] = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"code": code, "message": message},
        headers=headers,
    )


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


async def _handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(exc.status_code, exc.code, exc.message, exc.headers)


async def _handle_service_error(request: Request, exc: ServiceError) -> JSONResponse:
    status_code, message = SERVICE_ERRORS.get(exc.code, (500, None))
    if status_code >= 500:
        logger.error(
            "Service error %s on %s %s (request_id=%s): %s",
            exc.code,
            request.method,
            request.url.path,
            _request_id(request),
            exc.message,
        )
    if exc.code not in SERVICE_ERRORS:
        return error_response(500, "internal_error", "Unexpected server error")
    return error_response(status_code, exc.code, message or exc.message)


async def _handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    logger.debug("Validation failed for %s: %s", request.url.path, errors)
    return error_response(400, "validation_failed", message)


async def _handle_http_exception(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    code = _STATUS_CODES.get(exc.status_code, "internal_error")
    return error_response(exc.status_code, code, str(exc.detail), getattr(exc, "headers", None))


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error on %s %s (request_id=%s)",
        request.method,
        request.url.path,
        _request_id(request),
    )
    return error_response(500, "internal_error", "Unexpected server error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _handle_api_error)
    app.add_exception_handler(ServiceError, _handle_service_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)
    app.add_exception_handler(Exception, _handle_unexpected)
