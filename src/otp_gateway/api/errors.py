"""Exception → JSON error translation.

Every error leaves the API as ``{"error": ..., "details": ...}``.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from otp_gateway.otp.errors import OTPError
from otp_gateway.services.auth_service import (
    AuthServiceError,
    ProviderError,
    UserNotFoundError,
)
from otp_gateway.services.phone_policy import PhoneRejected

logger = logging.getLogger(__name__)

_VALUE_ERROR_PREFIX = "Value error, "


def error_response(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "details": details})


async def _http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail))


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if not errors:
        return error_response(400, "Invalid request body")
    first = errors[0]
    message = first.get("msg", "Invalid request body").removeprefix(_VALUE_ERROR_PREFIX)
    if first.get("type") == "json_invalid":
        message = "Invalid request body"
    return error_response(400, message)


async def _otp_error(request: Request, exc: OTPError) -> JSONResponse:
    logger.info("OTP verification failed for %s: %s", exc.subject, exc)
    return error_response(400, str(exc), exc.code)


async def _phone_rejected(request: Request, exc: PhoneRejected) -> JSONResponse:
    return error_response(403, str(exc))


async def _auth_service_error(request: Request, exc: AuthServiceError) -> JSONResponse:
    if isinstance(exc, UserNotFoundError):
        status_code = 404
    elif isinstance(exc, ProviderError):
        status_code = 502
        logger.error("%s: %s", exc.message, exc.details)
    else:
        status_code = 400
    return error_response(status_code, exc.message, exc.details)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_exception)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(OTPError, _otp_error)
    app.add_exception_handler(PhoneRejected, _phone_rejected)
    app.add_exception_handler(AuthServiceError, _auth_service_error)
