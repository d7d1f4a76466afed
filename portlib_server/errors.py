# Copyright (C) 2024 PortLib Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Error taxonomy for the auth and disciplinary services, and the handlers that render it."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"


class PortLibError(Exception):
    """Base for errors that map to a client-facing status code and short message."""

    status_code = status.HTTP_400_BAD_REQUEST
    message = "Bad request"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationFailed(PortLibError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request"


class Conflict(PortLibError):
    """Duplicate email, phone or role identifier. Reported as 400 like other input errors."""

    status_code = status.HTTP_400_BAD_REQUEST
    message = "Already registered"


class InvalidCode(PortLibError):
    """OTP missing, wrong or expired. Never says which channel failed."""

    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid or expired OTP"


class AuthenticationFailed(PortLibError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid credentials"


class AccountNotActive(PortLibError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Account not verified or blocked"


class Forbidden(PortLibError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Forbidden"


class NotFound(PortLibError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Not found"


async def portlib_error_handler(request: Request, exc: PortLibError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure with its traceback; the client only sees a generic message."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": INTERNAL_ERROR_MESSAGE},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PortLibError, portlib_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
