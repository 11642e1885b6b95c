"""Authentication error taxonomy and the handlers that render it."""

import logging
import traceback

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class AuthError(HTTPException):
    """HTTP error with a machine-stable ``code`` next to the message."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"
    message = "Unauthorized"

    def __init__(self, message: str | None = None, headers: dict | None = None) -> None:
        super().__init__(
            status_code=self.status_code,
            detail=message or self.message,
            headers=headers,
        )


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    message = "Invalid credentials"


class AccountNotActive(AuthError):
    code = "account_not_active"
    message = "Account is not active"


class InvalidRefreshToken(AuthError):
    code = "invalid_refresh_token"
    message = "Invalid refresh token"


class InvalidCurrentPassword(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_current_password"
    message = "Current password is incorrect"


class PasswordTooLong(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "password_too_long"
    message = "Password cannot be longer than 72 bytes"


class Unauthorized(AuthError):
    def __init__(self, message: str | None = None) -> None:
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    message = "Forbidden"


class InvalidToken(Exception):
    """Raised by the token service; callers translate it to an AuthError."""


def _error_body(message: str, code: str, exc: Exception | None = None, debug: bool = False) -> dict:
    body = {"detail": message, "code": code}
    if debug and exc is not None:
        body["traceback"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return body


def register_exception_handlers(app: FastAPI, debug: bool = False) -> None:
    """Attach handlers for domain, persistence and unexpected errors."""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.detail, exc.code),
            headers=exc.headers,
        )

    @app.exception_handler(SQLAlchemyError)
    async def handle_database_error(request: Request, exc: SQLAlchemyError):
        logger.exception("database error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("Database error", "database_error", exc, debug),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("Internal server error", "internal_error", exc, debug),
        )
