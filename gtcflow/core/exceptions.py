"""Application-level exceptions and FastAPI exception handlers."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from gtcflow.core.config import get_settings


class AppError(Exception):
    """Base application exception."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(message)


class ValidationError(AppError):
    """Malformed input. Raised before any mutation."""

    status_code = 422
    code = "VALIDATION_ERROR"


class AuthorizationError(AppError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: object | None = None):
        msg = f"{entity} not found" if entity_id is None else f"{entity} '{entity_id}' not found"
        super().__init__(msg)


class ConflictError(AppError):
    """Illegal state transition or duplicate unique key."""

    status_code = 409
    code = "CONFLICT"


class InvalidCredentials(AppError):
    status_code = 401
    code = "INVALID_CREDENTIALS"

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


# ---------------------------------------------------------------------------
# Token errors
# ---------------------------------------------------------------------------

TOKEN_ERROR_MESSAGE = "Invalid or expired token"


class TokenError(AppError):
    """Base for credential failures.

    Every subclass renders the same public message so callers cannot tell
    an expired credential from a revoked or malformed one.
    """

    status_code = 401
    code = "INVALID_TOKEN"

    def __init__(self, reason: str = ""):
        self.reason = reason
        super().__init__(TOKEN_ERROR_MESSAGE)


class InvalidToken(TokenError):
    pass


class ExpiredToken(TokenError):
    pass


class RevokedToken(TokenError):
    pass


class InvalidInviteKind(TokenError):
    pass


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------


def _error_body(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the AppError handler to the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        response = JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.code, exc.message),
            headers={"WWW-Authenticate": "Bearer"} if isinstance(exc, TokenError) else None,
        )
        if isinstance(exc, TokenError):
            # Failed credential checks drop whatever session the client held
            settings = get_settings()
            response.delete_cookie(settings.refresh_cookie_name, path=settings.refresh_cookie_path)
        return response
