"""
Exception handlers mapping core errors to HTTP responses.

Every error body is ``{"error": <code>, "message": <text>}``; validation
failures add ``"errors": [{"field", "message"}]``.
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import core.config as config
from core.errors import (
    AccountConflict,
    AccountNotFound,
    AccountNotVerified,
    AuthenticationError,
    ChatForbidden,
    ChatNotFound,
    LoginRejected,
    ProviderError,
    StorageError,
    ValidationIssue,
)

logger = config.logger

SEND_FAILED_MESSAGE = "Failed to send message"


def _error_payload(code: str, message: str, errors: Optional[list] = None, **extra) -> dict:
    payload = {"error": code, "message": message}
    if errors is not None:
        payload["errors"] = errors
    payload.update(extra)
    return payload


def _error_response(status_code: int, code: str, message: str, **kwargs) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=_error_payload(code, message, **kwargs))


def _log_validation_issue(request: Request, exc: ValidationIssue) -> None:
    logger.info(
        "request_validation_error",
        extra={
            "path": request.url.path,
            "field": exc.field,
            "error_type": exc.error_type,
            "detail": str(exc),
        },
    )


async def _validation_issue_handler(request: Request, exc: ValidationIssue) -> JSONResponse:
    _log_validation_issue(request, exc)
    return _error_response(
        400,
        "invalid_input",
        str(exc),
        errors=[{"field": exc.field, "message": str(exc)}],
    )


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    for item in exc.errors():
        location = [str(part) for part in item.get("loc", ()) if part != "body"]
        errors.append({"field": ".".join(location) or "body", "message": item.get("msg", "invalid")})
    logger.info("request_validation_error", extra={"path": request.url.path, "error_count": len(errors)})
    return _error_response(400, "invalid_input", "Validation failed", errors=errors)


async def _authentication_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    return _error_response(401, "unauthorized", str(exc) or "Access token required")


async def _login_rejected_handler(request: Request, exc: LoginRejected) -> JSONResponse:
    return _error_response(401, "invalid_credentials", str(exc))


async def _chat_not_found_handler(request: Request, exc: ChatNotFound) -> JSONResponse:
    return _error_response(404, "not_found", str(exc) or "Chat not found")


async def _chat_forbidden_handler(request: Request, exc: ChatForbidden) -> JSONResponse:
    return _error_response(403, "forbidden", str(exc))


async def _account_not_found_handler(request: Request, exc: AccountNotFound) -> JSONResponse:
    return _error_response(404, "not_found", str(exc))


async def _account_not_verified_handler(request: Request, exc: AccountNotVerified) -> JSONResponse:
    return _error_response(403, "not_verified", str(exc), email=exc.email, needsVerification=True)


async def _account_conflict_handler(request: Request, exc: AccountConflict) -> JSONResponse:
    return _error_response(409, "conflict", str(exc))


async def _provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
    # Provider detail is already logged by the orchestrator; the client sees a generic message
    return _error_response(500, "provider_error", SEND_FAILED_MESSAGE)


async def _storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    return _error_response(500, "storage_error", "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationIssue, _validation_issue_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(AuthenticationError, _authentication_handler)
    app.add_exception_handler(LoginRejected, _login_rejected_handler)
    app.add_exception_handler(ChatNotFound, _chat_not_found_handler)
    app.add_exception_handler(ChatForbidden, _chat_forbidden_handler)
    app.add_exception_handler(AccountNotFound, _account_not_found_handler)
    app.add_exception_handler(AccountNotVerified, _account_not_verified_handler)
    app.add_exception_handler(AccountConflict, _account_conflict_handler)
    app.add_exception_handler(ProviderError, _provider_error_handler)
    app.add_exception_handler(StorageError, _storage_error_handler)
