"""
Dependency helpers for the FastAPI app.
"""

from __future__ import annotations

from typing import Generator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.context import AuthContext, RequestContext
from core.db import DB
from core.errors import AuthenticationError
from core.services.model_client import ModelClient
from core.services.notifier import Notifier
from core.services.reply_orchestrator import ReplyOrchestrator
from core.tokens import verify_token


_bearer = HTTPBearer(auto_error=False)


def get_db_session() -> Generator:
    if DB.SessionLocal is None:
        raise RuntimeError("Database not initialized - SessionLocal is None")
    db = DB.SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> AuthContext:
    """Authorization gate: resolve the bearer token to the calling user."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required")
    return verify_token(credentials.credentials)


async def get_request_context(
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
) -> RequestContext:
    return RequestContext(
        auth=auth,
        request_id=request.headers.get("x-request-id"),
        source="http",
    )


def get_orchestrator(request: Request) -> ReplyOrchestrator:
    return request.app.state.orchestrator


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_model_client(request: Request) -> Optional[ModelClient]:
    return getattr(request.app.state, "model_client", None)
