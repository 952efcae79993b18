"""
FastAPI app wiring for Chatline.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

import core.config as config
from core.db import DB, dispose_db, init_db
from core.services.model_client import build_model_client
from core.services.notifier import build_notifier
from core.services.reply_orchestrator import ReplyOrchestrator
from app.errors import register_exception_handlers
from app.middleware import configure_middleware
from app.routes.auth import router as auth_router
from app.routes.chats import router as chats_router
from app.routes.health import router as health_router
from app.routes.messages import router as messages_router
from app.routes.root import router as root_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize on startup, cleanup on shutdown."""
    init_db()
    model_client = build_model_client()
    notifier = build_notifier()
    app.state.model_client = model_client
    app.state.notifier = notifier
    app.state.orchestrator = ReplyOrchestrator(DB.SessionLocal, model_client)
    config.logger.info(
        "service_started",
        extra={"provider": model_client.provider, "model": model_client.model},
    )
    try:
        yield
    finally:
        model_client.close()
        notifier.close()
        dispose_db()


app = FastAPI(
    title=config.SERVICE_NAME,
    version=config.SERVICE_VERSION,
    redirect_slashes=False,
    lifespan=lifespan,
)
configure_middleware(app)
register_exception_handlers(app)

app.include_router(auth_router)
app.include_router(chats_router)
app.include_router(messages_router)

# Health and root endpoints
app.include_router(health_router)
app.include_router(root_router)
