"""
Health endpoint: database reachability, schema revision and model provider state.
"""

from __future__ import annotations

import os
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text

import core.config as config
from core.db import DB, _get_schema_revisions
from core.services.model_client import ModelClient
from app.deps import get_model_client


router = APIRouter()


def _check_db_health() -> dict:
    if DB.engine is None:
        return {"ok": False, "error": "db_not_initialized"}

    try:
        with DB.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        return {"ok": False, "error": str(exc)}

    try:
        current_rev, head_rev = _get_schema_revisions(DB.engine)
    except Exception as exc:
        return {"ok": True, "schema_error": str(exc)}
    return {
        "ok": True,
        "schema_revision": current_rev,
        "schema_expected": head_rev,
        "schema_up_to_date": head_rev is None or current_rev == head_rev,
    }


def _check_model_health(model_client: Optional[ModelClient]) -> dict:
    if model_client is None:
        return {"status": "not_initialized", "provider": config.LLM_PROVIDER}
    status = model_client.status()
    status["status"] = "cooldown" if status.get("circuit_breaker", {}).get("open") else "ready"
    return status


@router.get("/health")
async def health(model_client: Optional[ModelClient] = Depends(get_model_client)):
    """Health check endpoint."""
    db_health = _check_db_health()
    model_status = _check_model_health(model_client)
    if not db_health.get("ok"):
        raise HTTPException(
            status_code=503,
            detail={"database": db_health, "model_provider": model_status},
        )

    return {
        "status": "healthy",
        "service": config.SERVICE_NAME,
        "version": config.SERVICE_VERSION,
        "instance_id": os.environ.get("CHATLINE_INSTANCE_ID", "chatline-1"),
        "database": db_health,
        "model_provider": model_status,
    }
