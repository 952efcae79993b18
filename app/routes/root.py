"""
Root endpoint with service metadata.
"""

from __future__ import annotations

from fastapi import APIRouter

import core.config as config


router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": config.SERVICE_NAME,
        "version": config.SERVICE_VERSION,
        "description": "Chat sessions with a language model assistant",
        "llm_provider": config.LLM_PROVIDER,
        "endpoints": {
            "health": "/health",
            "chats": "/chats",
            "messages": "/messages/{chatId}",
            "auth": {
                "register": "/auth/register",
                "verify_code": "/auth/verify-code",
                "resend_code": "/auth/resend-code",
                "login": "/auth/login",
                "forgot_password": "/auth/forgot-password",
                "reset_password": "/auth/reset-password",
                "logout": "/auth/logout",
                "me": "/auth/me",
            },
        },
    }
