"""
Shared configuration for Chatline core.
"""

from __future__ import annotations

import logging
import os

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("chatline")


def _get_bool(env_name: str, default: bool) -> bool:
    value = os.environ.get(env_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(env_name: str, default: int) -> int:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(env_name: str, default: float) -> float:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


SERVICE_NAME = "Chatline"
SERVICE_VERSION = "0.1.0"

# Database settings
DB_BACKEND = os.environ.get("DB_BACKEND", "sqlite").strip().lower()
SQLITE_PATH = os.environ.get("SQLITE_PATH", "./chatline.db")
DATABASE_URL = os.environ.get("DATABASE_URL")
AUTO_MIGRATE_ON_STARTUP = _get_bool("AUTO_MIGRATE_ON_STARTUP", True)

# Authorization gate
AUTH_SECRET = os.environ.get("AUTH_SECRET")
AUTH_TOKEN_TTL_SECONDS = _get_int("AUTH_TOKEN_TTL_SECONDS", 7 * 24 * 3600)

# Chat limits and persona
MAX_MESSAGE_LENGTH = _get_int("CHAT_MAX_MESSAGE_LENGTH", 2000)
SYSTEM_INSTRUCTION = os.environ.get(
    "CHAT_SYSTEM_INSTRUCTION",
    "You are a helpful AI assistant. Be concise, friendly, and informative.",
)
FALLBACK_REPLY = os.environ.get(
    "CHAT_FALLBACK_REPLY",
    "Sorry, I could not generate a response.",
)
SERIALIZE_TURNS = _get_bool("CHAT_SERIALIZE_TURNS", True)

# Language model provider
LLM_PROVIDER = os.environ.get("LLM_PROVIDER", "openai").strip().lower()
LLM_PROVIDERS = {"openai", "gemini", "echo"}
LLM_DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "gemini": "gemini-1.5-flash",
    "echo": "echo",
}
LLM_DEFAULT_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "gemini": "https://generativelanguage.googleapis.com/v1beta",
    "echo": "",
}
LLM_API_KEY = (
    os.environ.get("LLM_API_KEY")
    or (os.environ.get("GEMINI_API_KEY") if LLM_PROVIDER == "gemini" else os.environ.get("OPENAI_API_KEY"))
)
LLM_MODEL = os.environ.get("LLM_MODEL") or LLM_DEFAULT_MODELS.get(LLM_PROVIDER, "")
LLM_BASE_URL = (os.environ.get("LLM_BASE_URL") or LLM_DEFAULT_BASE_URLS.get(LLM_PROVIDER, "")).rstrip("/")
LLM_TIMEOUT_SECONDS = _get_float("LLM_TIMEOUT_SECONDS", 60.0)
LLM_FAILURE_THRESHOLD = _get_int("LLM_FAILURE_THRESHOLD", 5)
LLM_COOLDOWN_SECONDS = _get_int("LLM_COOLDOWN_SECONDS", 30)

# Accounts
VERIFICATION_CODE_TTL_SECONDS = _get_int("VERIFICATION_CODE_TTL_SECONDS", 600)
PASSWORD_HASH_ITERATIONS = _get_int("PASSWORD_HASH_ITERATIONS", 310_000)
MAX_NAME_LENGTH = _get_int("CHATLINE_MAX_NAME_LENGTH", 100)
MAX_EMAIL_LENGTH = _get_int("CHATLINE_MAX_EMAIL_LENGTH", 255)
MAX_PASSWORD_LENGTH = _get_int("CHATLINE_MAX_PASSWORD_LENGTH", 128)

# Notifications
BREVO_API_KEY = os.environ.get("BREVO_API_KEY")
BREVO_API_URL = os.environ.get("BREVO_API_URL", "https://api.brevo.com/v3/smtp/email")
EMAIL_FROM = os.environ.get("EMAIL_FROM", "no-reply@chatline.local")
APP_NAME = os.environ.get("APP_NAME", "AI Chatbot")
APP_URL = os.environ.get("APP_URL", "http://localhost:3000")
NOTIFY_TIMEOUT_SECONDS = _get_float("NOTIFY_TIMEOUT_SECONDS", 10.0)


def validate_and_prepare_config() -> None:
    """Validate configuration and apply derived settings at startup."""
    global DATABASE_URL

    errors = []
    if DB_BACKEND not in {"postgres", "sqlite"}:
        errors.append("DB_BACKEND must be 'postgres' or 'sqlite'")

    if not DATABASE_URL:
        if DB_BACKEND == "sqlite":
            if not SQLITE_PATH:
                errors.append("SQLITE_PATH environment variable is required for sqlite")
            else:
                DATABASE_URL = f"sqlite:///{SQLITE_PATH}"
        else:
            errors.append("DATABASE_URL environment variable is required")
    else:
        is_sqlite_url = DATABASE_URL.lower().startswith("sqlite")
        if DB_BACKEND == "sqlite" and not is_sqlite_url:
            errors.append("DATABASE_URL must be a sqlite URL when DB_BACKEND=sqlite")
        if DB_BACKEND == "postgres" and is_sqlite_url:
            errors.append("DATABASE_URL must be a postgres URL when DB_BACKEND=postgres")

    if not AUTH_SECRET:
        errors.append("AUTH_SECRET environment variable is required")

    if MAX_MESSAGE_LENGTH <= 0:
        errors.append("CHAT_MAX_MESSAGE_LENGTH must be positive")
    if not FALLBACK_REPLY.strip():
        errors.append("CHAT_FALLBACK_REPLY must not be empty")

    if LLM_PROVIDER not in LLM_PROVIDERS:
        errors.append("LLM_PROVIDER must be 'openai', 'gemini', or 'echo'")
    elif LLM_PROVIDER != "echo" and not LLM_API_KEY:
        errors.append(f"LLM_PROVIDER={LLM_PROVIDER} requires LLM_API_KEY to be set")

    if not BREVO_API_KEY:
        logger.warning("BREVO_API_KEY not set; email notifications will only be logged.")

    if errors:
        raise RuntimeError("Configuration invalid: " + "; ".join(errors))
