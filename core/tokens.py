"""
Signed bearer tokens for the authorization gate.

A token is ``<base64url(json payload)>.<hex hmac-sha256>``; the payload holds
the user id, email and an expiry epoch.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from typing import Optional

import core.config as config
from core.context import AuthContext
from core.errors import AuthenticationError


def _secret(secret: Optional[str]) -> bytes:
    value = secret or config.AUTH_SECRET
    if not value:
        raise RuntimeError("AUTH_SECRET is not configured")
    return value.encode("utf-8")


def _sign(b64_payload: str, secret: Optional[str]) -> str:
    return hmac.new(_secret(secret), b64_payload.encode("utf-8"), hashlib.sha256).hexdigest()


def issue_token(
    user_id: str,
    email: str,
    *,
    secret: Optional[str] = None,
    ttl_seconds: Optional[int] = None,
    now: Optional[float] = None,
) -> str:
    issued_at = int(now if now is not None else time.time())
    ttl = ttl_seconds if ttl_seconds is not None else config.AUTH_TOKEN_TTL_SECONDS
    payload = {"user_id": user_id, "email": email, "iat": issued_at, "exp": issued_at + ttl}
    payload_bytes = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    b64_payload = base64.urlsafe_b64encode(payload_bytes).decode("utf-8").rstrip("=")
    return f"{b64_payload}.{_sign(b64_payload, secret)}"


def verify_token(token: str, *, secret: Optional[str] = None, now: Optional[float] = None) -> AuthContext:
    """Resolve a token to the user it was issued for, or raise AuthenticationError."""
    if not token:
        raise AuthenticationError("Token missing")
    try:
        b64_payload, signature = token.split(".", 1)
    except ValueError as exc:
        raise AuthenticationError("Invalid token") from exc
    # Header values arrive latin-1 decoded, so the client half may hold non-ASCII text
    if not hmac.compare_digest(signature.encode("utf-8"), _sign(b64_payload, secret).encode("utf-8")):
        raise AuthenticationError("Invalid token")
    padded = b64_payload + "=" * (-len(b64_payload) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(padded))
    except (binascii.Error, ValueError) as exc:
        raise AuthenticationError("Invalid token payload") from exc
    if not isinstance(data, dict) or not data.get("user_id") or not isinstance(data.get("exp"), int):
        raise AuthenticationError("Invalid token payload")
    current = now if now is not None else time.time()
    if current >= data["exp"]:
        raise AuthenticationError("Token expired. Please login again.")
    return AuthContext(user_id=str(data["user_id"]), email=data.get("email"))
