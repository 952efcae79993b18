"""
Account flows around the credential store.

Provides:
- Registration with an emailed 6-digit verification code
- Code verification / re-sending
- Login for verified users (issues a bearer token)
- Password reset by emailed code

Email delivery is best-effort: a failed notification is reported in the
result, never raised.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import core.config as config
from core.errors import (
    AccountConflict,
    AccountNotFound,
    AccountNotVerified,
    AuthenticationError,
    LoginRejected,
    ValidationIssue,
)
from core.models import User, utcnow
from core.services import credential_store
from core.services.notifier import NotifyEvent, NotifyKind, Notifier
from core.tokens import issue_token
from core.validators import (
    normalize_email,
    validate_code,
    validate_name,
    validate_password,
)

logger = config.logger

PASSWORD_SCHEME = "pbkdf2_sha256"


@dataclass(frozen=True)
class UserRecord:
    id: str
    name: str
    email: str
    is_verified: bool


@dataclass(frozen=True)
class RegistrationResult:
    user: UserRecord
    created: bool
    email_sent: bool


@dataclass(frozen=True)
class LoginResult:
    user: UserRecord
    token: str


def _user_record(user: User) -> UserRecord:
    return UserRecord(id=user.id, name=user.name, email=user.email, is_verified=bool(user.is_verified))


def hash_password(password: str, salt: Optional[str] = None, iterations: Optional[int] = None) -> str:
    resolved_salt = salt or secrets.token_hex(16)
    rounds = iterations or config.PASSWORD_HASH_ITERATIONS
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), resolved_salt.encode("utf-8"), rounds)
    return f"{PASSWORD_SCHEME}${rounds}${resolved_salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, rounds, salt, _ = stored.split("$", 3)
        iterations = int(rounds)
    except (AttributeError, ValueError):
        return False
    if scheme != PASSWORD_SCHEME:
        return False
    return hmac.compare_digest(hash_password(password, salt=salt, iterations=iterations), stored)


def generate_code() -> str:
    return str(100000 + secrets.randbelow(900000))


def _code_expiry() -> datetime:
    return utcnow() + timedelta(seconds=config.VERIFICATION_CODE_TTL_SECONDS)


def _send_code(notifier: Notifier, kind: NotifyKind, user: User, code: str) -> bool:
    result = notifier.notify(NotifyEvent(kind=kind, email=user.email, name=user.name, code=code))
    if not result.ok:
        logger.warning("code_delivery_failed", extra={"kind": kind.value, "user_id": user.id})
    return result.ok


def register(db, notifier: Notifier, *, name: str, email: str, password: str) -> RegistrationResult:
    """
    Register a new user, or re-issue a code to an existing unverified one.

    Raises AccountConflict when the email belongs to a verified user.
    """
    clean_name = validate_name(name)
    clean_email = normalize_email(email)
    validate_password(password)

    existing = credential_store.get_user_by_email(db, clean_email)
    if existing is not None:
        if existing.is_verified:
            raise AccountConflict("User with this email already exists")
        code = generate_code()
        credential_store.set_verification_code(db, existing, code, _code_expiry())
        sent = _send_code(notifier, NotifyKind.verification, existing, code)
        return RegistrationResult(user=_user_record(existing), created=False, email_sent=sent)

    code = generate_code()
    user = credential_store.create_user(
        db,
        email=clean_email,
        name=clean_name,
        password_hash=hash_password(password),
        verification_code=code,
        code_expires_at=_code_expiry(),
    )
    logger.info("user_registered", extra={"user_id": user.id})
    sent = _send_code(notifier, NotifyKind.verification, user, code)
    return RegistrationResult(user=_user_record(user), created=True, email_sent=sent)


def verify_code(db, notifier: Notifier, *, email: str, code: str) -> UserRecord:
    clean_email = normalize_email(email)
    validate_code(code)

    user = credential_store.get_user_by_email(db, clean_email)
    if user is None:
        raise AccountNotFound("User not found")
    if user.is_verified:
        raise ValidationIssue("Email is already verified", field="email", error_type="already_verified")
    if not user.verification_code or not user.verification_code_expires_at:
        raise ValidationIssue(
            "No verification code found. Please request a new code.",
            field="code",
            error_type="missing",
        )
    if utcnow() > user.verification_code_expires_at:
        raise ValidationIssue(
            "Verification code has expired. Please request a new code.",
            field="code",
            error_type="expired",
        )
    if not hmac.compare_digest(user.verification_code, code):
        raise ValidationIssue("Invalid verification code", field="code", error_type="mismatch")

    credential_store.mark_verified(db, user)
    logger.info("user_verified", extra={"user_id": user.id})
    notifier.notify(NotifyEvent(kind=NotifyKind.welcome, email=user.email, name=user.name))
    return _user_record(user)


def resend_code(db, notifier: Notifier, *, email: str) -> bool:
    clean_email = normalize_email(email)
    user = credential_store.get_user_by_email(db, clean_email)
    if user is None:
        raise AccountNotFound("User not found")
    if user.is_verified:
        raise ValidationIssue("Email is already verified", field="email", error_type="already_verified")
    code = generate_code()
    credential_store.set_verification_code(db, user, code, _code_expiry())
    return _send_code(notifier, NotifyKind.verification, user, code)


def login(db, *, email: str, password: str) -> LoginResult:
    clean_email = normalize_email(email)
    if not isinstance(password, str) or not password:
        raise ValidationIssue("password is required", field="password", error_type="required")

    user = credential_store.get_user_by_email(db, clean_email)
    if user is None or not verify_password(password, user.password_hash):
        logger.info("login_rejected")
        raise LoginRejected("Invalid email or password")
    if not user.is_verified:
        raise AccountNotVerified("Please verify your email before logging in", email=user.email)

    token = issue_token(user.id, user.email)
    logger.info("user_logged_in", extra={"user_id": user.id})
    return LoginResult(user=_user_record(user), token=token)


def forgot_password(db, notifier: Notifier, *, email: str) -> None:
    """Issue a reset code. Unknown emails get the same silent success."""
    clean_email = normalize_email(email)
    user = credential_store.get_user_by_email(db, clean_email)
    if user is None:
        return None
    code = generate_code()
    credential_store.set_reset_code(db, user, code, _code_expiry())
    _send_code(notifier, NotifyKind.password_reset, user, code)
    return None


def reset_password(db, *, email: str, code: str, new_password: str) -> None:
    clean_email = normalize_email(email)
    validate_code(code)
    validate_password(new_password, field="newPassword")

    user = credential_store.get_user_by_email(db, clean_email)
    if user is None or not user.reset_code or not user.reset_code_expires_at:
        raise ValidationIssue("Invalid or expired reset request", field="code", error_type="invalid")
    if not hmac.compare_digest(user.reset_code, code):
        raise ValidationIssue("Invalid reset code", field="code", error_type="mismatch")
    if utcnow() > user.reset_code_expires_at:
        raise ValidationIssue("Reset code expired", field="code", error_type="expired")

    credential_store.update_password(db, user, hash_password(new_password))
    logger.info("password_reset", extra={"user_id": user.id})


def get_profile(db, user_id: str) -> UserRecord:
    user = credential_store.get_user(db, user_id)
    if user is None:
        raise AuthenticationError("User not found")
    return _user_record(user)
