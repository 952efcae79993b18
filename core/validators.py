"""
Shared validation helpers for Chatline services.
"""

from __future__ import annotations

import re

from core.config import (
    MAX_EMAIL_LENGTH,
    MAX_NAME_LENGTH,
    MAX_PASSWORD_LENGTH,
)
from core.errors import ValidationIssue

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_CODE_RE = re.compile(r"^\d{6}$")


def validate_required_text(value: str, field: str, max_len: int) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationIssue(f"{field} must be a non-empty string", field=field, error_type="required")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_message_content(content: str, max_len: int) -> str:
    """Check a chat message body and return it trimmed."""
    if not isinstance(content, str):
        raise ValidationIssue("content must be a string", field="content", error_type="invalid_type")
    if not content.strip():
        raise ValidationIssue("Message cannot be empty", field="content", error_type="required")
    if len(content) > max_len:
        raise ValidationIssue(
            f"Message too long (max {max_len} characters)",
            field="content",
            error_type="max_length",
        )
    return content.strip()


def normalize_email(value: str) -> str:
    if not isinstance(value, str):
        raise ValidationIssue("email must be a string", field="email", error_type="invalid_type")
    email = value.strip().lower()
    if len(email) > MAX_EMAIL_LENGTH:
        raise ValidationIssue(f"email exceeds max length {MAX_EMAIL_LENGTH}", field="email", error_type="max_length")
    if not _EMAIL_RE.match(email):
        raise ValidationIssue("Invalid email format", field="email", error_type="invalid_format")
    return email


def validate_name(value: str) -> str:
    validate_required_text(value, "name", MAX_NAME_LENGTH)
    return value.strip()


def validate_password(value: str, field: str = "password") -> None:
    if not isinstance(value, str):
        raise ValidationIssue(f"{field} must be a string", field=field, error_type="invalid_type")
    if len(value) < 8:
        raise ValidationIssue("Password must be at least 8 characters", field=field, error_type="min_length")
    if len(value) > MAX_PASSWORD_LENGTH:
        raise ValidationIssue(
            f"{field} exceeds max length {MAX_PASSWORD_LENGTH}",
            field=field,
            error_type="max_length",
        )
    if not re.search(r"[A-Z]", value):
        raise ValidationIssue(
            "Password must contain at least one uppercase letter", field=field, error_type="weak_password"
        )
    if not re.search(r"[a-z]", value):
        raise ValidationIssue(
            "Password must contain at least one lowercase letter", field=field, error_type="weak_password"
        )
    if not re.search(r"[0-9]", value):
        raise ValidationIssue("Password must contain at least one number", field=field, error_type="weak_password")


def validate_code(value: str, field: str = "code") -> None:
    if not isinstance(value, str) or not _CODE_RE.match(value):
        raise ValidationIssue("Verification code must be 6 digits", field=field, error_type="invalid_format")
