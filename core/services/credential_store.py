"""
Credential storage: user rows, verification codes and reset codes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError

from core.errors import AccountConflict
from core.models import User, utcnow


def get_user_by_email(db, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email).first()


def get_user(db, user_id: str) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def create_user(
    db,
    *,
    email: str,
    name: str,
    password_hash: str,
    verification_code: str,
    code_expires_at: datetime,
) -> User:
    user = User(
        email=email,
        name=name,
        password_hash=password_hash,
        is_verified=False,
        verification_code=verification_code,
        verification_code_expires_at=code_expires_at,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise AccountConflict("User with this email already exists") from exc
    db.refresh(user)
    return user


def set_verification_code(db, user: User, code: str, expires_at: datetime) -> None:
    user.verification_code = code
    user.verification_code_expires_at = expires_at
    user.updated_at = utcnow()
    db.commit()


def mark_verified(db, user: User) -> None:
    user.is_verified = True
    user.verification_code = None
    user.verification_code_expires_at = None
    user.updated_at = utcnow()
    db.commit()


def set_reset_code(db, user: User, code: str, expires_at: datetime) -> None:
    user.reset_code = code
    user.reset_code_expires_at = expires_at
    user.updated_at = utcnow()
    db.commit()


def update_password(db, user: User, password_hash: str) -> None:
    user.password_hash = password_hash
    user.reset_code = None
    user.reset_code_expires_at = None
    user.updated_at = utcnow()
    db.commit()
