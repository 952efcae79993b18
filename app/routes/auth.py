"""
Account endpoints: registration, email verification, login and password reset.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from core.context import RequestContext
from core.services import accounts
from core.services.notifier import Notifier
from app.deps import get_db_session, get_notifier, get_request_context
from app.schemas import (
    EmailIn,
    LoginIn,
    LoginOut,
    RegisterIn,
    RegisterOut,
    ResetPasswordIn,
    StatusOut,
    UserOut,
    VerifiedOut,
    VerifyCodeIn,
    user_out,
)


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=201, response_model=RegisterOut)
def register(
    payload: RegisterIn,
    response: Response,
    db=Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
):
    """Create an account, or re-send the code to an existing unverified one (200)."""
    result = accounts.register(
        db,
        notifier,
        name=payload.name,
        email=payload.email,
        password=payload.password,
    )
    if not result.created:
        response.status_code = 200
    return RegisterOut(
        id=result.user.id,
        name=result.user.name,
        email=result.user.email,
        is_verified=result.user.is_verified,
        needs_verification=True,
        email_sent=result.email_sent,
    )


@router.post("/verify-code", response_model=VerifiedOut)
def verify_code(
    payload: VerifyCodeIn,
    db=Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
):
    user = accounts.verify_code(db, notifier, email=payload.email, code=payload.code)
    return VerifiedOut(message="Email verified successfully", user=user_out(user))


@router.post("/resend-code", response_model=StatusOut)
def resend_code(
    payload: EmailIn,
    db=Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
):
    sent = accounts.resend_code(db, notifier, email=payload.email)
    return StatusOut(message="Verification code sent", email_sent=sent)


@router.post("/login", response_model=LoginOut)
def login(payload: LoginIn, db=Depends(get_db_session)):
    result = accounts.login(db, email=payload.email, password=payload.password)
    return LoginOut(user=user_out(result.user), token=result.token)


@router.post("/forgot-password", response_model=StatusOut, response_model_exclude_none=True)
def forgot_password(
    payload: EmailIn,
    db=Depends(get_db_session),
    notifier: Notifier = Depends(get_notifier),
):
    accounts.forgot_password(db, notifier, email=payload.email)
    return StatusOut(message="If an account with that email exists, a reset code has been sent.")


@router.post("/reset-password", response_model=StatusOut, response_model_exclude_none=True)
def reset_password(payload: ResetPasswordIn, db=Depends(get_db_session)):
    accounts.reset_password(db, email=payload.email, code=payload.code, new_password=payload.new_password)
    return StatusOut(message="Password reset successfully")


@router.post("/logout", response_model=StatusOut, response_model_exclude_none=True)
def logout():
    # Tokens are stateless; the client discards its copy
    return StatusOut(message="Logged out successfully")


@router.get("/me", response_model=UserOut)
def me(
    ctx: RequestContext = Depends(get_request_context),
    db=Depends(get_db_session),
):
    return user_out(accounts.get_profile(db, ctx.user_id))
