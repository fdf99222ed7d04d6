# gatepass/routes/auth.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from gatepass.core.config import settings
from gatepass.core.database import get_db
from gatepass.core.rate_limit import limiter
from gatepass.core.tokens import issue_access_token
from gatepass.dependencies.auth import client_meta, get_current_user
from gatepass.models.user import User
from gatepass.schemas.auth import AuthOut, ForgotPasswordIn, LoginIn, MessageOut, ResetPasswordIn, SignupIn
from gatepass.schemas.user import UserOut
from gatepass.services import credentials, sessions
from gatepass.services.cookies import clear_refresh_cookie, read_refresh_cookie, set_refresh_cookie
from gatepass.services.email import EmailDeliveryError, EmailNotConfiguredError, send_password_reset_email
from gatepass.services.password_reset import issue_password_reset_token, reset_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

FORGOT_PASSWORD_MESSAGE = "If that email exists, a password reset link was sent."


def _maybe_limit(rule: str):
    if not settings.ENABLE_RATE_LIMITING:
        def passthrough(fn):
            return fn
        return passthrough
    return limiter.limit(rule)


def _auth_payload(user: User) -> dict:
    access_token = issue_access_token(sessions.access_claims_for(user))
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        "user": UserOut.model_validate(user),
    }


@router.post("/signup", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
@_maybe_limit("10/minute")
def signup(request: Request, payload: SignupIn, response: Response, db: Session = Depends(get_db)):
    user = credentials.create_user(
        db,
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        roles=payload.roles,
    )
    db.commit()
    db.refresh(user)

    issued = sessions.issue(db, user.id, client_meta(request))
    set_refresh_cookie(response, issued.raw_token)
    return _auth_payload(user)


@router.post("/login", response_model=AuthOut)
@_maybe_limit("10/minute")
def login(request: Request, payload: LoginIn, response: Response, db: Session = Depends(get_db)):
    user = credentials.verify_credentials(db, payload.email, payload.password)

    issued = sessions.issue(db, user.id, client_meta(request))
    set_refresh_cookie(response, issued.raw_token)
    return _auth_payload(user)


@router.post("/refresh", response_model=AuthOut)
def refresh(request: Request, response: Response, db: Session = Depends(get_db)):
    """
    Rotate the refresh cookie and mint a new access token from the live user row.
    """
    redemption = sessions.redeem(db, read_refresh_cookie(request), client_meta(request))
    set_refresh_cookie(response, redemption.raw_token)
    return _auth_payload(redemption.user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(request: Request, db: Session = Depends(get_db)):
    """
    Revoke the refresh token in the cookie (if any) and clear the cookie.
    Always 204, even without a cookie.
    """
    sessions.revoke(db, read_refresh_cookie(request))

    resp = Response(status_code=status.HTTP_204_NO_CONTENT)
    clear_refresh_cookie(resp)
    return resp


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user


@router.post("/forgot-password", response_model=MessageOut)
@_maybe_limit("5/minute")
def forgot_password(request: Request, payload: ForgotPasswordIn, db: Session = Depends(get_db)):
    user = credentials.get_user_by_email(db, payload.email)
    if not user or not user.is_active:
        return {"message": FORGOT_PASSWORD_MESSAGE}

    raw = issue_password_reset_token(db, user)
    db.commit()
    try:
        send_password_reset_email(user.email, user.id, raw)
    except (EmailNotConfiguredError, EmailDeliveryError):
        # Same response either way; the failure is only visible in logs.
        logger.exception("Password reset email not delivered for user id=%s", user.id)

    return {"message": FORGOT_PASSWORD_MESSAGE}


@router.post("/reset-password", response_model=MessageOut)
@_maybe_limit("10/minute")
def reset_password_route(request: Request, payload: ResetPasswordIn, db: Session = Depends(get_db)):
    reset_password(db, payload.id, payload.token, payload.new_password)
    return {"message": "Password updated. Please log in again."}
