from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from gatepass.core.config import settings
from gatepass.core.errors import InvalidResetToken
from gatepass.core.password_policy import ensure_strong_password
from gatepass.core.security import as_utc, generate_reset_token, hash_reset_token, utcnow
from gatepass.models.password_reset_token import PasswordResetToken
from gatepass.models.user import User
from gatepass.services import credentials

logger = logging.getLogger(__name__)


def issue_password_reset_token(db: Session, user: User) -> str:
    """
    Create a single-purpose reset token for `user` and return the raw value.
    Only its SHA-256 is stored. Earlier unused tokens are dropped so only the
    latest link works.
    """
    (
        db.query(PasswordResetToken)
        .filter(PasswordResetToken.user_id == user.id, PasswordResetToken.used_at.is_(None))
        .delete(synchronize_session=False)
    )

    raw = generate_reset_token()
    db.add(
        PasswordResetToken(
            user_id=user.id,
            token_hash=hash_reset_token(raw),
            expires_at=utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES),
        )
    )
    db.flush()
    return raw


def reset_password(db: Session, user_id: int, raw_token: str, new_password: str) -> User:
    """
    Consume a reset token and set the new password.

    The token is marked used with a guarded UPDATE (`used_at IS NULL`), so a
    token can succeed at most once even under concurrent submissions.
    Unknown, mismatched, expired and used tokens all raise InvalidResetToken.
    """
    record = (
        db.query(PasswordResetToken)
        .filter(PasswordResetToken.token_hash == hash_reset_token(raw_token or ""))
        .first()
    )
    if record is None or record.user_id != user_id or record.used_at is not None:
        raise InvalidResetToken()

    now = utcnow()
    expires_at = as_utc(record.expires_at)
    if expires_at is None or expires_at <= now:
        raise InvalidResetToken()

    user = credentials.get_user(db, user_id)
    if user is None or not user.is_active:
        raise InvalidResetToken()

    # Policy check before consuming, so a weak password doesn't burn the token.
    ensure_strong_password(new_password, email=user.email)

    consumed = (
        db.query(PasswordResetToken)
        .filter(PasswordResetToken.id == record.id, PasswordResetToken.used_at.is_(None))
        .update({PasswordResetToken.used_at: now}, synchronize_session=False)
    )
    if consumed != 1:
        db.rollback()
        raise InvalidResetToken()

    credentials.set_password(db, user, new_password)
    db.commit()
    logger.info("Password reset completed for user id=%s", user.id)
    return user
