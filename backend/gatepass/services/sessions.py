# gatepass/services/sessions.py
"""
Session ledger: opaque, rotating refresh tokens.

Each refresh token is single-use. Redeeming it revokes the row with a guarded
UPDATE (`... WHERE revoked_at IS NULL`) and links the replacement through
`replaced_by_id`, all in one transaction. Two concurrent redemptions of the
same token can't both see the row as active: the loser updates zero rows.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from gatepass.core.config import settings
from gatepass.core.errors import InvalidRefreshToken
from gatepass.core.security import as_utc, generate_refresh_token, hash_refresh_token, utcnow
from gatepass.core.tokens import AccessClaims
from gatepass.models.refresh_token import RefreshToken
from gatepass.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientMeta:
    ip: str | None = None
    user_agent: str | None = None


@dataclass
class IssuedSession:
    raw_token: str
    record: RefreshToken


@dataclass
class Redemption:
    raw_token: str
    record: RefreshToken
    user: User
    claims: AccessClaims


def refresh_token_expiry() -> datetime:
    days = int(getattr(settings, "REFRESH_TOKEN_EXPIRE_DAYS", 7))
    return utcnow() + timedelta(days=days)


def refresh_ttl_seconds() -> int:
    return int(getattr(settings, "REFRESH_TOKEN_EXPIRE_DAYS", 7)) * 24 * 3600


def access_claims_for(user: User) -> AccessClaims:
    """Claims are always derived from the live user row."""
    return AccessClaims(
        user_id=user.id,
        email=user.email,
        roles=user.role_names,
        token_version=int(user.token_version or 0),
    )


def _new_record(db: Session, user_id: int, client_meta: ClientMeta | None) -> IssuedSession:
    meta = client_meta or ClientMeta()
    raw = generate_refresh_token()
    rt = RefreshToken(
        user_id=user_id,
        token_hash=hash_refresh_token(raw),
        issued_at=utcnow(),
        expires_at=refresh_token_expiry(),
        revoked_at=None,
        ip=(meta.ip or None),
        user_agent=(meta.user_agent or "")[:512] or None,
    )
    db.add(rt)
    db.flush()
    return IssuedSession(raw_token=raw, record=rt)


def issue(db: Session, user_id: int, client_meta: ClientMeta | None = None) -> IssuedSession:
    """
    Create a new refresh token for user, store only its hash, return the raw value.
    """
    issued = _new_record(db, user_id, client_meta)
    db.commit()
    return issued


def _handle_reuse(db: Session, rt: RefreshToken) -> None:
    # A rotated token came back: either a replayed request or a stolen token.
    logger.warning(
        "Refresh token reuse detected: token_id=%s user_id=%s replaced_by=%s",
        rt.id,
        rt.user_id,
        rt.replaced_by_id,
    )
    if settings.REFRESH_REUSE_REVOKES_ALL:
        revoked = revoke_all_for_user(db, rt.user_id)
        db.commit()
        logger.warning("Revoked %s active sessions for user_id=%s after reuse", revoked, rt.user_id)


def redeem(db: Session, raw_token: str | None, client_meta: ClientMeta | None = None) -> Redemption:
    """
    Rotate a refresh token. Unknown, expired and revoked tokens all raise the
    same InvalidRefreshToken.
    """
    if not raw_token:
        raise InvalidRefreshToken()

    token_hash = hash_refresh_token(raw_token)
    rt = db.query(RefreshToken).filter(RefreshToken.token_hash == token_hash).first()
    if rt is None:
        raise InvalidRefreshToken()

    if rt.revoked_at is not None:
        if rt.replaced_by_id is not None:
            _handle_reuse(db, rt)
        raise InvalidRefreshToken()

    now = utcnow()
    expires_at = as_utc(rt.expires_at)
    if expires_at is None or expires_at <= now:
        raise InvalidRefreshToken()

    user = db.query(User).filter(User.id == rt.user_id).first()
    if user is None or not user.is_active:
        raise InvalidRefreshToken()

    won = (
        db.query(RefreshToken)
        .filter(RefreshToken.id == rt.id, RefreshToken.revoked_at.is_(None))
        .update({RefreshToken.revoked_at: now}, synchronize_session=False)
    )
    if won != 1:
        # A concurrent redeem rotated it first.
        db.rollback()
        raise InvalidRefreshToken()

    issued = _new_record(db, user.id, client_meta)
    db.query(RefreshToken).filter(RefreshToken.id == rt.id).update(
        {RefreshToken.replaced_by_id: issued.record.id},
        synchronize_session=False,
    )
    db.commit()
    db.refresh(user)

    return Redemption(
        raw_token=issued.raw_token,
        record=issued.record,
        user=user,
        claims=access_claims_for(user),
    )


def revoke(db: Session, raw_token: str | None) -> bool:
    """Revoke the session behind a raw token. Returns False if nothing changed."""
    if not raw_token:
        return False
    updated = (
        db.query(RefreshToken)
        .filter(
            RefreshToken.token_hash == hash_refresh_token(raw_token),
            RefreshToken.revoked_at.is_(None),
        )
        .update({RefreshToken.revoked_at: utcnow()}, synchronize_session=False)
    )
    db.commit()
    return bool(updated)


def revoke_all_for_user(db: Session, user_id: int) -> int:
    """
    Revoke every active refresh token of a user. Does not commit: this runs
    inside password changes and forced logouts which commit as a whole.
    """
    return (
        db.query(RefreshToken)
        .filter(RefreshToken.user_id == user_id)
        .filter(RefreshToken.revoked_at.is_(None))
        .update({RefreshToken.revoked_at: utcnow()}, synchronize_session=False)
    )


def purge_expired(db: Session, older_than: timedelta = timedelta(days=30)) -> int:
    """
    Delete refresh tokens that expired more than `older_than` ago.
    Everything more recent stays as the audit trail.
    """
    cutoff = utcnow() - older_than
    deleted = (
        db.query(RefreshToken)
        .filter(RefreshToken.expires_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info("Purged %s refresh tokens expired before %s", deleted, cutoff.isoformat())
    return deleted
