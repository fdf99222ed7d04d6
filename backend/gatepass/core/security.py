# gatepass/core/security.py
from __future__ import annotations

import hmac
import secrets
from datetime import datetime, timezone
from hashlib import sha256

from passlib.context import CryptContext

from gatepass.core.config import settings

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

# Verified against when the email is unknown so both login failure paths do
# comparable work.
_DUMMY_PASSWORD_HASH = pwd_context.hash("gatepass-dummy-password")


# -------------------------
# Password hashing
# -------------------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        pwd_context.verify(password, _DUMMY_PASSWORD_HASH)
        return False
    return pwd_context.verify(password, password_hash)


# -------------------------
# Opaque tokens
# -------------------------
def generate_refresh_token() -> str:
    """
    Cryptographically secure refresh token (48 random bytes, url-safe).
    The raw value is only ever returned to the client.
    """
    return secrets.token_urlsafe(48)


def hash_refresh_token(raw_token: str) -> str:
    """
    Store only a hash in DB.
    HMAC keyed by REFRESH_TOKEN_SECRET so a DB leak alone can't be brute-forced.
    """
    secret = (settings.REFRESH_TOKEN_SECRET or "").encode("utf-8")
    if not secret:
        raise RuntimeError("REFRESH_TOKEN_SECRET must be set to hash refresh tokens.")
    return hmac.new(secret, raw_token.encode("utf-8"), sha256).hexdigest()


def generate_reset_token() -> str:
    return secrets.token_hex(32)


def hash_reset_token(raw_token: str) -> str:
    return sha256(raw_token.encode("utf-8")).hexdigest()


def generate_resource_code(num_bytes: int = 24) -> str:
    return secrets.token_hex(num_bytes)


# -------------------------
# Time helpers
# -------------------------
def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite round-trips tz-aware datetimes as naive. Treat naive values as UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
