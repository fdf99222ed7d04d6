# gatepass/core/tokens.py
"""
Access tokens: short-lived HS256 JWTs.

Verification is stateless. jose's decode checks the signature and `exp` in one
call, so there is no window between "signature ok" and "not expired". Callers
that need immediate revocation compare `ver` against the live user row
(see dependencies/auth.py).
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from jose import JWTError, jwt

from gatepass.core.config import settings
from gatepass.core.errors import InvalidOrExpiredToken
from gatepass.core.security import utcnow

ACCESS_PURPOSE = "access"


@dataclass(frozen=True)
class AccessClaims:
    user_id: int
    email: str
    roles: list[str] = field(default_factory=list)
    token_version: int = 0
    issued_at: int | None = None
    expires_at: int | None = None
    jti: str | None = None


def _require_jwt_secret() -> str:
    secret = (settings.JWT_SECRET or "").strip()
    if not secret:
        raise RuntimeError("JWT_SECRET must be set (auth is required).")
    return secret


def issue_access_token(claims: AccessClaims) -> str:
    secret = _require_jwt_secret()

    now = utcnow()
    exp = now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    payload: dict[str, Any] = {
        "sub": str(claims.user_id),
        "email": claims.email,
        "roles": list(claims.roles),
        "ver": int(claims.token_version),
        "purpose": ACCESS_PURPOSE,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, secret, algorithm=settings.JWT_ALGORITHM)


def verify_access_token(token: str) -> AccessClaims:
    secret = _require_jwt_secret()
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise InvalidOrExpiredToken()

    if payload.get("purpose") != ACCESS_PURPOSE:
        raise InvalidOrExpiredToken()

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise InvalidOrExpiredToken()

    roles = payload.get("roles")
    return AccessClaims(
        user_id=user_id,
        email=str(payload.get("email") or ""),
        roles=[str(r) for r in roles] if isinstance(roles, list) else [],
        token_version=int(payload.get("ver") or 0),
        issued_at=payload.get("iat"),
        expires_at=payload.get("exp"),
        jti=payload.get("jti"),
    )
