# gatepass/services/cookies.py
"""
Refresh cookie transport. The refresh token only ever travels in an httpOnly
cookie scoped to the auth endpoints; it never appears in a response body.
"""
from __future__ import annotations

from fastapi import Request, Response

from gatepass.core.config import settings
from gatepass.services.sessions import refresh_ttl_seconds


def cookie_name() -> str:
    return str(getattr(settings, "REFRESH_COOKIE_NAME", "refresh_token")).strip() or "refresh_token"


def cookie_path() -> str:
    return str(getattr(settings, "REFRESH_COOKIE_PATH", "/auth")).strip() or "/auth"


def cookie_domain() -> str | None:
    return getattr(settings, "REFRESH_COOKIE_DOMAIN", None) or None


def cookie_secure() -> bool:
    # Dev runs on http://localhost, where a Secure cookie would never be sent back.
    return settings.is_prod


def cookie_samesite() -> str:
    v = str(getattr(settings, "REFRESH_COOKIE_SAMESITE", "lax")).lower().strip()
    if v not in {"lax", "strict", "none"}:
        return "lax"
    return v


def set_refresh_cookie(resp: Response, raw_refresh_token: str) -> None:
    resp.set_cookie(
        key=cookie_name(),
        value=raw_refresh_token,
        httponly=True,
        secure=cookie_secure(),
        samesite=cookie_samesite(),
        max_age=refresh_ttl_seconds(),
        path=cookie_path(),
        domain=cookie_domain(),
    )


def clear_refresh_cookie(resp: Response) -> None:
    resp.delete_cookie(
        key=cookie_name(),
        path=cookie_path(),
        domain=cookie_domain(),
    )


def read_refresh_cookie(req: Request) -> str | None:
    val = req.cookies.get(cookie_name())
    if not val:
        return None
    val = val.strip()
    return val or None
