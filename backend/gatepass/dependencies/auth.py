# gatepass/dependencies/auth.py
from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from gatepass.core.database import get_db
from gatepass.core.errors import InvalidOrExpiredToken
from gatepass.core.roles import Capability, has_capability
from gatepass.core.tokens import verify_access_token
from gatepass.models.user import User
from gatepass.services.sessions import ClientMeta

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Validates:
      - Authorization: Bearer <token>
      - token signature + exp (one decode)
      - user exists + is_active
      - token `ver` matches the live token_version
    Returns:
      - User SQLAlchemy model
    """
    if not creds or creds.scheme.lower() != "bearer":
        raise _unauthorized("Missing Authorization header")

    try:
        claims = verify_access_token(creds.credentials)
    except InvalidOrExpiredToken:
        raise _unauthorized("Invalid or expired token")

    user = db.query(User).filter(User.id == claims.user_id).first()
    if not user:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise _unauthorized("User is inactive")
    if int(user.token_version or 0) != claims.token_version:
        raise _unauthorized("Invalid or expired token")

    return user


def require_capability(capability: Capability) -> Callable[..., User]:
    """
    Dependency factory. Checks the live role set of the user row, not the
    snapshot inside the access token.
    """

    def dependency(user: User = Depends(get_current_user)) -> User:
        if not has_capability(user.role_names, capability):
            raise HTTPException(status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user

    return dependency


def client_meta(request: Request) -> ClientMeta:
    return ClientMeta(
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
