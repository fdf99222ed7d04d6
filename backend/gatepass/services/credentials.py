# gatepass/services/credentials.py
"""
Credential store.

Responsibilities:
- Creating users (self-service signup and admin provisioning)
- Verifying email/password pairs with one generic failure
- Password and role changes, which always bump `token_version` so access
  tokens minted before the change stop passing the live-version check
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gatepass.core.config import settings
from gatepass.core.errors import EmailInUse, InvalidCredentials, ValidationError
from gatepass.core.password_policy import ensure_strong_password
from gatepass.core.roles import Role, parse_roles
from gatepass.core.security import hash_password, utcnow, verify_password
from gatepass.models.user import User, UserRole
from gatepass.services import sessions

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    """Look up a user by email address."""
    return db.query(User).filter(User.email == normalize_email(email)).first()


def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def _signup_roles(requested: Iterable[str]) -> list[Role]:
    allowed = set(settings.ALLOWED_SIGNUP_ROLES)
    safe: list[Role] = []
    for raw in requested or []:
        try:
            roles = parse_roles([raw])
        except ValueError:
            continue
        # Silently drop anything privileged (e.g. ADMIN) a client asks for.
        if roles and roles[0].value in allowed and roles[0] not in safe:
            safe.append(roles[0])
    return safe


def create_user(
    db: Session,
    *,
    email: str,
    password: str,
    first_name: str | None = None,
    last_name: str | None = None,
    roles: Iterable[str] = (),
    trusted_roles: bool = False,
) -> User:
    """
    Create a user. Raises EmailInUse if the address is taken.

    trusted_roles=False (signup) keeps only ALLOWED_SIGNUP_ROLES.
    trusted_roles=True (admin provisioning / bootstrap) accepts any Role.
    Users always end up with at least the USER role.
    """
    normalized_email = normalize_email(email)
    if not normalized_email or not password:
        raise ValidationError("Email and password are required")

    ensure_strong_password(password, email=normalized_email)

    if trusted_roles:
        try:
            role_list = parse_roles(roles)
        except ValueError as e:
            raise ValidationError(str(e))
    else:
        role_list = _signup_roles(roles)
    if not role_list:
        role_list = [Role.USER]

    if get_user_by_email(db, normalized_email):
        raise EmailInUse()

    user = User(
        email=normalized_email,
        first_name=(first_name or "").strip() or None,
        last_name=(last_name or "").strip() or None,
        password_hash=hash_password(password),
        token_version=0,
        is_active=True,
        password_changed_at=utcnow(),
    )
    user.roles = [UserRole(role=r.value) for r in role_list]
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        # Lost a race with a concurrent signup for the same email.
        db.rollback()
        raise EmailInUse()

    logger.info("Created user id=%s roles=%s", user.id, [r.value for r in role_list])
    return user


def verify_credentials(db: Session, email: str, password: str) -> User:
    """
    Return the user for a correct email/password pair.

    Unknown email, inactive account and wrong password all raise the same
    InvalidCredentials so callers can't enumerate accounts.
    """
    user = get_user_by_email(db, email)
    if user is None:
        verify_password(password, None)
        raise InvalidCredentials()

    if not verify_password(password, user.password_hash) or not user.is_active:
        logger.info("Login failed for user id=%s", user.id)
        raise InvalidCredentials()

    return user


def bump_token_version(db: Session, user: User) -> int:
    """
    Invalidate every access token issued to `user` so far.

    Done as `token_version = token_version + 1` in SQL so concurrent bumps
    can't collapse into one.
    """
    db.query(User).filter(User.id == user.id).update(
        {User.token_version: User.token_version + 1},
        synchronize_session=False,
    )
    db.flush()
    db.refresh(user)
    return int(user.token_version)


def set_password(db: Session, user: User, new_password: str) -> None:
    """
    Rotate the password hash, bump token_version and revoke every refresh token.
    Caller commits.
    """
    ensure_strong_password(new_password, email=user.email)
    user.password_hash = hash_password(new_password)
    user.password_changed_at = utcnow()
    db.add(user)
    db.flush()
    bump_token_version(db, user)
    sessions.revoke_all_for_user(db, user.id)


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    if current_password == new_password:
        raise ValidationError("New password must be different from current password")
    set_password(db, user, new_password)


def set_roles(db: Session, user: User, roles: Iterable[str | Role]) -> list[Role]:
    """
    Replace the user's role set. Bumps token_version so the old role
    snapshot in outstanding access tokens is rejected.
    """
    try:
        role_list = parse_roles(roles)
    except ValueError as e:
        raise ValidationError(str(e))
    if not role_list:
        raise ValidationError("At least one role is required")

    current = {r.role for r in user.roles}
    wanted = {r.value for r in role_list}
    if current == wanted:
        return role_list

    user.roles = [r for r in user.roles if r.role in wanted]
    for name in sorted(wanted - current):
        user.roles.append(UserRole(role=name))
    db.add(user)
    db.flush()
    bump_token_version(db, user)
    logger.info("Roles changed for user id=%s: %s -> %s", user.id, sorted(current), sorted(wanted))
    return role_list


def add_role(db: Session, user: User, role: Role) -> list[Role]:
    current = get_user_roles(user)
    if role in current:
        return current
    return set_roles(db, user, current + [role])


def force_logout(db: Session, user: User) -> int:
    """Revoke every session and invalidate outstanding access tokens."""
    revoked = sessions.revoke_all_for_user(db, user.id)
    bump_token_version(db, user)
    logger.info("Forced logout for user id=%s revoked_sessions=%s", user.id, revoked)
    return revoked


def get_user_roles(user: User) -> list[Role]:
    return parse_roles(user.role_names)
