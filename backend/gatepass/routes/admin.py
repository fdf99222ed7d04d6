# gatepass/routes/admin.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gatepass.core.database import get_db
from gatepass.core.errors import NotFoundError
from gatepass.core.roles import Capability, Role
from gatepass.dependencies.auth import require_capability
from gatepass.models.user import User
from gatepass.schemas.auth import MessageOut
from gatepass.schemas.user import SetRolesIn, UserOut
from gatepass.services import credentials
from gatepass.services.notifications import (
    TOPIC_SESSION_REVOKED,
    TOPIC_USER_ROLES_CHANGED,
    get_notification_bus,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_target(db: Session, user_id: int) -> User:
    user = credentials.get_user(db, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def _roles_changed(db: Session, target: User, admin: User, before: list[str]) -> User:
    # set_roles already bumped token_version. Refresh sessions stay valid: the
    # next refresh mints claims with the new role set.
    db.commit()
    db.refresh(target)
    logger.info("Admin id=%s changed roles of user id=%s: %s -> %s", admin.id, target.id, before, target.role_names)
    get_notification_bus().publish(
        TOPIC_USER_ROLES_CHANGED,
        {"user_id": target.id, "roles": target.role_names, "changed_by": admin.id},
    )
    return target


@router.put("/users/{user_id}/roles", response_model=UserOut)
def set_user_roles(
    user_id: int,
    payload: SetRolesIn,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_USERS)),
):
    target = _get_target(db, user_id)
    before = target.role_names
    credentials.set_roles(db, target, payload.roles)
    if target.role_names == before:
        return target
    return _roles_changed(db, target, admin, before)


@router.post("/users/{user_id}/promote", response_model=UserOut)
def promote_user(
    user_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_USERS)),
):
    target = _get_target(db, user_id)
    before = target.role_names
    credentials.add_role(db, target, Role.ADMIN)
    if target.role_names == before:
        return target
    return _roles_changed(db, target, admin, before)


@router.post("/users/{user_id}/force-logout", response_model=MessageOut)
def force_logout(
    user_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.MANAGE_USERS)),
):
    target = _get_target(db, user_id)
    revoked = credentials.force_logout(db, target)
    db.commit()
    logger.info("Admin id=%s forced logout of user id=%s", admin.id, target.id)
    get_notification_bus().publish(
        TOPIC_SESSION_REVOKED,
        {"user_id": target.id, "revoked": revoked, "by": admin.id},
    )
    return {"message": f"Revoked {revoked} sessions"}
