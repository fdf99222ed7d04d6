from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gatepass.core.database import get_db
from gatepass.dependencies.auth import get_current_user
from gatepass.models.user import User
from gatepass.schemas.user import SettingsOut, UpdateSettingsIn
from gatepass.services.claims import daily_generic_limit_for, set_daily_generic_limit

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=SettingsOut)
def get_settings(user: User = Depends(get_current_user)):
    return {"daily_generic_limit": daily_generic_limit_for(user)}


@router.put("", response_model=SettingsOut)
def update_settings(
    payload: UpdateSettingsIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    limit = set_daily_generic_limit(db, user, payload.daily_generic_limit)
    return {"daily_generic_limit": limit}
