from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from gatepass.core.database import get_db
from gatepass.dependencies.auth import get_current_user
from gatepass.models.user import User
from gatepass.schemas.auth import MessageOut
from gatepass.schemas.user import ChangePasswordIn
from gatepass.services import credentials
from gatepass.services.cookies import clear_refresh_cookie

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/me/change-password", response_model=MessageOut)
def change_password(
    payload: ChangePasswordIn,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    # Revokes every session (this one included) and bumps token_version.
    credentials.change_password(db, user, payload.current_password, payload.new_password)
    db.commit()
    clear_refresh_cookie(response)
    return {"message": "Password updated. Please log in again."}


@router.post("/me/logout-all", response_model=MessageOut)
def logout_all(
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    credentials.force_logout(db, user)
    db.commit()
    clear_refresh_cookie(response)
    return {"message": "Logged out from all sessions"}
