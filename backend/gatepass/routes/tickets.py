from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from gatepass.core.database import get_db
from gatepass.core.roles import Capability
from gatepass.dependencies.auth import require_capability
from gatepass.models.user import User
from gatepass.schemas.ticket import IssueTicketsIn, TicketsOut
from gatepass.services import claims

router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.post("/issue", response_model=TicketsOut, status_code=status.HTTP_201_CREATED)
def issue_tickets(
    payload: IssueTicketsIn,
    db: Session = Depends(get_db),
    admin: User = Depends(require_capability(Capability.ISSUE_TICKETS)),
):
    tickets = claims.issue_tickets(
        db,
        admin,
        user_id=payload.user_id,
        event_id=payload.event_id,
        quantity=payload.quantity,
        expires_at=payload.expires_at,
    )
    return {"tickets": tickets}


@router.get("/me", response_model=TicketsOut)
def my_tickets(
    db: Session = Depends(get_db),
    user: User = Depends(require_capability(Capability.VIEW_OWN_TICKETS)),
):
    return {"tickets": claims.list_user_tickets(db, user)}
