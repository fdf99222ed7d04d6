from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from gatepass.core.database import get_db
from gatepass.core.roles import Capability
from gatepass.dependencies.auth import get_current_user, require_capability
from gatepass.models.user import User
from gatepass.schemas.ticket import EventCreateIn, EventOut, EventUpdateIn
from gatepass.services import claims

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(
    payload: EventCreateIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_capability(Capability.MANAGE_EVENTS)),
):
    return claims.create_event(
        db,
        user,
        name=payload.name,
        description=payload.description,
        location=payload.location,
        starts_at=payload.starts_at,
    )


@router.get("", response_model=list[EventOut])
def list_events(
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    return claims.list_events(db)


@router.get("/{event_id}", response_model=EventOut)
def get_event(
    event_id: int,
    db: Session = Depends(get_db),
    _user: User = Depends(get_current_user),
):
    return claims.get_event(db, event_id)


@router.put("/{event_id}", response_model=EventOut)
def update_event(
    event_id: int,
    payload: EventUpdateIn,
    db: Session = Depends(get_db),
    _user: User = Depends(require_capability(Capability.MANAGE_EVENTS)),
):
    return claims.update_event(db, event_id, payload.model_dump(exclude_unset=True))


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(
    event_id: int,
    db: Session = Depends(get_db),
    _user: User = Depends(require_capability(Capability.MANAGE_EVENTS)),
):
    claims.delete_event(db, event_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
