# gatepass/routes/resources.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from gatepass.core.config import settings
from gatepass.core.database import get_db
from gatepass.core.rate_limit import limiter
from gatepass.core.roles import Capability
from gatepass.dependencies.auth import get_current_user, require_capability
from gatepass.models.user import User
from gatepass.schemas.resource import (
    HistoryItemOut,
    HistoryOut,
    ResourceCreateIn,
    ResourceOut,
    ValidateIn,
    ValidateOut,
)
from gatepass.services import claims

router = APIRouter(prefix="/resources", tags=["resources"])


def _maybe_limit(rule: str):
    if not settings.ENABLE_RATE_LIMITING:
        def passthrough(fn):
            return fn
        return passthrough
    return limiter.limit(rule)


def _history_out(item: claims.HistoryItem) -> HistoryItemOut:
    return HistoryItemOut(
        resource=ResourceOut.model_validate(item.resource),
        source=item.source,
        scanned_at=item.scanned_at,
    )


@router.post("", response_model=ResourceOut, status_code=status.HTTP_201_CREATED)
def create_resource(
    payload: ResourceCreateIn,
    db: Session = Depends(get_db),
    user: User = Depends(require_capability(Capability.GENERATE_CODES)),
):
    return claims.create_resource(
        db,
        user,
        payload.payload,
        one_time=payload.one_time,
        expires_at=payload.expires_at,
    )


@router.post("/validate", response_model=ValidateOut)
@_maybe_limit("60/minute")
def validate_resource(
    request: Request,
    payload: ValidateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    # Capability checks live in claims.check_claim_policy so they run after
    # the lookup (unknown codes are 404 for everyone).
    result = claims.claim(db, payload.code, user)
    return {
        "resource": result.resource,
        "audit_entry": result.scan,
        "message": "Code validated successfully",
    }


@router.get("/history", response_model=HistoryOut)
def list_history(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return {"items": [_history_out(i) for i in claims.list_history(db, user)]}


@router.get("/history/{resource_id}", response_model=HistoryItemOut)
def get_history_item(
    resource_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return _history_out(claims.get_history_item(db, user, resource_id))


@router.delete("/history/{resource_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_history_item(
    resource_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    claims.delete_history_item(db, user, resource_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
