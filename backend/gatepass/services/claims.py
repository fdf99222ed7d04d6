# gatepass/services/claims.py
"""
Single-use claim protocol.

claim() is the only writer of `is_valid`. For one-time resources the
true -> false edge is a guarded UPDATE:

    UPDATE resources SET is_valid = false, validated_at = :now
    WHERE id = :id AND is_valid = true

Row count 1 means this caller won; 0 means a concurrent caller already
consumed the resource, which is reported as AlreadyUsed rather than as a
store fault. The audit row is only written after the transition succeeds,
in the same transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from gatepass.core.config import settings
from gatepass.core.errors import (
    AlreadyUsed,
    AuthorizationError,
    ClaimForbidden,
    ConflictError,
    DailyLimitReached,
    Expired,
    NotFoundError,
    ResourceNotFound,
    ValidationError,
)
from gatepass.core.roles import Capability, has_capability
from gatepass.core.security import as_utc, generate_resource_code, utcnow
from gatepass.models.event import Event
from gatepass.models.resource import KIND_GENERIC, KIND_TICKET, RESOURCE_KINDS, ClaimableResource, ScanRecord
from gatepass.models.user import User
from gatepass.services.notifications import TOPIC_RESOURCE_CLAIMED, get_notification_bus

logger = logging.getLogger(__name__)


@dataclass
class ClaimResult:
    resource: ClaimableResource
    scan: ScanRecord


def get_resource_by_code(db: Session, code: str) -> ClaimableResource | None:
    return (
        db.query(ClaimableResource)
        .filter(ClaimableResource.code == code, ClaimableResource.deleted_at.is_(None))
        .first()
    )


def check_claim_policy(resource: ClaimableResource, claimant: User) -> None:
    """
    Raise ClaimForbidden unless `claimant` may validate `resource`.

    - validating at all needs VALIDATE_CODES
    - tickets are only validated by gate staff (VALIDATE_ANY_CODE)
    - otherwise only the creator, unless the claimant has VALIDATE_ANY_CODE
    """
    roles = claimant.role_names
    if not has_capability(roles, Capability.VALIDATE_CODES):
        raise ClaimForbidden()

    can_bypass_ownership = has_capability(roles, Capability.VALIDATE_ANY_CODE)
    if resource.kind == KIND_TICKET and not can_bypass_ownership:
        raise ClaimForbidden("Tickets can only be validated by scanning staff")
    if not can_bypass_ownership and resource.created_by != claimant.id:
        raise ClaimForbidden("Only the generator can validate this code")


def check_claimable(resource: ClaimableResource, now: datetime) -> None:
    # Used state wins over expiry: a consumed code reports AlreadyUsed even
    # after it would have expired.
    if not resource.is_valid:
        raise AlreadyUsed()
    expires_at = as_utc(resource.expires_at)
    if expires_at is not None and expires_at < now:
        raise Expired()


def invalidate_once(db: Session, resource_id: int, now: datetime) -> bool:
    """
    Compare-and-swap is_valid true -> false. Returns True if this call made
    the transition. Does not commit.
    """
    updated = (
        db.query(ClaimableResource)
        .filter(ClaimableResource.id == resource_id, ClaimableResource.is_valid.is_(True))
        .update(
            {ClaimableResource.is_valid: False, ClaimableResource.validated_at: now},
            synchronize_session=False,
        )
    )
    return updated == 1


def claim(db: Session, code: str, claimant: User) -> ClaimResult:
    """
    Claim (validate) a resource by its code.

    Raises ResourceNotFound, ClaimForbidden, AlreadyUsed or Expired.
    """
    code = (code or "").strip()
    resource = get_resource_by_code(db, code) if code else None
    if resource is None:
        raise ResourceNotFound()

    check_claim_policy(resource, claimant)

    now = utcnow()
    check_claimable(resource, now)

    if resource.one_time:
        if not invalidate_once(db, resource.id, now):
            db.rollback()
            logger.info("Claim lost race: resource_id=%s user_id=%s", resource.id, claimant.id)
            raise AlreadyUsed()

    scan = ScanRecord(resource_id=resource.id, user_id=claimant.id, scanned_at=now)
    db.add(scan)
    db.commit()
    db.refresh(resource)
    db.refresh(scan)

    logger.info(
        "Resource claimed: resource_id=%s kind=%s one_time=%s user_id=%s",
        resource.id,
        resource.kind,
        resource.one_time,
        claimant.id,
    )
    get_notification_bus().publish(
        TOPIC_RESOURCE_CLAIMED,
        {
            "resource_id": resource.id,
            "kind": resource.kind,
            "created_by": resource.created_by,
            "claimed_by": claimant.id,
            "scan_id": scan.id,
            "scanned_at": scan.scanned_at.isoformat() if scan.scanned_at else None,
        },
    )
    return ClaimResult(resource=resource, scan=scan)


# -----------------------------
# Resource creation
# -----------------------------
CODE_GENERATION_ATTEMPTS = 5


def _unique_code(db: Session) -> str:
    for _ in range(CODE_GENERATION_ATTEMPTS):
        code = generate_resource_code()
        exists = db.query(ClaimableResource.id).filter(ClaimableResource.code == code).first()
        if exists is None:
            return code
    raise ConflictError("Could not generate a unique code")


def daily_generic_limit_for(user: User) -> int:
    if user.daily_generic_limit and user.daily_generic_limit > 0:
        return int(user.daily_generic_limit)
    return int(settings.DAILY_GENERIC_CODE_LIMIT)


def generic_created_since(db: Session, user: User, since: datetime) -> int:
    return (
        db.query(func.count(ClaimableResource.id))
        .filter(
            ClaimableResource.created_by == user.id,
            ClaimableResource.kind == KIND_GENERIC,
            ClaimableResource.created_at >= since,
            ClaimableResource.deleted_at.is_(None),
        )
        .scalar()
        or 0
    )


def enforce_daily_generic_limit(db: Session, user: User) -> None:
    """Rolling 24 hour window, not calendar days."""
    limit = daily_generic_limit_for(user)
    used = generic_created_since(db, user, utcnow() - timedelta(hours=24))
    if used >= limit:
        logger.info("Daily generic limit reached: user_id=%s used=%s limit=%s", user.id, used, limit)
        raise DailyLimitReached(details={"limit": limit, "used": used})


def create_resource(
    db: Session,
    creator: User,
    payload: Any,
    *,
    kind: str = KIND_GENERIC,
    one_time: bool = True,
    expires_at: datetime | None = None,
    assigned_user_id: int | None = None,
    event_id: int | None = None,
    commit: bool = True,
) -> ClaimableResource:
    if kind not in RESOURCE_KINDS:
        raise ValidationError(f"Unknown resource kind: {kind}")
    if payload is None:
        raise ValidationError("payload is required")
    if isinstance(payload, dict) and not payload.get("content"):
        raise ValidationError("Object payload must include 'content'")

    if kind == KIND_GENERIC:
        enforce_daily_generic_limit(db, creator)

    resource = ClaimableResource(
        code=_unique_code(db),
        kind=kind,
        payload=payload,
        created_by=creator.id,
        assigned_user_id=assigned_user_id,
        event_id=event_id,
        one_time=one_time,
        is_valid=True,
        expires_at=expires_at,
        created_at=utcnow(),
    )
    db.add(resource)
    if commit:
        db.commit()
        db.refresh(resource)
    else:
        db.flush()
    return resource


# -----------------------------
# Settings
# -----------------------------
def set_daily_generic_limit(db: Session, user: User, limit: int) -> int:
    if limit is None or int(limit) <= 0:
        raise ValidationError("daily_generic_limit must be a positive integer")
    user.daily_generic_limit = int(limit)
    db.add(user)
    db.commit()
    db.refresh(user)
    return int(user.daily_generic_limit)


# -----------------------------
# History
# -----------------------------
@dataclass
class HistoryItem:
    resource: ClaimableResource
    source: str  # "generated" | "scanned"
    scanned_at: datetime | None = None

    @property
    def sort_key(self) -> datetime:
        ts = self.scanned_at if self.source == "scanned" else self.resource.created_at
        return as_utc(ts) or datetime.min.replace(tzinfo=timezone.utc)


def list_history(db: Session, user: User) -> list[HistoryItem]:
    """Codes the user generated plus codes the user scanned, newest first."""
    generated = (
        db.query(ClaimableResource)
        .filter(ClaimableResource.created_by == user.id, ClaimableResource.deleted_at.is_(None))
        .all()
    )
    scans = (
        db.query(ScanRecord)
        .options(joinedload(ScanRecord.resource))
        .filter(ScanRecord.user_id == user.id)
        .all()
    )

    items = [HistoryItem(resource=r, source="generated") for r in generated]
    items += [HistoryItem(resource=s.resource, source="scanned", scanned_at=s.scanned_at) for s in scans]
    items.sort(key=lambda i: i.sort_key, reverse=True)
    return items


def _user_scans_of(db: Session, user: User, resource_id: int):
    return db.query(ScanRecord).filter(
        ScanRecord.resource_id == resource_id,
        ScanRecord.user_id == user.id,
    )


def get_history_item(db: Session, user: User, resource_id: int) -> HistoryItem:
    resource = db.query(ClaimableResource).filter(ClaimableResource.id == resource_id).first()
    if resource is None:
        raise NotFoundError("History item not found")

    if resource.created_by == user.id and resource.deleted_at is None:
        return HistoryItem(resource=resource, source="generated")

    scan = _user_scans_of(db, user, resource_id).order_by(ScanRecord.scanned_at.desc()).first()
    if scan is None:
        if resource.deleted_at is not None:
            raise NotFoundError("History item not found")
        raise AuthorizationError("Not allowed to view this item")
    return HistoryItem(resource=resource, source="scanned", scanned_at=scan.scanned_at)


def delete_history_item(db: Session, user: User, resource_id: int) -> str:
    """
    Remove one entry from the user's history and return which kind it was.

    The user's most recent scan of the resource goes first, one row per call.
    Once the user has no scans left, their own generated resource is removed.
    If other users have scanned the resource it is only marked deleted
    (hidden from the creator and from claim()) and their scan records stay.
    """
    scan = (
        _user_scans_of(db, user, resource_id)
        .order_by(ScanRecord.scanned_at.desc(), ScanRecord.id.desc())
        .first()
    )
    if scan is not None:
        db.delete(scan)
        db.commit()
        return "scanned"

    resource = (
        db.query(ClaimableResource)
        .filter(
            ClaimableResource.id == resource_id,
            ClaimableResource.created_by == user.id,
            ClaimableResource.deleted_at.is_(None),
        )
        .first()
    )
    if resource is None:
        raise NotFoundError("History item not found")

    has_scans = db.query(ScanRecord.id).filter(ScanRecord.resource_id == resource_id).first() is not None
    if has_scans:
        resource.deleted_at = utcnow()
        db.add(resource)
    else:
        db.delete(resource)
    db.commit()
    logger.info(
        "Deleted resource id=%s by creator user_id=%s soft=%s",
        resource_id,
        user.id,
        has_scans,
    )
    return "generated"


# -----------------------------
# Events and tickets
# -----------------------------
def create_event(
    db: Session,
    creator: User,
    *,
    name: str,
    description: str | None = None,
    location: str | None = None,
    starts_at: datetime | None = None,
) -> Event:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Event name is required")
    event = Event(
        name=name,
        description=description,
        location=location,
        starts_at=starts_at,
        created_by=creator.id,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def list_events(db: Session) -> list[Event]:
    return db.query(Event).order_by(Event.starts_at.is_(None), Event.starts_at, Event.id).all()


def get_event(db: Session, event_id: int) -> Event:
    event = db.query(Event).filter(Event.id == event_id).first()
    if event is None:
        raise NotFoundError("Event not found")
    return event


_EVENT_FIELDS = ("name", "description", "location", "starts_at")


def update_event(db: Session, event_id: int, changes: dict[str, Any]) -> Event:
    """Apply a partial update; only keys present in `changes` are touched."""
    event = get_event(db, event_id)
    for field in _EVENT_FIELDS:
        if field not in changes:
            continue
        value = changes[field]
        if field == "name":
            value = (value or "").strip()
            if not value:
                raise ValidationError("Event name is required")
        setattr(event, field, value)
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def delete_event(db: Session, event_id: int) -> None:
    """
    Delete an event. Refused with ConflictError once tickets have been issued
    for it; issued tickets always keep their event.
    """
    event = get_event(db, event_id)
    issued = (
        db.query(func.count(ClaimableResource.id))
        .filter(ClaimableResource.event_id == event.id)
        .scalar()
        or 0
    )
    if issued:
        raise ConflictError(
            "Event has issued tickets and cannot be deleted",
            details={"tickets": int(issued)},
        )
    db.delete(event)
    db.commit()
    logger.info("Deleted event id=%s", event_id)


def issue_tickets(
    db: Session,
    issuer: User,
    *,
    user_id: int,
    event_id: int,
    quantity: int = 1,
    expires_at: datetime | None = None,
) -> list[ClaimableResource]:
    """Issue `quantity` one-time tickets for `event_id` to `user_id`, all or nothing."""
    if quantity < 1:
        raise ValidationError("quantity must be at least 1")

    holder = db.query(User).filter(User.id == user_id).first()
    if holder is None:
        raise NotFoundError("User not found")
    event = db.query(Event).filter(Event.id == event_id).first()
    if event is None:
        raise NotFoundError("Event not found")

    tickets = [
        create_resource(
            db,
            issuer,
            {"content": f"{event.name} #{n}", "event_id": event.id, "event_name": event.name},
            kind=KIND_TICKET,
            one_time=True,
            expires_at=expires_at,
            assigned_user_id=holder.id,
            event_id=event.id,
            commit=False,
        )
        for n in range(1, quantity + 1)
    ]
    db.commit()
    for t in tickets:
        db.refresh(t)

    logger.info(
        "Issued %s tickets: event_id=%s user_id=%s issuer_id=%s",
        len(tickets),
        event.id,
        holder.id,
        issuer.id,
    )
    return tickets


def list_user_tickets(db: Session, user: User) -> list[ClaimableResource]:
    return (
        db.query(ClaimableResource)
        .filter(
            ClaimableResource.assigned_user_id == user.id,
            ClaimableResource.kind == KIND_TICKET,
            ClaimableResource.deleted_at.is_(None),
        )
        .order_by(ClaimableResource.created_at.desc(), ClaimableResource.id.desc())
        .all()
    )
