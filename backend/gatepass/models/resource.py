# gatepass/models/resource.py
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, func, true
from sqlalchemy.orm import relationship
from sqlalchemy.types import JSON

from gatepass.core.base import Base

KIND_GENERIC = "generic"
KIND_TICKET = "ticket"
RESOURCE_KINDS = (KIND_GENERIC, KIND_TICKET)


class ClaimableResource(Base):
    """
    A ticket or QR code that can be claimed (validated).

    For one-time resources `is_valid` goes true -> false exactly once and is
    never set back. The transition is only ever written through the guarded
    update in services/claims.py.
    """

    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(128), unique=True, index=True, nullable=False)
    kind = Column(String(20), nullable=False, default=KIND_GENERIC, server_default=KIND_GENERIC)

    # Opaque to the claim protocol.
    payload = Column(JSON, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="RESTRICT"), nullable=True, index=True)

    one_time = Column(Boolean, nullable=False, default=True, server_default=true())
    is_valid = Column(Boolean, nullable=False, default=True, server_default=true())

    expires_at = Column(DateTime(timezone=True), nullable=True)
    validated_at = Column(DateTime(timezone=True), nullable=True)
    # Set when the creator removes the code from their history while other
    # users still hold scan records for it. Such rows are invisible to claim()
    # and to the creator.
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    creator = relationship("User", foreign_keys=[created_by])
    assigned_user = relationship("User", foreign_keys=[assigned_user_id])
    event = relationship("Event", back_populates="tickets")
    scans = relationship(
        "ScanRecord",
        back_populates="resource",
        order_by="ScanRecord.scanned_at",
    )


class ScanRecord(Base):
    """Append-only audit entry for a claim attempt that succeeded."""

    __tablename__ = "scan_records"

    id = Column(Integer, primary_key=True, index=True)
    resource_id = Column(Integer, ForeignKey("resources.id", ondelete="RESTRICT"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    scanned_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    resource = relationship("ClaimableResource", back_populates="scans")
    user = relationship("User")
