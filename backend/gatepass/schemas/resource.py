from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ResourceCreateIn(BaseModel):
    payload: Any
    one_time: bool = True
    expires_at: datetime | None = None

    @field_validator("payload")
    @classmethod
    def _object_payload_needs_content(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("payload is required")
        if isinstance(v, dict) and not v.get("content"):
            raise ValueError("Object payload must include 'content'")
        return v


class ValidateIn(BaseModel):
    code: str = Field(min_length=1, max_length=128)


class ResourceOut(BaseModel):
    id: int
    code: str
    kind: str
    payload: Any = None
    one_time: bool
    is_valid: bool
    created_by: int
    assigned_user_id: int | None = None
    event_id: int | None = None
    created_at: datetime | None = None
    expires_at: datetime | None = None
    validated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ScanRecordOut(BaseModel):
    id: int
    resource_id: int
    user_id: int
    scanned_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ValidateOut(BaseModel):
    resource: ResourceOut
    audit_entry: ScanRecordOut
    message: str = "Code validated successfully"


class HistoryItemOut(BaseModel):
    resource: ResourceOut
    source: Literal["generated", "scanned"]
    scanned_at: datetime | None = None


class HistoryOut(BaseModel):
    items: list[HistoryItemOut]
