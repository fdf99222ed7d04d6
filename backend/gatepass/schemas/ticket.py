from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from gatepass.schemas.resource import ResourceOut


class EventCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    location: str | None = Field(default=None, max_length=255)
    starts_at: datetime | None = None


class EventUpdateIn(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    location: str | None = Field(default=None, max_length=255)
    starts_at: datetime | None = None


class EventOut(BaseModel):
    id: int
    name: str
    description: str | None = None
    location: str | None = None
    starts_at: datetime | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class IssueTicketsIn(BaseModel):
    user_id: int
    event_id: int
    quantity: int = Field(default=1, ge=1, le=100)
    expires_at: datetime | None = None


class TicketsOut(BaseModel):
    tickets: list[ResourceOut]
