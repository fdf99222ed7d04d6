from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UserOut(BaseModel):
    id: int
    email: str
    first_name: str | None = None
    last_name: str | None = None
    roles: list[str] = Field(default_factory=list, validation_alias="role_names")
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ChangePasswordIn(BaseModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=1, max_length=128)


class SettingsOut(BaseModel):
    daily_generic_limit: int


class UpdateSettingsIn(BaseModel):
    daily_generic_limit: int = Field(gt=0, le=10_000)


class SetRolesIn(BaseModel):
    roles: list[str] = Field(min_length=1)
