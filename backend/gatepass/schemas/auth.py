# gatepass/schemas/auth.py
from pydantic import BaseModel, EmailStr, Field

from gatepass.schemas.user import UserOut


class SignupIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    roles: list[str] = Field(default_factory=list)


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class AuthOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut


class MessageOut(BaseModel):
    message: str


class ForgotPasswordIn(BaseModel):
    email: EmailStr


class ResetPasswordIn(BaseModel):
    id: int
    token: str = Field(min_length=1, max_length=256)
    new_password: str = Field(min_length=1, max_length=128)
