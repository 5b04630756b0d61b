from pydantic import BaseModel, Field

from models.enums import Role


class RegisterRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=6)
    number: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)
    confirm_password: str


class PredefinedAccountRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=6)
    role: Role
    number: str | None = None
    name: str
