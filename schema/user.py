from pydantic import BaseModel

from models.enums import Role


class ProfileUpdate(BaseModel):
    number: str | None = None
    name: str | None = None


class AdminUserUpdate(BaseModel):
    email: str | None = None
    number: str | None = None
    name: str | None = None
    role: Role | None = None
