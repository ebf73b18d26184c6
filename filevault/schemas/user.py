import uuid
from datetime import datetime

from pydantic import Field

from filevault.models.user import Role
from filevault.schemas.base import CamelModel


class LoginRequest(CamelModel):
    username: str
    password: str


class LoginResponse(CamelModel):
    token: str
    username: str
    role: Role
    token_type: str = "bearer"


class RegisterUserRequest(CamelModel):
    username: str = Field(min_length=1, max_length=150)
    password: str = Field(min_length=1)
    role: str = Role.USER.value


class UserRead(CamelModel):
    id: uuid.UUID
    username: str
    role: Role
    created_at: datetime | None = None


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(min_length=1)


class ChangeUsernameRequest(CamelModel):
    new_username: str = Field(min_length=1, max_length=150)


class ChangeUsernameResponse(CamelModel):
    message: str
    new_token: str


class AdminChangePasswordRequest(CamelModel):
    user_id: uuid.UUID
    new_password: str = Field(min_length=1)


class AdminChangeUsernameRequest(CamelModel):
    user_id: uuid.UUID
    new_username: str = Field(min_length=1, max_length=150)


class MessageResponse(CamelModel):
    message: str
