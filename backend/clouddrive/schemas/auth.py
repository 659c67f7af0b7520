"""Account and session schemas."""

from typing import Optional

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=6, description="Password (min 6 characters)")

    model_config = {
        "json_schema_extra": {
            "examples": [{"username": "alice", "password": "correct-horse"}]
        }
    }


class LoginRequest(BaseModel):
    username: str
    password: str


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str = Field(..., min_length=6)


class UserResponse(BaseModel):
    id: int
    username: str
    is_admin: bool
    max_storage_bytes: int
    used_storage_bytes: Optional[int] = None


class LoginResponse(BaseModel):
    token: str
    expires_at: int
    user: UserResponse
