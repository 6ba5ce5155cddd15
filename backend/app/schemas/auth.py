import re
import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.models.enums import UserRole

_NAME_PATTERN = re.compile(r"^[a-zA-ZÀ-ÿ\s\-']+$")
PHONE_PATTERN = r"^\+?[0-9]{9,15}$"


def validate_name_field(v: str | None, field_label: str) -> str | None:
    """Validate a name field: min 2 chars, letters, spaces, hyphens and apostrophes only."""
    if v is None:
        return v
    v = v.strip()
    if not v:
        return None
    if len(v) < 2:
        raise ValueError(f"{field_label} must be at least 2 characters long")
    if not _NAME_PATTERN.match(v):
        raise ValueError(f"{field_label} may only contain letters, spaces, hyphens or apostrophes")
    return v


def validate_password_complexity(password: str) -> str:
    """Require at least one uppercase letter, one lowercase letter and one digit."""
    if (
        not any(c.isupper() for c in password)
        or not any(c.islower() for c in password)
        or not any(c.isdigit() for c in password)
    ):
        raise ValueError("Password must contain an uppercase letter, a lowercase letter and a digit")
    return password


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    phone_number: str | None = Field(None, pattern=PHONE_PATTERN)

    @field_validator("first_name")
    @classmethod
    def validate_first_name(cls, v: str | None) -> str | None:
        return validate_name_field(v, "First name")

    @field_validator("last_name")
    @classmethod
    def validate_last_name(cls, v: str | None) -> str | None:
        return validate_name_field(v, "Last name")

    @field_validator("password")
    @classmethod
    def password_complexity(cls, v: str) -> str:
        return validate_password_complexity(v)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class RefreshRequest(BaseModel):
    refresh_token: str


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    role: UserRole
    first_name: str | None
    last_name: str | None
    phone_number: str | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
