import re
from datetime import datetime
from pydantic import BaseModel, field_validator
from typing import Optional

_EMAIL_RE = re.compile(r"^\S+@\S+\.\S+$")

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 100


def normalize_email(value: str) -> str:
    email = value.strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValueError("Invalid email format")
    return email


def check_password_strength(value: str) -> str:
    if (
        len(value) < PASSWORD_MIN_LENGTH
        or len(value) > PASSWORD_MAX_LENGTH
        or not re.search(r"[A-Za-z]", value)
        or not re.search(r"[0-9]", value)
    ):
        raise ValueError(
            f"Password must be {PASSWORD_MIN_LENGTH}-{PASSWORD_MAX_LENGTH} chars, "
            "include at least one letter and one digit."
        )
    return value


class UserResponse(BaseModel):
    id: int
    email: str
    is_active: bool
    is_superuser: bool
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None


class UserCreateRequest(BaseModel):
    email: str
    password: str
    is_superuser: bool = False

    @field_validator("email")
    @classmethod
    def valid_email(cls, value):
        return normalize_email(value)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value):
        return check_password_strength(value)


class UserUpdateRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    is_superuser: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def valid_email(cls, value):
        return normalize_email(value) if value is not None else value

    @field_validator("password")
    @classmethod
    def strong_password(cls, value):
        return check_password_strength(value) if value is not None else value


class UserPasswordUpdateRequest(BaseModel):
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value):
        return check_password_strength(value)
