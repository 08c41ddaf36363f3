"""
Expense Tracker API — Auth & Protected Route Schemas
======================================================

What:  Request bodies for register/login and the responses of the auth and
       protected routes.
How:   Email addresses are trimmed and lower-cased during validation so the
       unique index on `users.email` sees one spelling per address.
"""

import re
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _normalize_email(value: str) -> str:
    email = value.strip().lower()
    if not _EMAIL_PATTERN.match(email):
        raise ValueError("Invalid email address")
    return email


class RegisterRequest(BaseModel):
    email: str = Field(max_length=254)
    password: str = Field(min_length=8, max_length=128)
    name: Optional[str] = Field(default=None, max_length=100)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)


class LoginRequest(BaseModel):
    email: str = Field(max_length=254)
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)


class UserPublic(BaseModel):
    """User fields safe to return to the client (no password hash)."""
    id: str
    email: str
    name: Optional[str] = None
    created_at: datetime


class AuthResponse(BaseModel):
    token: str = Field(description="Bearer credential for the Authorization header")
    user: UserPublic


class ProtectedResponse(BaseModel):
    message: str
    user_id: str = Field(alias="userId")

    model_config = {"populate_by_name": True}
