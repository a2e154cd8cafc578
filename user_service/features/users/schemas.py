"""Pydantic schemas for user RPC payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Shape check only; deliverability is not verified
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class UserBase(BaseModel):
    """Shared attributes for user payloads.

    Accepts both ``cell_phone`` and the camelCase ``cellPhone`` used by
    existing producers.
    """

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    cell_phone: str = Field(..., min_length=1, max_length=20, alias="cellPhone")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class UserCreate(UserBase):
    """Body of a ``users.create`` request."""

    password: str = Field(..., min_length=6, max_length=128)


class UserRead(BaseModel):
    """User as returned to RPC callers; never includes the password hash."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    cell_phone: str
    created_at: datetime
    updated_at: datetime


class UserLookup(BaseModel):
    """Body of a ``users.get`` request."""

    id: int = Field(..., ge=1)


class UserListQuery(BaseModel):
    """Body of a ``users.list`` request; all fields optional."""

    limit: int = Field(default=50, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


class UserEvent(BaseModel):
    """Message published on ``users.events``."""

    event: Literal["user.created"]
    id: int
    email: str
