"""Authentication and account schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic import UUID4

from .common import Role


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class InviteAccept(BaseModel):
    token: str
    password: str = Field(min_length=8)


class SectorOwnerCreate(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1)
    sector_id: UUID4


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    email: str
    name: Optional[str] = None
    role: Role
    gtc_point_id: Optional[UUID4] = None
    sector_id: Optional[UUID4] = None
