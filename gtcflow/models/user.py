"""User model."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class User(UUIDMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(nullable=False, unique=True, index=True)
    name: Optional[str] = None
    # NULL until an invited user sets a password
    password_hash: Optional[str] = Field(default=None)
    role: str = Field(nullable=False, index=True)  # ADMIN | SECTOR_OWNER | GTC_POINT | EXTERNAL
    gtc_point_id: Optional[uuid.UUID] = Field(default=None, foreign_key="gtc_points.id", index=True)
    sector_id: Optional[uuid.UUID] = Field(default=None, foreign_key="sectors.id", index=True)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
