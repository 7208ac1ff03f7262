"""Convention and signed-document models."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class Convention(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "conventions"

    gtc_point_id: uuid.UUID = Field(foreign_key="gtc_points.id", nullable=False, index=True)
    sector_id: uuid.UUID = Field(foreign_key="sectors.id", nullable=False, index=True)
    status: str = Field(nullable=False, default="NEW", index=True)  # NEW | UPLOADED | APPROVED | DECLINED
    internal_sales_rep: Optional[str] = None


class ConventionDocument(UUIDMixin, SQLModel, table=True):
    """Immutable once written; removed only together with its convention."""

    __tablename__ = "convention_documents"

    convention_id: uuid.UUID = Field(foreign_key="conventions.id", nullable=False, index=True)
    kind: str = Field(nullable=False, default="SIGNED")
    file_name: str = Field(nullable=False)
    path: str = Field(nullable=False)
    mime: str = Field(nullable=False)
    size: int = Field(nullable=False)
    checksum: str = Field(nullable=False)  # sha256 hex
    uploaded_by_id: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
