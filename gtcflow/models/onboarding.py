"""Point onboarding models."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class PointOnboarding(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "point_onboardings"

    sector_id: uuid.UUID = Field(foreign_key="sectors.id", nullable=False, index=True)
    email: str = Field(nullable=False, index=True)
    name: str = Field(nullable=False)
    # Whether the applicant may change the service selection on submit
    include_services: bool = Field(default=False, nullable=False)
    status: str = Field(nullable=False, default="DRAFT", index=True)  # DRAFT | SUBMITTED | APPROVED | DECLINED | COMPLETED

    onboarding_token: str = Field(nullable=False, unique=True, index=True)
    token_expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    registration_token: Optional[str] = Field(default=None, unique=True, index=True)
    registration_expires_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))

    # Applicant-provided fields
    vat_or_tax_number: Optional[str] = None
    phone: Optional[str] = None
    signature_path: Optional[str] = None
    signature_mime: Optional[str] = None
    signature_name: Optional[str] = None

    gtc_point_id: Optional[uuid.UUID] = Field(default=None, foreign_key="gtc_points.id")
    submitted_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    decided_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    decided_by_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    completed_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))


class PointOnboardingService(SQLModel, table=True):
    __tablename__ = "point_onboarding_services"

    onboarding_id: uuid.UUID = Field(foreign_key="point_onboardings.id", primary_key=True)
    service_id: uuid.UUID = Field(foreign_key="services.id", primary_key=True)
