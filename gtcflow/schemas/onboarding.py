"""Point onboarding schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic import UUID4

from .common import OnboardingStatus


class OnboardingLinkCreate(BaseModel):
    sector_id: UUID4
    email: EmailStr
    name: str = Field(min_length=1)
    service_ids: List[UUID4] = Field(default_factory=list)
    include_services: bool = False


class OnboardingFields(BaseModel):
    """Applicant-provided details. Omitted fields keep their stored value."""
    vat_or_tax_number: Optional[str] = None
    phone: Optional[str] = None


class RegistrationComplete(BaseModel):
    password: str = Field(min_length=8)


class OnboardingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    sector_id: UUID4
    email: str
    name: str
    include_services: bool
    status: OnboardingStatus
    token_expires_at: datetime
    vat_or_tax_number: Optional[str] = None
    phone: Optional[str] = None
    signature_path: Optional[str] = None
    signature_mime: Optional[str] = None
    signature_name: Optional[str] = None
    gtc_point_id: Optional[UUID4] = None
    submitted_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    service_ids: List[UUID4] = Field(default_factory=list)


class PublicOnboardingRead(BaseModel):
    """What the applicant sees when opening the onboarding link."""
    model_config = ConfigDict(from_attributes=True)

    name: str
    email: str
    sector_id: UUID4
    include_services: bool
    status: OnboardingStatus
    token_expires_at: datetime
    service_ids: List[UUID4] = Field(default_factory=list)


class ApprovalRead(BaseModel):
    point_id: UUID4
    enabled_service_ids: List[UUID4]
    dropped_service_ids: List[UUID4]
