"""Catalogue and point-service schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic import UUID4

from .common import PointServiceStatus


class SectorUpsert(BaseModel):
    name: str = Field(min_length=2, max_length=100)


class SectorRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    name: str
    created_at: datetime


class ServiceUpsert(BaseModel):
    code: str = Field(min_length=1, max_length=50, pattern=r"^[A-Za-z0-9_]+$")
    name: str = Field(min_length=1, max_length=200)
    sector_id: UUID4


class ServiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    code: str
    name: str
    sector_id: UUID4


class PointUpsert(BaseModel):
    name: str = Field(min_length=2, max_length=200)
    email: EmailStr
    sector_id: UUID4


class PointRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    name: str
    email: str
    sector_id: UUID4
    created_at: datetime


class PointPage(BaseModel):
    items: List[PointRead]
    total: int
    page: int
    page_size: int


class ServiceRequest(BaseModel):
    service_id: Optional[UUID4] = None
    service_code: Optional[str] = None

    @model_validator(mode="after")
    def _one_reference(self):
        if self.service_id is None and not self.service_code:
            raise ValueError("service_id or service_code is required")
        return self


class PointServiceStatusUpdate(BaseModel):
    status: Literal["ENABLED", "DISABLED"]


class PointServiceRead(BaseModel):
    gtc_point_id: UUID4
    service_id: UUID4
    status: PointServiceStatus
    service_code: Optional[str] = None
    service_name: Optional[str] = None
    updated_at: datetime
