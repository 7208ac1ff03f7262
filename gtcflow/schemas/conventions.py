"""Convention schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic import UUID4

from .common import ConventionStatus


class ConventionCreate(BaseModel):
    # Required for admins; GTC points derive both from their own affiliation
    gtc_point_id: Optional[UUID4] = None
    sector_id: Optional[UUID4] = None


class ConventionDecision(BaseModel):
    action: Literal["APPROVE", "DECLINE"]
    internal_sales_rep: Optional[str] = None


class ConventionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    gtc_point_id: UUID4
    sector_id: UUID4
    status: ConventionStatus
    internal_sales_rep: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ConventionPage(BaseModel):
    items: List[ConventionRead]
    total: int
    page: int
    page_size: int


class DocumentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    convention_id: UUID4
    kind: str
    file_name: str
    path: str
    mime: str
    size: int
    checksum: str
    uploaded_by_id: UUID4
    created_at: datetime
