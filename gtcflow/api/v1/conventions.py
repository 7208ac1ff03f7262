"""
Convention endpoints.

Lifecycle: NEW -> UPLOADED -> APPROVED | DECLINED. Points create and upload
their own conventions; admins decide.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from gtcflow.api.deps import get_convention_service
from gtcflow.core.auth import get_current_user, require_roles
from gtcflow.core.config import get_settings
from gtcflow.models.user import User
from gtcflow.schemas.common import ConventionAction, ConventionStatus, Role
from gtcflow.schemas.conventions import (
    ConventionCreate,
    ConventionDecision,
    ConventionPage,
    ConventionRead,
    DocumentRead,
)
from gtcflow.services.conventions import ConventionService

settings = get_settings()
router = APIRouter()


@router.post("/", response_model=ConventionRead, status_code=status.HTTP_201_CREATED)
async def create_convention(
    body: ConventionCreate,
    actor: User = Depends(require_roles(Role.GTC_POINT, Role.ADMIN)),
    conventions: ConventionService = Depends(get_convention_service),
):
    return await conventions.create(actor, body.gtc_point_id, body.sector_id)


@router.get("/", response_model=ConventionPage)
async def list_conventions(
    status_filter: Optional[ConventionStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    actor: User = Depends(get_current_user),
    conventions: ConventionService = Depends(get_convention_service),
):
    items, total = await conventions.list_for(actor, status_filter, page, page_size)
    return ConventionPage(
        items=[ConventionRead.model_validate(c) for c in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{convention_id}", response_model=ConventionRead)
async def get_convention(
    convention_id: uuid.UUID,
    actor: User = Depends(get_current_user),
    conventions: ConventionService = Depends(get_convention_service),
):
    return await conventions.get(actor, convention_id)


@router.post(
    "/{convention_id}/upload",
    response_model=DocumentRead,
    status_code=status.HTTP_201_CREATED,
)
async def upload_convention(
    convention_id: uuid.UUID,
    file: UploadFile = File(...),
    actor: User = Depends(require_roles(Role.GTC_POINT, Role.ADMIN)),
    conventions: ConventionService = Depends(get_convention_service),
):
    if not settings.uploads_enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="File uploads are disabled on this deployment.",
        )
    content = await file.read()
    return await conventions.upload(
        actor,
        convention_id,
        content,
        file.content_type or "application/octet-stream",
        file.filename or "convention.pdf",
    )


@router.get("/{convention_id}/documents", response_model=List[DocumentRead])
async def list_documents(
    convention_id: uuid.UUID,
    actor: User = Depends(get_current_user),
    conventions: ConventionService = Depends(get_convention_service),
):
    return await conventions.list_documents(actor, convention_id)


@router.post("/{convention_id}/decision", response_model=ConventionRead)
async def decide_convention(
    convention_id: uuid.UUID,
    body: ConventionDecision,
    actor: User = Depends(require_roles(Role.ADMIN)),
    conventions: ConventionService = Depends(get_convention_service),
):
    return await conventions.decide(
        actor, convention_id, ConventionAction(body.action), body.internal_sales_rep
    )


@router.delete("/{convention_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_convention(
    convention_id: uuid.UUID,
    actor: User = Depends(require_roles(Role.GTC_POINT, Role.ADMIN)),
    conventions: ConventionService = Depends(get_convention_service),
):
    await conventions.delete(actor, convention_id)
