"""
Point onboarding endpoints.

Admin routes (bearer auth) manage links and decisions; public routes are
addressed by the opaque onboarding or registration token from the emailed link.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from gtcflow.api.deps import get_onboarding_service
from gtcflow.core.auth import require_roles
from gtcflow.core.tokens import hash_password
from gtcflow.models.onboarding import PointOnboarding
from gtcflow.models.user import User
from gtcflow.schemas.auth import UserRead
from gtcflow.schemas.common import OnboardingStatus, Role
from gtcflow.schemas.onboarding import (
    ApprovalRead,
    OnboardingLinkCreate,
    OnboardingRead,
    OnboardingFields,
    PublicOnboardingRead,
    RegistrationComplete,
)
from gtcflow.services.onboarding import OnboardingService, SignatureUpload

admin_router = APIRouter()
public_router = APIRouter()


async def _read(onboardings: OnboardingService, onboarding: PointOnboarding) -> OnboardingRead:
    data = OnboardingRead.model_validate(onboarding)
    data.service_ids = await onboardings.selected_service_ids(onboarding.id)
    return data


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


@admin_router.post("/", response_model=OnboardingRead, status_code=status.HTTP_201_CREATED)
async def create_onboarding_link(
    body: OnboardingLinkCreate,
    actor: User = Depends(require_roles(Role.ADMIN)),
    onboardings: OnboardingService = Depends(get_onboarding_service),
):
    onboarding = await onboardings.create_link(
        actor,
        body.sector_id,
        body.email,
        body.name,
        service_ids=body.service_ids,
        include_services=body.include_services,
    )
    return await _read(onboardings, onboarding)


@admin_router.get("/", response_model=List[OnboardingRead])
async def list_onboardings(
    status_filter: Optional[OnboardingStatus] = Query(None, alias="status"),
    actor: User = Depends(require_roles(Role.ADMIN)),
    onboardings: OnboardingService = Depends(get_onboarding_service),
):
    return [await _read(onboardings, o) for o in await onboardings.list(actor, status_filter)]


@admin_router.get("/{onboarding_id}", response_model=OnboardingRead)
async def get_onboarding(
    onboarding_id: uuid.UUID,
    actor: User = Depends(require_roles(Role.ADMIN)),
    onboardings: OnboardingService = Depends(get_onboarding_service),
):
    return await _read(onboardings, await onboardings.get(actor, onboarding_id))


@admin_router.post("/{onboarding_id}/approve", response_model=ApprovalRead)
async def approve_onboarding(
    onboarding_id: uuid.UUID,
    actor: User = Depends(require_roles(Role.ADMIN)),
    onboardings: OnboardingService = Depends(get_onboarding_service),
):
    result = await onboardings.approve(actor, onboarding_id)
    return ApprovalRead(
        point_id=result.point_id,
        enabled_service_ids=result.enabled_service_ids,
        dropped_service_ids=result.dropped_service_ids,
    )


@admin_router.post("/{onboarding_id}/decline", response_model=OnboardingRead)
async def decline_onboarding(
    onboarding_id: uuid.UUID,
    actor: User = Depends(require_roles(Role.ADMIN)),
    onboardings: OnboardingService = Depends(get_onboarding_service),
):
    return await _read(onboardings, await onboardings.decline(actor, onboarding_id))


# ---------------------------------------------------------------------------
# Public (token-addressed)
# ---------------------------------------------------------------------------


@public_router.get("/{token}", response_model=PublicOnboardingRead)
async def open_onboarding(
    token: str,
    onboardings: OnboardingService = Depends(get_onboarding_service),
):
    onboarding = await onboardings.get_by_token(token)
    data = PublicOnboardingRead.model_validate(onboarding)
    data.service_ids = await onboardings.selected_service_ids(onboarding.id)
    return data


@public_router.post("/{token}/submit", status_code=status.HTTP_204_NO_CONTENT)
async def submit_onboarding(
    token: str,
    vat_or_tax_number: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    services: Optional[List[uuid.UUID]] = Form(None),
    signature: Optional[UploadFile] = File(None),
    onboardings: OnboardingService = Depends(get_onboarding_service),
):
    """Multipart form: details, repeated `services` fields and an optional `signature` file."""
    upload = None
    if signature is not None:
        upload = SignatureUpload(
            content=await signature.read(),
            mime=signature.content_type or "application/octet-stream",
            name=signature.filename or "signature",
        )
    await onboardings.submit(
        token,
        OnboardingFields(vat_or_tax_number=vat_or_tax_number, phone=phone),
        selected_service_ids=services,
        signature=upload,
    )


@public_router.post(
    "/register/{registration_token}",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
)
async def complete_registration(
    registration_token: str,
    body: RegistrationComplete,
    onboardings: OnboardingService = Depends(get_onboarding_service),
):
    return await onboardings.complete_registration(registration_token, hash_password(body.password))
