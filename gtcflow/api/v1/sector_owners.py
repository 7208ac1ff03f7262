"""Admin endpoint for inviting sector owners."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from gtcflow.api.deps import get_account_service
from gtcflow.core.auth import require_roles
from gtcflow.models.user import User
from gtcflow.schemas.auth import SectorOwnerCreate, UserRead
from gtcflow.schemas.common import Role
from gtcflow.services.accounts import AccountService

router = APIRouter()


@router.post("/", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def invite_sector_owner(
    body: SectorOwnerCreate,
    actor: User = Depends(require_roles(Role.ADMIN)),
    accounts: AccountService = Depends(get_account_service),
):
    return await accounts.create_sector_owner(actor, body.email, body.name, body.sector_id)
