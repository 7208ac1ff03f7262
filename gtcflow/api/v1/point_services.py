"""Service links as seen by a GTC point: list its own and request new ones."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from gtcflow.api.deps import get_point_service_manager
from gtcflow.api.v1.catalog import link_read
from gtcflow.core.auth import require_roles
from gtcflow.models.user import User
from gtcflow.schemas.catalog import PointServiceRead, ServiceRequest
from gtcflow.schemas.common import Role
from gtcflow.services.point_services import PointServiceManager

router = APIRouter()


@router.get("/", response_model=List[PointServiceRead])
async def list_my_services(
    actor: User = Depends(require_roles(Role.GTC_POINT)),
    links: PointServiceManager = Depends(get_point_service_manager),
):
    return [link_read(link, service) for link, service in await links.list_mine(actor)]


@router.post("/requests", response_model=PointServiceRead, status_code=status.HTTP_201_CREATED)
async def request_service(
    body: ServiceRequest,
    actor: User = Depends(require_roles(Role.GTC_POINT)),
    links: PointServiceManager = Depends(get_point_service_manager),
):
    link = await links.request(actor, service_id=body.service_id, service_code=body.service_code)
    return link_read(link)
