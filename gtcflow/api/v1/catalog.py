"""
Admin catalogue endpoints: sectors, services, GTC points and their service links.

PUT-style upserts answer 201 when the row was created and 200 when an
existing row was updated.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from gtcflow.api.deps import get_catalog_service, get_point_service_manager
from gtcflow.core.auth import require_roles
from gtcflow.models.sector import GtcPointService, Service
from gtcflow.models.user import User
from gtcflow.schemas.catalog import (
    PointPage,
    PointRead,
    PointServiceRead,
    PointServiceStatusUpdate,
    PointUpsert,
    SectorRead,
    SectorUpsert,
    ServiceRead,
    ServiceUpsert,
)
from gtcflow.schemas.common import PointServiceStatus, Role
from gtcflow.services.catalog import CatalogService
from gtcflow.services.point_services import PointServiceManager

sectors_router = APIRouter()
services_router = APIRouter()
points_router = APIRouter()


def _saved(response: Response, created: bool) -> None:
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK


def link_read(link: GtcPointService, service: Optional[Service] = None) -> PointServiceRead:
    return PointServiceRead(
        gtc_point_id=link.gtc_point_id,
        service_id=link.service_id,
        status=PointServiceStatus(link.status),
        service_code=service.code if service else None,
        service_name=service.name if service else None,
        updated_at=link.updated_at,
    )


@sectors_router.get("/", response_model=List[SectorRead])
async def list_sectors(
    actor: User = Depends(require_roles(Role.ADMIN)),
    catalog: CatalogService = Depends(get_catalog_service),
):
    return await catalog.list_sectors(actor)


@sectors_router.post("/", response_model=SectorRead)
async def save_sector(
    body: SectorUpsert,
    response: Response,
    actor: User = Depends(require_roles(Role.ADMIN)),
    catalog: CatalogService = Depends(get_catalog_service),
):
    sector, created = await catalog.upsert_sector(actor, body.name)
    _saved(response, created)
    return sector


@services_router.get("/", response_model=List[ServiceRead])
async def list_services(
    sector_id: Optional[uuid.UUID] = Query(None),
    actor: User = Depends(require_roles(Role.ADMIN)),
    catalog: CatalogService = Depends(get_catalog_service),
):
    return await catalog.list_services(actor, sector_id)


@services_router.post("/", response_model=ServiceRead)
async def save_service(
    body: ServiceUpsert,
    response: Response,
    actor: User = Depends(require_roles(Role.ADMIN)),
    catalog: CatalogService = Depends(get_catalog_service),
):
    service, created = await catalog.upsert_service(actor, body.code, body.name, body.sector_id)
    _saved(response, created)
    return service


@points_router.get("/", response_model=PointPage)
async def list_points(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    actor: User = Depends(require_roles(Role.ADMIN)),
    catalog: CatalogService = Depends(get_catalog_service),
):
    items, total = await catalog.list_points(actor, page, page_size)
    return PointPage(
        items=[PointRead.model_validate(p) for p in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@points_router.post("/", response_model=PointRead)
async def save_point(
    body: PointUpsert,
    response: Response,
    actor: User = Depends(require_roles(Role.ADMIN)),
    catalog: CatalogService = Depends(get_catalog_service),
):
    point, created = await catalog.upsert_point(actor, body.name, body.email, body.sector_id)
    _saved(response, created)
    return point


@points_router.get("/{point_id}/services", response_model=List[PointServiceRead])
async def list_point_services(
    point_id: uuid.UUID,
    actor: User = Depends(require_roles(Role.ADMIN)),
    links: PointServiceManager = Depends(get_point_service_manager),
):
    return [link_read(link, service) for link, service in await links.list_for_point(actor, point_id)]


@points_router.put("/{point_id}/services/{service_id}", response_model=PointServiceRead)
async def set_point_service_status(
    point_id: uuid.UUID,
    service_id: uuid.UUID,
    body: PointServiceStatusUpdate,
    actor: User = Depends(require_roles(Role.ADMIN)),
    links: PointServiceManager = Depends(get_point_service_manager),
):
    link = await links.set_status(actor, point_id, service_id, PointServiceStatus(body.status))
    return link_read(link)
