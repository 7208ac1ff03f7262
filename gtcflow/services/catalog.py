"""
Admin-managed catalogue: sectors, services and directly created GTC points.

Every write is an upsert on the entity's natural key (sector name, service
code, point email). Moving a service to another sector is allowed; pending
onboarding selections are re-validated against it on approval.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from gtcflow.core.database import transaction
from gtcflow.core.exceptions import NotFoundError, ValidationError
from gtcflow.core.roles import require_role
from gtcflow.models.sector import GtcPoint, Sector, Service
from gtcflow.models.user import User
from gtcflow.schemas.common import Role

log = structlog.get_logger()


class CatalogService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _upsert(self, model: type[SQLModel], column, key: Any, values: dict) -> tuple[Any, bool]:
        """Create or update the row whose unique `column` equals `key`. Returns (row, created)."""
        async with transaction(self.session):
            result = await self.session.execute(
                select(model).where(column == key).with_for_update().execution_options(populate_existing=True)
            )
            row = result.scalars().first()
            created = row is None
            if created:
                row = model(**values)
            else:
                for name, value in values.items():
                    setattr(row, name, value)
            self.session.add(row)
        return row, created

    async def _require_sector(self, sector_id: uuid.UUID) -> Sector:
        sector = await self.session.get(Sector, sector_id)
        if sector is None:
            raise NotFoundError("Sector", sector_id)
        return sector

    # ------------------------------------------------------------------
    # Sectors
    # ------------------------------------------------------------------

    async def list_sectors(self, actor: User) -> list[Sector]:
        require_role(actor.role, Role.ADMIN)
        result = await self.session.execute(select(Sector).order_by(Sector.name))
        return list(result.scalars().all())

    async def upsert_sector(self, actor: User, name: str) -> tuple[Sector, bool]:
        require_role(actor.role, Role.ADMIN)
        name = (name or "").strip()
        if len(name) < 2:
            raise ValidationError("Sector name must be at least 2 characters")
        sector, created = await self._upsert(Sector, Sector.name, name, {"name": name})
        log.info("catalog.sector_saved", sector_id=str(sector.id), created=created)
        return sector, created

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    async def list_services(self, actor: User, sector_id: Optional[uuid.UUID] = None) -> list[Service]:
        require_role(actor.role, Role.ADMIN)
        stmt = select(Service).order_by(Service.code)
        if sector_id is not None:
            stmt = stmt.where(Service.sector_id == sector_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def upsert_service(
        self, actor: User, code: str, name: str, sector_id: uuid.UUID
    ) -> tuple[Service, bool]:
        """Save a service by code. An existing code takes the new name and sector."""
        require_role(actor.role, Role.ADMIN)
        code = (code or "").strip().upper()
        name = (name or "").strip()
        if not code:
            raise ValidationError("Service code is required")
        if not name:
            raise ValidationError("Service name is required")
        await self._require_sector(sector_id)

        service, created = await self._upsert(
            Service, Service.code, code, {"code": code, "name": name, "sector_id": sector_id}
        )
        log.info(
            "catalog.service_saved",
            service_id=str(service.id),
            sector_id=str(sector_id),
            created=created,
        )
        return service, created

    # ------------------------------------------------------------------
    # Points
    # ------------------------------------------------------------------

    async def list_points(
        self, actor: User, page: int = 1, page_size: int = 20
    ) -> tuple[list[GtcPoint], int]:
        require_role(actor.role, Role.ADMIN)
        page = max(1, page)
        page_size = min(100, max(1, page_size))
        total = await self.session.scalar(select(func.count()).select_from(GtcPoint))
        result = await self.session.execute(
            select(GtcPoint)
            .order_by(GtcPoint.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), int(total or 0)

    async def upsert_point(
        self, actor: User, name: str, email: str, sector_id: uuid.UUID
    ) -> tuple[GtcPoint, bool]:
        """Create a point directly, or update the one already registered under `email`."""
        require_role(actor.role, Role.ADMIN)
        email = (email or "").strip().lower()
        name = (name or "").strip()
        if "@" not in email:
            raise ValidationError("A valid email is required")
        if not name:
            raise ValidationError("Name is required")
        await self._require_sector(sector_id)

        point, created = await self._upsert(
            GtcPoint, GtcPoint.email, email, {"name": name, "email": email, "sector_id": sector_id}
        )
        log.info("catalog.point_saved", point_id=str(point.id), sector_id=str(sector_id), created=created)
        return point, created
