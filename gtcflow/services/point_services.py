"""
Service links between GTC points and the catalogue.

A point asks for a service, which parks the link in PENDING_REQUEST and
tells the admins. An admin then enables or disables the link and the
point's users are told. Links are upserted on the (point, service) key.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from gtcflow.core.database import transaction
from gtcflow.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from gtcflow.core.roles import require_role
from gtcflow.models.sector import GtcPoint, GtcPointService, Sector, Service
from gtcflow.models.user import User
from gtcflow.schemas.common import NotificationType, PointServiceStatus, Role
from gtcflow.services import email_templates
from gtcflow.services.conventions import NOT_ATTACHED
from gtcflow.services.notifications import Dispatcher, admin_ids, point_user_ids

log = structlog.get_logger()


class PointServiceManager:
    def __init__(self, session: AsyncSession, dispatcher: Dispatcher):
        self.session = session
        self.dispatcher = dispatcher

    async def _own_point(self, actor: User) -> GtcPoint:
        point = await self.session.get(GtcPoint, actor.gtc_point_id) if actor.gtc_point_id else None
        if point is None:
            raise ConflictError(NOT_ATTACHED)
        return point

    async def _lock_link(self, point_id: uuid.UUID, service_id: uuid.UUID) -> Optional[GtcPointService]:
        result = await self.session.execute(
            select(GtcPointService)
            .where(GtcPointService.gtc_point_id == point_id, GtcPointService.service_id == service_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def _links(self, point_id: uuid.UUID) -> list[tuple[GtcPointService, Service]]:
        result = await self.session.execute(
            select(GtcPointService, Service)
            .join(Service, Service.id == GtcPointService.service_id)
            .where(GtcPointService.gtc_point_id == point_id)
            .order_by(GtcPointService.created_at.desc())
        )
        return [(link, service) for link, service in result.all()]

    async def list_mine(self, actor: User) -> list[tuple[GtcPointService, Service]]:
        require_role(actor.role, Role.GTC_POINT)
        point = await self._own_point(actor)
        return await self._links(point.id)

    async def list_for_point(self, actor: User, point_id: uuid.UUID) -> list[tuple[GtcPointService, Service]]:
        require_role(actor.role, Role.ADMIN)
        if await self.session.get(GtcPoint, point_id) is None:
            raise NotFoundError("GtcPoint", point_id)
        return await self._links(point_id)

    async def request(
        self,
        actor: User,
        service_id: Optional[uuid.UUID] = None,
        service_code: Optional[str] = None,
    ) -> GtcPointService:
        """Ask for a service of the point's own sector. Enabled services cannot be re-requested."""
        require_role(actor.role, Role.GTC_POINT)
        point = await self._own_point(actor)

        if service_id is not None:
            service = await self.session.get(Service, service_id)
        elif service_code:
            result = await self.session.execute(select(Service).where(Service.code == service_code))
            service = result.scalars().first()
        else:
            raise ValidationError("service_id or service_code is required")
        if service is None:
            raise NotFoundError("Service", service_id or service_code)
        if service.sector_id != point.sector_id:
            raise AuthorizationError("Service does not belong to this point's sector")

        async with transaction(self.session):
            link = await self._lock_link(point.id, service.id)
            if link is not None and link.status == PointServiceStatus.ENABLED.value:
                raise ConflictError("Service already enabled for this point")
            if link is None:
                link = GtcPointService(gtc_point_id=point.id, service_id=service.id)
            link.status = PointServiceStatus.PENDING_REQUEST.value
            self.session.add(link)

        log.info("point_service.requested", point_id=str(point.id), service_id=str(service.id))
        await self._notify_requested(point, service)
        return link

    async def set_status(
        self,
        actor: User,
        point_id: uuid.UUID,
        service_id: uuid.UUID,
        status: PointServiceStatus,
    ) -> GtcPointService:
        """Enable or disable a point's service. Only a real change notifies the point."""
        require_role(actor.role, Role.ADMIN)
        status = PointServiceStatus(status)
        if status == PointServiceStatus.PENDING_REQUEST:
            raise ValidationError("Status must be ENABLED or DISABLED")

        point = await self.session.get(GtcPoint, point_id)
        if point is None:
            raise NotFoundError("GtcPoint", point_id)
        service = await self.session.get(Service, service_id)
        if service is None:
            raise NotFoundError("Service", service_id)
        if status == PointServiceStatus.ENABLED and service.sector_id != point.sector_id:
            raise ValidationError("Service does not belong to the point's sector")

        async with transaction(self.session):
            link = await self._lock_link(point.id, service.id)
            previous = link.status if link is not None else None
            if link is None:
                link = GtcPointService(gtc_point_id=point.id, service_id=service.id)
            link.status = status.value
            self.session.add(link)

        log.info(
            "point_service.status_changed",
            point_id=str(point.id),
            service_id=str(service.id),
            previous=previous,
            status=status.value,
            actor_id=str(actor.id),
        )
        if previous != status.value:
            await self._notify_status(point, service, status)
        return link

    # ------------------------------------------------------------------
    # Notifications (after commit)
    # ------------------------------------------------------------------

    async def _notify_requested(self, point: GtcPoint, service: Service) -> None:
        try:
            sector = await self.session.get(Sector, point.sector_id)
            await self.dispatcher.notify_many(
                await admin_ids(self.session),
                subject=f"Service request: {service.name} from {point.name}",
                content=email_templates.paragraph(f"Point: {point.name} / {sector.name if sector else ''}")
                + email_templates.paragraph(f"Service: {service.name} ({service.code})"),
                type=NotificationType.SERVICE_REQUEST,
            )
        except Exception:
            log.exception("point_service.notify_failed", event="requested", point_id=str(point.id))

    async def _notify_status(self, point: GtcPoint, service: Service, status: PointServiceStatus) -> None:
        verb = "enabled" if status == PointServiceStatus.ENABLED else "disabled"
        try:
            await self.dispatcher.notify_many(
                await point_user_ids(self.session, point.id),
                subject=f"Service {verb}: {service.name}",
                content=email_templates.paragraph(f"Your service {service.name} was {verb}."),
                type=NotificationType.SERVICE_STATUS,
            )
        except Exception:
            log.exception("point_service.notify_failed", event="status", point_id=str(point.id))
