"""
Convention workflow: NEW -> UPLOADED -> APPROVED | DECLINED.

Status changes go through CONVENTION_TRANSITIONS and a guarded UPDATE so
racing callers cannot double-apply. Notifications are dispatched only after
the owning transaction commits.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from gtcflow.core.config import get_settings
from gtcflow.core.database import transaction
from gtcflow.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from gtcflow.core.roles import require_role
from gtcflow.core.storage import FileStore
from gtcflow.models.convention import Convention, ConventionDocument
from gtcflow.models.sector import GtcPoint, Sector
from gtcflow.models.user import User
from gtcflow.schemas.common import ConventionAction, ConventionStatus, DocumentKind, NotificationType, Role
from gtcflow.services import email_templates
from gtcflow.services.notifications import (
    Dispatcher,
    admin_ids,
    point_user_ids,
    sector_owner_ids,
)
from gtcflow.services.transitions import (
    CONVENTION_TRANSITIONS,
    guarded_status_update,
    next_status,
    sources_for,
)

log = structlog.get_logger()

PDF_MAGIC = b"%PDF"
PDF_MIME = "application/pdf"
NOT_ATTACHED = "User is not attached to a GTC Point"


def ensure_pdf(content: bytes, mime: str) -> None:
    """Reject anything whose leading bytes or declared type is not PDF."""
    if len(content) < len(PDF_MAGIC) or content[: len(PDF_MAGIC)] != PDF_MAGIC:
        raise ValidationError("File does not look like a valid PDF")
    if (mime or "").split(";", 1)[0].strip().lower() != PDF_MIME:
        raise ValidationError("Only PDF uploads are allowed")


class ConventionService:
    def __init__(
        self,
        session: AsyncSession,
        dispatcher: Dispatcher,
        files: FileStore,
        *,
        max_upload_bytes: Optional[int] = None,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.files = files
        self.max_upload_bytes = max_upload_bytes or get_settings().max_upload_bytes

    # ------------------------------------------------------------------
    # Lookups and access
    # ------------------------------------------------------------------

    async def _get(self, convention_id: uuid.UUID) -> Convention:
        convention = await self.session.get(Convention, convention_id)
        if convention is None:
            raise NotFoundError("Convention", convention_id)
        return convention

    async def _lock(self, convention_id: uuid.UUID) -> Convention:
        """Re-read the row under FOR UPDATE inside the current transaction."""
        result = await self.session.execute(
            select(Convention)
            .where(Convention.id == convention_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        convention = result.scalars().first()
        if convention is None:
            raise NotFoundError("Convention", convention_id)
        return convention

    @staticmethod
    def _check_owner(actor: User, convention: Convention) -> None:
        if Role(actor.role) == Role.GTC_POINT and actor.gtc_point_id != convention.gtc_point_id:
            raise AuthorizationError("Convention belongs to another GTC Point")

    @staticmethod
    def _check_visible(actor: User, convention: Convention) -> None:
        role = Role(actor.role)
        if role == Role.ADMIN:
            return
        if role == Role.SECTOR_OWNER and actor.sector_id == convention.sector_id:
            return
        if role == Role.GTC_POINT and actor.gtc_point_id == convention.gtc_point_id:
            return
        raise AuthorizationError()

    async def get(self, actor: User, convention_id: uuid.UUID) -> Convention:
        convention = await self._get(convention_id)
        self._check_visible(actor, convention)
        return convention

    async def list_for(
        self,
        actor: User,
        status: Optional[ConventionStatus] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Convention], int]:
        """Admins see every convention, sector owners their sector's, points their own."""
        require_role(actor.role, Role.ADMIN, Role.SECTOR_OWNER, Role.GTC_POINT)
        page = max(1, page)
        page_size = min(100, max(1, page_size))

        filters = []
        role = Role(actor.role)
        if role == Role.GTC_POINT:
            if actor.gtc_point_id is None:
                raise ConflictError(NOT_ATTACHED)
            filters.append(Convention.gtc_point_id == actor.gtc_point_id)
        elif role == Role.SECTOR_OWNER:
            filters.append(Convention.sector_id == actor.sector_id)
        if status is not None:
            filters.append(Convention.status == ConventionStatus(status).value)

        total = await self.session.scalar(select(func.count()).select_from(Convention).where(*filters))
        result = await self.session.execute(
            select(Convention)
            .where(*filters)
            .order_by(Convention.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), int(total or 0)

    async def list_documents(self, actor: User, convention_id: uuid.UUID) -> list[ConventionDocument]:
        convention = await self.get(actor, convention_id)
        result = await self.session.execute(
            select(ConventionDocument)
            .where(ConventionDocument.convention_id == convention.id)
            .order_by(ConventionDocument.created_at.desc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def create(
        self,
        actor: User,
        gtc_point_id: Optional[uuid.UUID] = None,
        sector_id: Optional[uuid.UUID] = None,
    ) -> Convention:
        """Open a NEW convention. Points derive both ids from their own affiliation."""
        require_role(actor.role, Role.GTC_POINT, Role.ADMIN)

        if Role(actor.role) == Role.GTC_POINT:
            point = await self.session.get(GtcPoint, actor.gtc_point_id) if actor.gtc_point_id else None
            if point is None:
                raise ConflictError(NOT_ATTACHED)
            gtc_point_id, sector_id = point.id, point.sector_id
        else:
            if gtc_point_id is None or sector_id is None:
                raise ValidationError("gtc_point_id and sector_id are required for admin")
            if await self.session.get(GtcPoint, gtc_point_id) is None:
                raise NotFoundError("GtcPoint", gtc_point_id)
            if await self.session.get(Sector, sector_id) is None:
                raise NotFoundError("Sector", sector_id)

        async with transaction(self.session):
            convention = Convention(
                gtc_point_id=gtc_point_id,
                sector_id=sector_id,
                status=ConventionStatus.NEW.value,
            )
            self.session.add(convention)

        log.info("convention.created", convention_id=str(convention.id), actor_id=str(actor.id))
        await self._notify_created(convention)
        return convention

    async def upload(
        self,
        actor: User,
        convention_id: uuid.UUID,
        content: bytes,
        mime: str,
        original_name: str,
    ) -> ConventionDocument:
        """Attach a signed PDF. The first upload moves NEW to UPLOADED; later ones keep UPLOADED."""
        require_role(actor.role, Role.GTC_POINT, Role.ADMIN)
        convention = await self._get(convention_id)
        self._check_owner(actor, convention)

        try:
            next_status(CONVENTION_TRANSITIONS, ConventionStatus(convention.status), ConventionAction.UPLOAD)
        except ConflictError:
            raise ConflictError("Convention is finalized; uploads are locked")
        if len(content) > self.max_upload_bytes:
            raise ValidationError("File is too large")
        ensure_pdf(content, mime)

        stored = await self.files.put(content, PDF_MIME, original_name)

        advanced = False
        try:
            async with transaction(self.session):
                current = await self._lock(convention_id)
                try:
                    target = next_status(
                        CONVENTION_TRANSITIONS, ConventionStatus(current.status), ConventionAction.UPLOAD
                    )
                except ConflictError:
                    raise ConflictError("Convention is finalized; uploads are locked")

                document = ConventionDocument(
                    convention_id=current.id,
                    kind=DocumentKind.SIGNED.value,
                    file_name=stored.file_name,
                    path=stored.path,
                    mime=stored.mime,
                    size=stored.size,
                    checksum=stored.checksum,
                    uploaded_by_id=actor.id,
                )
                self.session.add(document)

                if current.status != target.value:
                    await guarded_status_update(
                        self.session, Convention, current.id, [current.status], target
                    )
                    advanced = True
        except Exception:
            await self._remove_file(stored.path)
            raise

        log.info(
            "convention.uploaded",
            convention_id=str(convention_id),
            document_id=str(document.id),
            status_changed=advanced,
        )
        if advanced:
            await self._notify_uploaded(convention_id)
        return document

    async def decide(
        self,
        actor: User,
        convention_id: uuid.UUID,
        action: ConventionAction,
        internal_sales_rep: Optional[str] = None,
    ) -> Convention:
        """Approve or decline. Terminal conventions cannot be decided again."""
        require_role(actor.role, Role.ADMIN)
        action = ConventionAction(action)
        if action not in (ConventionAction.APPROVE, ConventionAction.DECLINE):
            raise ValidationError("Action must be APPROVE or DECLINE")

        convention = await self._get(convention_id)
        target = next_status(CONVENTION_TRANSITIONS, ConventionStatus(convention.status), action)

        values = {}
        if internal_sales_rep is not None:
            values["internal_sales_rep"] = internal_sales_rep
        async with transaction(self.session):
            await guarded_status_update(
                self.session,
                Convention,
                convention.id,
                sources_for(CONVENTION_TRANSITIONS, action),
                target,
                **values,
            )
        await self.session.refresh(convention)

        log.info(
            "convention.decided",
            convention_id=str(convention.id),
            status=convention.status,
            actor_id=str(actor.id),
        )
        await self._notify_decided(convention)
        return convention

    async def delete(self, actor: User, convention_id: uuid.UUID) -> None:
        """Remove a NEW convention and its documents."""
        require_role(actor.role, Role.GTC_POINT, Role.ADMIN)
        convention = await self._get(convention_id)
        self._check_owner(actor, convention)
        next_status(CONVENTION_TRANSITIONS, ConventionStatus(convention.status), ConventionAction.DELETE)

        result = await self.session.execute(
            select(ConventionDocument.path).where(ConventionDocument.convention_id == convention.id)
        )
        paths = [row[0] for row in result.all()]

        async with transaction(self.session):
            await self.session.execute(
                delete(ConventionDocument).where(ConventionDocument.convention_id == convention.id)
            )
            removed = await self.session.execute(
                delete(Convention)
                .where(Convention.id == convention.id, Convention.status == ConventionStatus.NEW.value)
                .execution_options(synchronize_session=False)
            )
            if removed.rowcount != 1:
                raise ConflictError("Convention is no longer deletable")

        for path in paths:
            await self._remove_file(path)
        log.info("convention.deleted", convention_id=str(convention_id), actor_id=str(actor.id))

    async def _remove_file(self, path: str) -> None:
        try:
            await self.files.remove(path)
        except Exception:
            log.warning("convention.file_remove_failed", path=path, exc_info=True)

    # ------------------------------------------------------------------
    # Notifications (after commit; failures never reach the caller)
    # ------------------------------------------------------------------

    async def _describe(self, convention: Convention) -> tuple[str, str]:
        point = await self.session.get(GtcPoint, convention.gtc_point_id)
        sector = await self.session.get(Sector, convention.sector_id)
        return (point.name if point else "?"), (sector.name if sector else "?")

    async def _notify_created(self, convention: Convention) -> None:
        try:
            point_name, sector_name = await self._describe(convention)
            owners = await sector_owner_ids(self.session, convention.sector_id)
            if not owners:
                return
            await self.dispatcher.notify_many(
                owners,
                subject=f"New convention created: {point_name} ({sector_name})",
                content=_summary("A new convention was created.", point_name, sector_name, convention.id),
                type=NotificationType.CONVENTION_CREATED,
            )
        except Exception:
            log.exception("convention.notify_failed", event="created", convention_id=str(convention.id))

    async def _notify_uploaded(self, convention_id: uuid.UUID) -> None:
        try:
            convention = await self._get(convention_id)
            point_name, sector_name = await self._describe(convention)
            recipients = [
                *await admin_ids(self.session),
                *await sector_owner_ids(self.session, convention.sector_id),
            ]
            await self.dispatcher.notify_many(
                recipients,
                subject=f"Convention uploaded: {point_name} ({sector_name})",
                content=_summary("A signed convention was uploaded.", point_name, sector_name, convention.id),
                type=NotificationType.CONVENTION_UPLOADED,
            )
        except Exception:
            log.exception("convention.notify_failed", event="uploaded", convention_id=str(convention_id))

    async def _notify_decided(self, convention: Convention) -> None:
        try:
            point_name, _ = await self._describe(convention)
            subject = f"Convention {convention.status}: {point_name}"
            details = email_templates.paragraph(f"Convention ID: {convention.id}")
            if convention.internal_sales_rep:
                details += email_templates.paragraph(f"Internal sales rep: {convention.internal_sales_rep}")

            await self.dispatcher.notify_many(
                await point_user_ids(self.session, convention.gtc_point_id),
                subject=subject,
                content=email_templates.paragraph(f"Your convention was {convention.status}.") + details,
                type=NotificationType.CONVENTION_STATUS,
            )
            owners = await sector_owner_ids(self.session, convention.sector_id)
            if owners:
                await self.dispatcher.notify_many(
                    owners,
                    subject=subject,
                    content=email_templates.paragraph(
                        f"The convention for {point_name} was {convention.status}."
                    )
                    + details,
                    type=NotificationType.CONVENTION_STATUS,
                )
        except Exception:
            log.exception("convention.notify_failed", event="decided", convention_id=str(convention.id))


def _summary(headline: str, point_name: str, sector_name: str, convention_id: uuid.UUID) -> str:
    return "".join(
        email_templates.paragraph(line)
        for line in (
            headline,
            f"Point: {point_name}",
            f"Sector: {sector_name}",
            f"Convention ID: {convention_id}",
        )
    )
