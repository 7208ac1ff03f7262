"""
Point onboarding workflow.

DRAFT -> SUBMITTED -> APPROVED -> COMPLETED, or SUBMITTED -> DECLINED.

An admin creates a link for an applicant; the applicant submits details
through the link; an admin approves (materializing a GtcPoint and enabling
its services) or declines; the applicant then registers a GTC_POINT login
through a one-time registration link.

Service selections are validated strictly when the link is created but
re-validated leniently on approval: a service moved to another sector in the
meantime is dropped with a warning instead of failing the approval.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional, Sequence

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from gtcflow.core.config import Settings, get_settings
from gtcflow.core.database import transaction
from gtcflow.core.exceptions import (
    ConflictError,
    ExpiredToken,
    NotFoundError,
    RevokedToken,
    ValidationError,
)
from gtcflow.core.roles import require_role
from gtcflow.core.storage import FileStore, StoredFile
from gtcflow.core.tokens import TokenAuthority, new_opaque_token
from gtcflow.models.base import as_utc, utcnow
from gtcflow.models.onboarding import PointOnboarding, PointOnboardingService
from gtcflow.models.sector import GtcPoint, GtcPointService, Sector, Service
from gtcflow.models.user import User
from gtcflow.schemas.common import (
    NotificationType,
    OnboardingAction,
    OnboardingStatus,
    PointServiceStatus,
    Role,
)
from gtcflow.schemas.onboarding import OnboardingFields
from gtcflow.services import email_templates
from gtcflow.services.notifications import Dispatcher, EmailOverride, admins_and_owners
from gtcflow.services.transitions import ONBOARDING_TRANSITIONS, guarded_status_update, next_status

log = structlog.get_logger()

SIGNATURE_MIMES = frozenset({"image/png", "image/jpeg", "image/webp", "application/pdf"})


@dataclass(frozen=True)
class SignatureUpload:
    """The applicant's signature file as received, before it is stored."""

    content: bytes
    mime: str
    name: str


@dataclass(frozen=True)
class ApprovalResult:
    point_id: uuid.UUID
    enabled_service_ids: list[uuid.UUID] = field(default_factory=list)
    dropped_service_ids: list[uuid.UUID] = field(default_factory=list)


class OnboardingService:
    def __init__(
        self,
        session: AsyncSession,
        dispatcher: Dispatcher,
        authority: TokenAuthority,
        files: FileStore,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.authority = authority
        self.files = files
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _get(self, onboarding_id: uuid.UUID) -> PointOnboarding:
        onboarding = await self.session.get(PointOnboarding, onboarding_id)
        if onboarding is None:
            raise NotFoundError("Onboarding", onboarding_id)
        return onboarding

    async def _find_by(self, column, token: str) -> PointOnboarding:
        result = await self.session.execute(select(PointOnboarding).where(column == token))
        onboarding = result.scalars().first()
        if onboarding is None:
            raise NotFoundError("Onboarding")
        return onboarding

    async def selected_service_ids(self, onboarding_id: uuid.UUID) -> list[uuid.UUID]:
        result = await self.session.execute(
            select(PointOnboardingService.service_id).where(
                PointOnboardingService.onboarding_id == onboarding_id
            )
        )
        return [row[0] for row in result.all()]

    async def get_by_token(self, token: str) -> PointOnboarding:
        """Public lookup behind the onboarding link, for prefilling the form."""
        onboarding = await self._find_by(PointOnboarding.onboarding_token, token)
        if as_utc(onboarding.token_expires_at) < utcnow():
            raise ExpiredToken("onboarding link expired")
        return onboarding

    async def list(self, actor: User, status: Optional[OnboardingStatus] = None) -> list[PointOnboarding]:
        require_role(actor.role, Role.ADMIN)
        stmt = select(PointOnboarding).order_by(PointOnboarding.created_at.desc())
        if status is not None:
            stmt = stmt.where(PointOnboarding.status == OnboardingStatus(status).value)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get(self, actor: User, onboarding_id: uuid.UUID) -> PointOnboarding:
        require_role(actor.role, Role.ADMIN)
        return await self._get(onboarding_id)

    # ------------------------------------------------------------------
    # Link creation
    # ------------------------------------------------------------------

    async def create_link(
        self,
        actor: User,
        sector_id: uuid.UUID,
        email: str,
        name: str,
        service_ids: Optional[Sequence[uuid.UUID]] = None,
        include_services: bool = False,
    ) -> PointOnboarding:
        """Create a DRAFT onboarding and email the applicant its link.

        Every service must belong to `sector_id`; otherwise nothing is written.
        """
        require_role(actor.role, Role.ADMIN)
        email = (email or "").strip().lower()
        name = (name or "").strip()
        if "@" not in email:
            raise ValidationError("A valid email is required")
        if not name:
            raise ValidationError("Name is required")
        if await self.session.get(Sector, sector_id) is None:
            raise NotFoundError("Sector", sector_id)

        wanted = list(dict.fromkeys(service_ids or []))
        if wanted:
            result = await self.session.execute(select(Service).where(Service.id.in_(wanted)))
            found = {s.id: s for s in result.scalars().all()}
            invalid = [sid for sid in wanted if sid not in found or found[sid].sector_id != sector_id]
            if invalid:
                raise ValidationError(
                    "Services do not belong to the sector: " + ", ".join(str(s) for s in invalid)
                )

        async with transaction(self.session):
            onboarding = PointOnboarding(
                sector_id=sector_id,
                email=email,
                name=name,
                include_services=include_services,
                status=OnboardingStatus.DRAFT.value,
                onboarding_token=new_opaque_token(),
                token_expires_at=utcnow() + timedelta(days=self.settings.onboarding_token_ttl_days),
            )
            self.session.add(onboarding)
            for sid in wanted:
                self.session.add(PointOnboardingService(onboarding_id=onboarding.id, service_id=sid))

        log.info("onboarding.link_created", onboarding_id=str(onboarding.id), sector_id=str(sector_id))

        link = email_templates.join_url(
            self.settings.web_base_url, "onboarding/points", onboarding.onboarding_token
        )
        await self.dispatcher.send_email(
            to=onboarding.email,
            subject="Complete your GTC Point onboarding",
            html=email_templates.action_html(
                "Open the link to complete your details and sign electronically.",
                link,
                "Complete onboarding",
            ),
        )
        return onboarding

    # ------------------------------------------------------------------
    # Applicant submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        token: str,
        fields: OnboardingFields,
        selected_service_ids: Optional[Sequence[uuid.UUID]] = None,
        signature: Optional[SignatureUpload] = None,
    ) -> PointOnboarding:
        """Store the applicant's details and move DRAFT to SUBMITTED.

        The signature file is written to the file store before the status
        change and removed again if the change does not commit.
        """
        onboarding = await self._find_by(PointOnboarding.onboarding_token, token)
        if as_utc(onboarding.token_expires_at) < utcnow():
            raise ExpiredToken("onboarding link expired")
        next_status(ONBOARDING_TRANSITIONS, OnboardingStatus(onboarding.status), OnboardingAction.SUBMIT)

        replace = onboarding.include_services and selected_service_ids is not None
        selection = list(dict.fromkeys(selected_service_ids or []))
        if replace and selection:
            result = await self.session.execute(select(Service.id).where(Service.id.in_(selection)))
            known = {row[0] for row in result.all()}
            unknown = [sid for sid in selection if sid not in known]
            if unknown:
                raise ValidationError("Unknown services: " + ", ".join(str(s) for s in unknown))

        values = {
            "vat_or_tax_number": fields.vat_or_tax_number
            if fields.vat_or_tax_number is not None
            else onboarding.vat_or_tax_number,
            "phone": fields.phone if fields.phone is not None else onboarding.phone,
            "submitted_at": utcnow(),
        }
        stored: Optional[StoredFile] = None
        if signature is not None:
            stored = await self._store_signature(signature)
            values.update(
                signature_path=stored.path,
                signature_mime=stored.mime,
                signature_name=signature.name,
            )

        try:
            async with transaction(self.session):
                await guarded_status_update(
                    self.session,
                    PointOnboarding,
                    onboarding.id,
                    [OnboardingStatus.DRAFT],
                    OnboardingStatus.SUBMITTED,
                    **values,
                )
                if replace:
                    await self.session.execute(
                        delete(PointOnboardingService).where(
                            PointOnboardingService.onboarding_id == onboarding.id
                        )
                    )
                    for sid in selection:
                        self.session.add(PointOnboardingService(onboarding_id=onboarding.id, service_id=sid))
        except Exception:
            if stored is not None:
                await self._remove_file(stored.path)
            raise
        await self.session.refresh(onboarding)

        log.info("onboarding.submitted", onboarding_id=str(onboarding.id), services_replaced=replace)
        await self._notify_reviewers_submitted(onboarding)
        return onboarding

    async def _store_signature(self, signature: SignatureUpload) -> StoredFile:
        mime = (signature.mime or "").split(";", 1)[0].strip().lower()
        if mime not in SIGNATURE_MIMES:
            raise ValidationError("Signature must be a PNG, JPEG, WebP or PDF file")
        if not signature.content:
            raise ValidationError("Signature file is empty")
        if len(signature.content) > self.settings.max_signature_bytes:
            raise ValidationError("Signature file is too large")
        return await self.files.put(signature.content, mime, signature.name or "signature")

    async def _remove_file(self, path: str) -> None:
        try:
            await self.files.remove(path)
        except Exception:
            log.warning("onboarding.file_remove_failed", path=path, exc_info=True)

    # ------------------------------------------------------------------
    # Admin decisions
    # ------------------------------------------------------------------

    async def approve(self, actor: User, onboarding_id: uuid.UUID) -> ApprovalResult:
        """Materialize the point, enable its still-valid services and issue a registration link."""
        require_role(actor.role, Role.ADMIN)
        onboarding = await self._get(onboarding_id)
        next_status(ONBOARDING_TRANSITIONS, OnboardingStatus(onboarding.status), OnboardingAction.APPROVE)

        grant = await self.authority.issue_registration(onboarding.id)
        enabled: list[uuid.UUID] = []
        dropped: list[uuid.UUID] = []
        try:
            async with transaction(self.session):
                point = await self._upsert_point(onboarding)
                await guarded_status_update(
                    self.session,
                    PointOnboarding,
                    onboarding.id,
                    [OnboardingStatus.SUBMITTED],
                    OnboardingStatus.APPROVED,
                    gtc_point_id=point.id,
                    registration_token=grant.token,
                    registration_expires_at=grant.expires_at,
                    decided_at=utcnow(),
                    decided_by_id=actor.id,
                )

                selection = await self.selected_service_ids(onboarding.id)
                services = {}
                if selection:
                    result = await self.session.execute(select(Service).where(Service.id.in_(selection)))
                    services = {s.id: s for s in result.scalars().all()}

                for sid in selection:
                    service = services.get(sid)
                    if service is None or service.sector_id != onboarding.sector_id:
                        log.warning(
                            "onboarding.service_dropped",
                            onboarding_id=str(onboarding.id),
                            service_id=str(sid),
                            sector_id=str(onboarding.sector_id),
                        )
                        dropped.append(sid)
                        continue
                    await self._enable_service(point.id, sid)
                    enabled.append(sid)
        except Exception:
            await self.authority.revoke_registration(grant.token)
            raise
        await self.session.refresh(onboarding)

        log.info(
            "onboarding.approved",
            onboarding_id=str(onboarding.id),
            point_id=str(point.id),
            enabled=len(enabled),
            dropped=len(dropped),
        )

        link = email_templates.join_url(self.settings.web_base_url, "onboarding/points/register", grant.token)
        await self.dispatcher.send_email(
            to=onboarding.email,
            subject="Registration link for your GTC Point",
            html=email_templates.action_html(
                "Your onboarding request was approved. Set a password to complete your account.",
                link,
                "Complete registration",
            ),
        )
        await self._notify_reviewers_approved(onboarding, point.id, [services[s] for s in enabled])
        return ApprovalResult(point_id=point.id, enabled_service_ids=enabled, dropped_service_ids=dropped)

    async def _upsert_point(self, onboarding: PointOnboarding) -> GtcPoint:
        result = await self.session.execute(select(GtcPoint).where(GtcPoint.email == onboarding.email))
        point = result.scalars().first()
        if point is None:
            point = GtcPoint(name=onboarding.name, email=onboarding.email, sector_id=onboarding.sector_id)
        else:
            point.name = onboarding.name
            point.sector_id = onboarding.sector_id
        self.session.add(point)
        await self.session.flush()
        return point

    async def _enable_service(self, point_id: uuid.UUID, service_id: uuid.UUID) -> None:
        link = await self.session.get(GtcPointService, {"gtc_point_id": point_id, "service_id": service_id})
        if link is None:
            link = GtcPointService(gtc_point_id=point_id, service_id=service_id)
        link.status = PointServiceStatus.ENABLED.value
        self.session.add(link)

    async def decline(self, actor: User, onboarding_id: uuid.UUID) -> PointOnboarding:
        require_role(actor.role, Role.ADMIN)
        onboarding = await self._get(onboarding_id)
        next_status(ONBOARDING_TRANSITIONS, OnboardingStatus(onboarding.status), OnboardingAction.DECLINE)

        async with transaction(self.session):
            await guarded_status_update(
                self.session,
                PointOnboarding,
                onboarding.id,
                [OnboardingStatus.SUBMITTED],
                OnboardingStatus.DECLINED,
                decided_at=utcnow(),
                decided_by_id=actor.id,
            )
        await self.session.refresh(onboarding)
        log.info("onboarding.declined", onboarding_id=str(onboarding.id), actor_id=str(actor.id))

        await self.dispatcher.send_email(
            to=onboarding.email,
            subject="Your onboarding request was declined",
            html=email_templates.paragraph("Your onboarding request was declined by the administrator."),
        )
        await self._notify_reviewers(
            onboarding,
            subject="GTC Point onboarding declined",
            content=email_templates.paragraph(
                f"The onboarding for {onboarding.name} <{onboarding.email}> was declined."
            ),
        )
        return onboarding

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def complete_registration(self, registration_token: str, password_hash: str) -> User:
        """Create the GTC_POINT login for an approved onboarding. The link works once."""
        onboarding = await self._find_by(PointOnboarding.registration_token, registration_token)
        next_status(ONBOARDING_TRANSITIONS, OnboardingStatus(onboarding.status), OnboardingAction.COMPLETE)
        expires_at = onboarding.registration_expires_at
        if expires_at is None or as_utc(expires_at) < utcnow():
            raise ExpiredToken("registration link expired")
        if await self.authority.verify_registration(registration_token) != str(onboarding.id):
            raise RevokedToken("registration grant belongs to another onboarding")
        if onboarding.gtc_point_id is None:
            raise ConflictError("Onboarding has no GTC Point")

        async with transaction(self.session):
            user = User(
                email=onboarding.email,
                name=onboarding.name,
                password_hash=password_hash,
                role=Role.GTC_POINT.value,
                gtc_point_id=onboarding.gtc_point_id,
            )
            self.session.add(user)
            await guarded_status_update(
                self.session,
                PointOnboarding,
                onboarding.id,
                [OnboardingStatus.APPROVED],
                OnboardingStatus.COMPLETED,
                completed_at=utcnow(),
            )
        await self.session.refresh(onboarding)
        try:
            await self.authority.revoke_registration(registration_token)
        except Exception:
            # COMPLETED already blocks reuse; the grant just lingers until its TTL
            log.warning("onboarding.grant_revoke_failed", onboarding_id=str(onboarding.id), exc_info=True)

        log.info("onboarding.completed", onboarding_id=str(onboarding.id), user_id=str(user.id))

        await self._notify_reviewers(
            onboarding,
            subject="New GTC Point registered",
            content=email_templates.paragraph(
                f"{onboarding.name} ({onboarding.email}) completed the registration."
            ),
        )
        try:
            await self.dispatcher.notify_one(
                user.id,
                subject="Welcome to GTC",
                content=email_templates.paragraph(f"Welcome {user.name}! Your account is now active."),
                type=NotificationType.WELCOME,
                email=EmailOverride(
                    subject="Welcome, your account is ready",
                    html=email_templates.paragraph(
                        "Your account has been created and you can now sign in with your email."
                    ),
                ),
            )
        except Exception:
            log.exception("onboarding.welcome_failed", user_id=str(user.id))
        return user

    # ------------------------------------------------------------------
    # Notifications (after commit)
    # ------------------------------------------------------------------

    async def _notify_reviewers(
        self,
        onboarding: PointOnboarding,
        subject: str,
        content: str,
        type: NotificationType = NotificationType.ONBOARDING_STATUS,
        email: Optional[EmailOverride] = None,
    ) -> None:
        try:
            recipients = await admins_and_owners(self.session, onboarding.sector_id)
            if recipients:
                await self.dispatcher.notify_many(recipients, subject=subject, content=content, type=type, email=email)
        except Exception:
            log.exception("onboarding.notify_failed", onboarding_id=str(onboarding.id), subject=subject)

    async def _notify_reviewers_submitted(self, onboarding: PointOnboarding) -> None:
        link = email_templates.join_url(self.settings.web_base_url, "admin/points-onboarding", str(onboarding.id))
        html = email_templates.action_html(
            f"The point {onboarding.name} <{onboarding.email}> submitted its onboarding details.",
            link,
            "Review onboarding",
        )
        await self._notify_reviewers(
            onboarding,
            subject="New GTC Point onboarding request",
            content=html,
            type=NotificationType.ONBOARDING_SUBMITTED,
        )

    async def _notify_reviewers_approved(
        self, onboarding: PointOnboarding, point_id: uuid.UUID, enabled: list[Service]
    ) -> None:
        message = f"The GTC Point {onboarding.name} <{onboarding.email}> was approved."
        if enabled:
            message += " Enabled services: " + ", ".join(s.name for s in enabled) + "."
        link = email_templates.join_url(self.settings.web_base_url, "admin/points", str(point_id))
        await self._notify_reviewers(
            onboarding,
            subject="GTC Point approved",
            content=email_templates.action_html(message, link, "Open the point"),
        )
