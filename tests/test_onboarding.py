"""
Integration tests for the point onboarding workflow.

Tests cover:
- Link creation: strict service validation, applicant email
- Submission through the link
- Approval: point materialization, service re-validation, double approval
- Decline
- Registration through the one-time link
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import update

from gtcflow.core.exceptions import (
    AuthorizationError,
    ConflictError,
    ExpiredToken,
    NotFoundError,
    RevokedToken,
    ValidationError,
)
from gtcflow.core.tokens import hash_password
from gtcflow.models.base import utcnow
from gtcflow.models.notification import Notification
from gtcflow.models.onboarding import PointOnboarding, PointOnboardingService
from gtcflow.models.sector import GtcPoint, GtcPointService, Service
from gtcflow.models.user import User
from gtcflow.schemas.common import NotificationType, OnboardingStatus, PointServiceStatus, Role
from gtcflow.schemas.onboarding import OnboardingFields
from gtcflow.services.onboarding import SignatureUpload

APPLICANT = "New.Point@Example.com"
SIGNATURE_PNG = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"


async def _link(world, service_ids=None, include_services=False) -> PointOnboarding:
    async with world.onboarding() as svc:
        return await svc.create_link(
            world.admin,
            world.sector.id,
            APPLICANT,
            "New Point",
            service_ids=service_ids if service_ids is not None else [world.service_x.id],
            include_services=include_services,
        )


async def _submitted(world, **kwargs) -> PointOnboarding:
    onboarding = await _link(world, **kwargs)
    async with world.onboarding() as svc:
        return await svc.submit(
            onboarding.onboarding_token,
            OnboardingFields(vat_or_tax_number="BE0123", phone="+32 1"),
            signature=SignatureUpload(content=SIGNATURE_PNG, mime="image/png", name="sig.png"),
        )


async def _approved(world) -> tuple[PointOnboarding, str]:
    onboarding = await _submitted(world)
    async with world.onboarding() as svc:
        await svc.approve(world.admin, onboarding.id)
    stored = await world.get(PointOnboarding, onboarding.id)
    return stored, stored.registration_token


class TestCreateLink:
    async def test_creates_draft_and_emails_applicant(self, world, email_queue):
        onboarding = await _link(world)

        assert onboarding.status == OnboardingStatus.DRAFT.value
        assert onboarding.email == APPLICANT.lower()
        assert len(onboarding.onboarding_token) == 48
        [job] = email_queue.sent_to(APPLICANT.lower())
        assert f"/onboarding/points/{onboarding.onboarding_token}" in job.html
        assert await world.count(PointOnboardingService) == 1

    async def test_service_from_other_sector_rejected(self, world):
        async with world.onboarding() as svc:
            with pytest.raises(ValidationError):
                await svc.create_link(
                    world.admin,
                    world.sector.id,
                    APPLICANT,
                    "New Point",
                    service_ids=[world.service_x.id, world.service_y.id],
                )
        assert await world.count(PointOnboarding) == 0

    async def test_unknown_sector(self, world):
        async with world.onboarding() as svc:
            with pytest.raises(NotFoundError):
                await svc.create_link(world.admin, uuid.uuid4(), APPLICANT, "New Point")

    async def test_admin_only(self, world):
        async with world.onboarding() as svc:
            with pytest.raises(AuthorizationError):
                await svc.create_link(world.owner, world.sector.id, APPLICANT, "New Point")


class TestSubmit:
    async def test_submit_records_fields_and_notifies_reviewers(self, world):
        onboarding = await _submitted(world)

        assert onboarding.status == OnboardingStatus.SUBMITTED.value
        assert onboarding.vat_or_tax_number == "BE0123"
        assert onboarding.signature_name == "sig.png"
        assert onboarding.submitted_at is not None
        rows = await world.all(Notification, Notification.type == NotificationType.ONBOARDING_SUBMITTED.value)
        assert {n.user_id for n in rows} == {world.admin.id, world.owner.id}

    async def test_signature_goes_to_file_store(self, world, files):
        onboarding = await _submitted(world)

        [path] = files.files
        assert onboarding.signature_path == path
        assert onboarding.signature_mime == "image/png"
        assert files.files[path] == SIGNATURE_PNG

    async def test_unsupported_signature_rejected_before_storing(self, world, files):
        onboarding = await _link(world)
        async with world.onboarding() as svc:
            with pytest.raises(ValidationError):
                await svc.submit(
                    onboarding.onboarding_token,
                    OnboardingFields(),
                    signature=SignatureUpload(content=b"<html></html>", mime="text/html", name="sig.html"),
                )

        assert files.files == {}
        stored = await world.get(PointOnboarding, onboarding.id)
        assert stored.status == OnboardingStatus.DRAFT.value

    async def test_losing_submit_removes_its_signature(self, world, files):
        onboarding = await _link(world)
        async with world.onboarding() as late:
            stale = await late.get_by_token(onboarding.onboarding_token)
            assert stale.status == OnboardingStatus.DRAFT.value
            async with world.onboarding() as svc:
                await svc.submit(onboarding.onboarding_token, OnboardingFields(phone="+32 1"))
            with pytest.raises(ConflictError):
                await late.submit(
                    onboarding.onboarding_token,
                    OnboardingFields(phone="+32 2"),
                    signature=SignatureUpload(content=SIGNATURE_PNG, mime="image/png", name="late.png"),
                )

        assert files.files == {}
        assert len(files.removed) == 1
        stored = await world.get(PointOnboarding, onboarding.id)
        assert stored.phone == "+32 1"
        assert stored.signature_path is None

    async def test_unknown_token(self, world):
        async with world.onboarding() as svc:
            with pytest.raises(NotFoundError):
                await svc.submit("nope", OnboardingFields())

    async def test_expired_link(self, world):
        onboarding = await _link(world)
        async with world.session_factory() as session:
            await session.execute(
                update(PointOnboarding)
                .where(PointOnboarding.id == onboarding.id)
                .values(token_expires_at=utcnow() - timedelta(minutes=1))
            )
            await session.commit()

        async with world.onboarding() as svc:
            with pytest.raises(ExpiredToken):
                await svc.submit(onboarding.onboarding_token, OnboardingFields())

    async def test_second_submit_conflicts(self, world):
        onboarding = await _submitted(world)
        async with world.onboarding() as svc:
            with pytest.raises(ConflictError):
                await svc.submit(onboarding.onboarding_token, OnboardingFields())

    async def test_selection_replaced_when_allowed(self, world):
        onboarding = await _link(world, service_ids=[], include_services=True)
        async with world.onboarding() as svc:
            await svc.submit(onboarding.onboarding_token, OnboardingFields(), [world.service_x.id])
        rows = await world.all(PointOnboardingService)
        assert [r.service_id for r in rows] == [world.service_x.id]

    async def test_selection_ignored_when_not_allowed(self, world):
        onboarding = await _link(world)
        async with world.onboarding() as svc:
            await svc.submit(onboarding.onboarding_token, OnboardingFields(), [])
        assert await world.count(PointOnboardingService) == 1

    async def test_unknown_service_in_selection(self, world):
        onboarding = await _link(world, service_ids=[], include_services=True)
        async with world.onboarding() as svc:
            with pytest.raises(ValidationError):
                await svc.submit(onboarding.onboarding_token, OnboardingFields(), [uuid.uuid4()])


class TestApprove:
    async def test_approve_creates_point_and_enables_services(self, world, email_queue):
        onboarding = await _submitted(world)
        async with world.onboarding() as svc:
            result = await svc.approve(world.admin, onboarding.id)

        point = await world.get(GtcPoint, result.point_id)
        assert point.email == APPLICANT.lower()
        assert result.enabled_service_ids == [world.service_x.id]
        link = await world.get(GtcPointService, {"gtc_point_id": point.id, "service_id": world.service_x.id})
        assert link.status == PointServiceStatus.ENABLED.value

        stored = await world.get(PointOnboarding, onboarding.id)
        assert stored.status == OnboardingStatus.APPROVED.value
        assert stored.gtc_point_id == point.id
        assert stored.decided_by_id == world.admin.id
        register_mail = [j for j in email_queue.sent_to(APPLICANT.lower()) if "register" in (j.html or "")]
        assert len(register_mail) == 1

    async def test_service_moved_to_other_sector_is_dropped(self, world):
        onboarding = await _submitted(world)
        async with world.session_factory() as session:
            await session.execute(
                update(Service).where(Service.id == world.service_x.id).values(sector_id=world.other_sector.id)
            )
            await session.commit()

        async with world.onboarding() as svc:
            result = await svc.approve(world.admin, onboarding.id)

        assert result.enabled_service_ids == []
        assert result.dropped_service_ids == [world.service_x.id]
        assert await world.count(GtcPointService) == 0
        assert (await world.get(PointOnboarding, onboarding.id)).status == OnboardingStatus.APPROVED.value

    async def test_second_approval_conflicts(self, world):
        onboarding = await _submitted(world)
        async with world.onboarding() as svc:
            await svc.approve(world.admin, onboarding.id)
        async with world.onboarding() as svc:
            with pytest.raises(ConflictError):
                await svc.approve(world.admin, onboarding.id)
        assert await world.count(GtcPoint, GtcPoint.email == APPLICANT.lower()) == 1

    async def test_racing_approval_loses_and_revokes_its_grant(self, world, token_store):
        onboarding = await _submitted(world)
        async with world.onboarding() as late:
            stale = await late.get(world.admin, onboarding.id)
            assert stale.status == OnboardingStatus.SUBMITTED.value
            async with world.onboarding() as svc:
                await svc.approve(world.admin, onboarding.id)
            with pytest.raises(ConflictError):
                await late.approve(world.admin, onboarding.id)

        assert await world.count(GtcPoint, GtcPoint.email == APPLICANT.lower()) == 1
        assert len(token_store) == 1

    async def test_existing_point_is_reused(self, world):
        async with world.session_factory() as session:
            session.add(GtcPoint(name="Old Name", email=APPLICANT.lower(), sector_id=world.other_sector.id))
            await session.commit()

        onboarding = await _submitted(world)
        async with world.onboarding() as svc:
            result = await svc.approve(world.admin, onboarding.id)

        point = await world.get(GtcPoint, result.point_id)
        assert point.name == "New Point"
        assert point.sector_id == world.sector.id
        assert await world.count(GtcPoint, GtcPoint.email == APPLICANT.lower()) == 1

    async def test_draft_cannot_be_approved(self, world):
        onboarding = await _link(world)
        async with world.onboarding() as svc:
            with pytest.raises(ConflictError):
                await svc.approve(world.admin, onboarding.id)


class TestDecline:
    async def test_decline_emails_applicant(self, world, email_queue):
        onboarding = await _submitted(world)
        async with world.onboarding() as svc:
            declined = await svc.decline(world.admin, onboarding.id)

        assert declined.status == OnboardingStatus.DECLINED.value
        assert any("declined" in j.subject for j in email_queue.sent_to(APPLICANT.lower()))

    async def test_declined_cannot_be_approved(self, world):
        onboarding = await _submitted(world)
        async with world.onboarding() as svc:
            await svc.decline(world.admin, onboarding.id)
        async with world.onboarding() as svc:
            with pytest.raises(ConflictError):
                await svc.approve(world.admin, onboarding.id)


class TestRegistration:
    async def test_complete_creates_point_login(self, world, realtime):
        onboarding, token = await _approved(world)
        async with world.onboarding() as svc:
            user = await svc.complete_registration(token, hash_password("point-password"))

        assert user.role == Role.GTC_POINT.value
        assert user.gtc_point_id == onboarding.gtc_point_id
        assert (await world.get(PointOnboarding, onboarding.id)).status == OnboardingStatus.COMPLETED.value
        welcome = await world.all(Notification, Notification.user_id == user.id)
        assert [n.type for n in welcome] == [NotificationType.WELCOME.value]

    async def test_link_works_once(self, world):
        _, token = await _approved(world)
        async with world.onboarding() as svc:
            await svc.complete_registration(token, hash_password("point-password"))
        async with world.onboarding() as svc:
            with pytest.raises(ConflictError):
                await svc.complete_registration(token, hash_password("point-password"))
        assert await world.count(User, User.email == APPLICANT.lower()) == 1

    async def test_revoked_grant_rejected(self, world):
        _, token = await _approved(world)
        await world.authority.revoke_registration(token)
        async with world.onboarding() as svc:
            with pytest.raises(RevokedToken):
                await svc.complete_registration(token, hash_password("point-password"))

    async def test_expired_registration(self, world):
        onboarding, token = await _approved(world)
        async with world.session_factory() as session:
            await session.execute(
                update(PointOnboarding)
                .where(PointOnboarding.id == onboarding.id)
                .values(registration_expires_at=utcnow() - timedelta(seconds=1))
            )
            await session.commit()
        async with world.onboarding() as svc:
            with pytest.raises(ExpiredToken):
                await svc.complete_registration(token, hash_password("point-password"))

    async def test_unknown_registration_token(self, world):
        async with world.onboarding() as svc:
            with pytest.raises(NotFoundError):
                await svc.complete_registration("missing", hash_password("point-password"))
