"""
Tests for the admin catalogue and the local admin bootstrap script.

Tests cover:
- Sector, service and point upserts keyed on name, code and email
- Validation and admin-only access
- A service moved between sectors is dropped from a pending approval
- Admin creation from the command-line helper
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

import pytest

from gtcflow.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from gtcflow.core.tokens import verify_password
from gtcflow.models.sector import GtcPoint, Sector, Service
from gtcflow.models.user import User
from gtcflow.schemas.common import Role
from gtcflow.schemas.onboarding import OnboardingFields
from gtcflow.scripts.create_local_admin import upsert_admin
from gtcflow.services.catalog import CatalogService


@asynccontextmanager
async def _catalog(world):
    async with world.session_factory() as session:
        yield CatalogService(session)


class TestSectors:
    async def test_upsert_is_keyed_on_name(self, world):
        async with _catalog(world) as svc:
            sector, created = await svc.upsert_sector(world.admin, "Finance")
        assert created
        async with _catalog(world) as svc:
            again, created = await svc.upsert_sector(world.admin, " Finance ")
        assert not created
        assert again.id == sector.id
        assert await world.count(Sector, Sector.name == "Finance") == 1

    async def test_short_name_rejected(self, world):
        async with _catalog(world) as svc:
            with pytest.raises(ValidationError):
                await svc.upsert_sector(world.admin, "F")

    async def test_admin_only(self, world):
        async with _catalog(world) as svc:
            with pytest.raises(AuthorizationError):
                await svc.upsert_sector(world.owner, "Finance")
            with pytest.raises(AuthorizationError):
                await svc.list_sectors(world.point_user)

    async def test_listing_is_sorted(self, world):
        async with _catalog(world) as svc:
            assert [s.name for s in await svc.list_sectors(world.admin)] == ["Logistics", "Training"]


class TestServices:
    async def test_create_and_move_by_code(self, world):
        async with _catalog(world) as svc:
            service, created = await svc.upsert_service(world.admin, "z1", "Storage", world.sector.id)
        assert created
        assert service.code == "Z1"

        async with _catalog(world) as svc:
            moved, created = await svc.upsert_service(world.admin, "Z1", "Cold storage", world.other_sector.id)
        assert not created
        stored = await world.get(Service, service.id)
        assert (stored.name, stored.sector_id) == ("Cold storage", world.other_sector.id)

    async def test_unknown_sector(self, world):
        async with _catalog(world) as svc:
            with pytest.raises(NotFoundError):
                await svc.upsert_service(world.admin, "Z1", "Storage", uuid.uuid4())

    async def test_filter_by_sector(self, world):
        async with _catalog(world) as svc:
            services = await svc.list_services(world.admin, world.other_sector.id)
        assert [s.code for s in services] == ["Y"]

    async def test_moved_service_is_dropped_on_approval(self, world):
        async with world.onboarding() as onboarding_svc:
            onboarding = await onboarding_svc.create_link(
                world.admin, world.sector.id, "mover@example.com", "Mover", service_ids=[world.service_x.id]
            )
        async with world.onboarding() as onboarding_svc:
            await onboarding_svc.submit(onboarding.onboarding_token, OnboardingFields())
        async with _catalog(world) as svc:
            await svc.upsert_service(world.admin, "X", "Courses", world.other_sector.id)
        async with world.onboarding() as onboarding_svc:
            result = await onboarding_svc.approve(world.admin, onboarding.id)

        assert result.enabled_service_ids == []
        assert result.dropped_service_ids == [world.service_x.id]


class TestPoints:
    async def test_direct_creation_and_update_by_email(self, world):
        async with _catalog(world) as svc:
            point, created = await svc.upsert_point(world.admin, "Point Two", "Two@Example.com", world.sector.id)
        assert created
        assert point.email == "two@example.com"

        async with _catalog(world) as svc:
            _, created = await svc.upsert_point(world.admin, "Point 2", "two@example.com", world.other_sector.id)
        assert not created
        stored = await world.get(GtcPoint, point.id)
        assert (stored.name, stored.sector_id) == ("Point 2", world.other_sector.id)

    async def test_invalid_email(self, world):
        async with _catalog(world) as svc:
            with pytest.raises(ValidationError):
                await svc.upsert_point(world.admin, "Point Two", "nope", world.sector.id)

    async def test_paged_listing(self, world):
        async with _catalog(world) as svc:
            await svc.upsert_point(world.admin, "Point Two", "two@example.com", world.sector.id)
        async with _catalog(world) as svc:
            items, total = await svc.list_points(world.admin, page=1, page_size=1)
        assert total == 2
        assert len(items) == 1


class TestCreateLocalAdmin:
    async def test_creates_admin(self, session_factory):
        async with session_factory() as session:
            user, created = await upsert_admin(session, "Root@Example.com", "long-password")
            await session.commit()

        assert created
        assert user.email == "root@example.com"
        assert user.role == Role.ADMIN.value
        assert verify_password("long-password", user.password_hash)

    async def test_existing_user_untouched_without_reset(self, world):
        async with world.session_factory() as session:
            user, created = await upsert_admin(session, world.owner.email, "long-password")
            await session.commit()
        assert not created
        stored = await world.get(User, world.owner.id)
        assert stored.role == Role.SECTOR_OWNER.value
        assert stored.password_hash is None

    async def test_reset_password_promotes(self, world):
        async with world.session_factory() as session:
            await upsert_admin(session, world.owner.email, "long-password", reset_password=True)
            await session.commit()
        stored = await world.get(User, world.owner.id)
        assert stored.role == Role.ADMIN.value
        assert verify_password("long-password", stored.password_hash)
