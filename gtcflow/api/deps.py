"""Service factories for route handlers: one request session, shared app collaborators."""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gtcflow.core.auth import AppContext, get_context
from gtcflow.core.database import get_session
from gtcflow.services.accounts import AccountService
from gtcflow.services.catalog import CatalogService
from gtcflow.services.conventions import ConventionService
from gtcflow.services.onboarding import OnboardingService
from gtcflow.services.point_services import PointServiceManager


def get_convention_service(
    session: AsyncSession = Depends(get_session),
    ctx: AppContext = Depends(get_context),
) -> ConventionService:
    return ConventionService(session, ctx.dispatcher, ctx.files)


def get_onboarding_service(
    session: AsyncSession = Depends(get_session),
    ctx: AppContext = Depends(get_context),
) -> OnboardingService:
    return OnboardingService(session, ctx.dispatcher, ctx.authority, ctx.files)


def get_account_service(
    session: AsyncSession = Depends(get_session),
    ctx: AppContext = Depends(get_context),
) -> AccountService:
    return AccountService(session, ctx.dispatcher, ctx.authority)


def get_point_service_manager(
    session: AsyncSession = Depends(get_session),
    ctx: AppContext = Depends(get_context),
) -> PointServiceManager:
    return PointServiceManager(session, ctx.dispatcher)


def get_catalog_service(session: AsyncSession = Depends(get_session)) -> CatalogService:
    return CatalogService(session)
