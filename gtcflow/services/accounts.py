"""Account service: sector-owner invites, login and refresh-session handling."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from gtcflow.core.config import Settings, get_settings
from gtcflow.core.database import transaction
from gtcflow.core.exceptions import (
    InvalidCredentials,
    InvalidToken,
    NotFoundError,
    TokenError,
    ValidationError,
)
from gtcflow.core.roles import require_role
from gtcflow.core.tokens import TokenAuthority, hash_password, verify_password
from gtcflow.models.sector import Sector
from gtcflow.models.user import User
from gtcflow.schemas.common import Role
from gtcflow.services import email_templates
from gtcflow.services.notifications import Dispatcher

log = structlog.get_logger()


@dataclass(frozen=True)
class SessionTokens:
    user: User
    access_token: str
    refresh_token: str
    session_id: str


class AccountService:
    def __init__(
        self,
        session: AsyncSession,
        dispatcher: Dispatcher,
        authority: TokenAuthority,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.authority = authority
        self.settings = settings or get_settings()

    async def _user_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalars().first()

    async def create_sector_owner(self, actor: User, email: str, name: str, sector_id: uuid.UUID) -> User:
        """Create a password-less SECTOR_OWNER and email an activation link."""
        require_role(actor.role, Role.ADMIN)
        email = (email or "").strip().lower()
        if "@" not in email:
            raise ValidationError("A valid email is required")
        if await self.session.get(Sector, sector_id) is None:
            raise NotFoundError("Sector", sector_id)

        async with transaction(self.session):
            user = User(email=email, name=name, role=Role.SECTOR_OWNER.value, sector_id=sector_id)
            self.session.add(user)

        token, _ = await self.authority.issue_invite(user.id)
        log.info("account.owner_invited", user_id=str(user.id), sector_id=str(sector_id))

        link = f"{self.settings.web_base_url.rstrip('/')}/invite/accept?token={token}"
        await self.dispatcher.send_email(
            to=user.email,
            subject="You have been invited to GTC",
            html=email_templates.action_html(
                "You were added as a sector owner. Set a password to activate your account.",
                link,
                "Activate account",
            ),
        )
        return user

    async def accept_invite(self, token: str, password: str) -> User:
        """Set the invited user's password. The invite is single use."""
        claims = await self.authority.verify_invite(token)
        if len(password or "") < 8:
            raise ValidationError("Password must be at least 8 characters")

        user = await self.session.get(User, uuid.UUID(claims.sub))
        if user is None:
            raise NotFoundError("User", claims.sub)

        async with transaction(self.session):
            user.password_hash = hash_password(password)
            self.session.add(user)
        await self.authority.revoke_invite(claims.jti)

        log.info("account.invite_accepted", user_id=str(user.id))
        return user

    async def _start_session(self, user: User) -> SessionTokens:
        access = self.authority.issue_access(user.id, user.email, user.role)
        refresh, session_id = await self.authority.issue_refresh(user.id)
        return SessionTokens(user=user, access_token=access, refresh_token=refresh, session_id=session_id)

    async def login(self, email: str, password: str) -> SessionTokens:
        user = await self._user_by_email(email or "")
        if user is None or not user.password_hash or not verify_password(password, user.password_hash):
            log.info("auth.login_failed", email=email)
            raise InvalidCredentials()
        tokens = await self._start_session(user)
        log.info("auth.login", user_id=str(user.id), session_id=tokens.session_id)
        return tokens

    async def refresh(self, refresh_token: str) -> SessionTokens:
        """Rotate the refresh session and mint a fresh access token."""
        new_refresh, session_id, user_id = await self.authority.rotate(refresh_token)
        user = await self.session.get(User, uuid.UUID(user_id))
        if user is None:
            await self.authority.revoke(session_id)
            raise InvalidToken("user no longer exists")
        access = self.authority.issue_access(user.id, user.email, user.role)
        return SessionTokens(user=user, access_token=access, refresh_token=new_refresh, session_id=session_id)

    async def logout(self, refresh_token: Optional[str]) -> None:
        """Revoke the presented session. Unknown or stale tokens are already logged out."""
        if not refresh_token:
            return
        try:
            claims = await self.authority.verify_refresh(refresh_token)
        except TokenError:
            return
        await self.authority.revoke(claims.jti)
        log.info("auth.logout", user_id=claims.sub, session_id=claims.jti)
