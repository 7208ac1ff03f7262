"""
Request authentication and the per-app collaborator context.

- Access tokens arrive as `Authorization: Bearer <jwt>`; browsers' EventSource
  cannot set headers, so the realtime stream also accepts `?access_token=`.
- Collaborators (token authority, dispatcher, file store, Redis) live on
  `app.state.context`, built once in the app lifespan or injected by tests.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from gtcflow.core.database import get_session
from gtcflow.core.exceptions import InvalidToken
from gtcflow.core.roles import require_role
from gtcflow.core.storage import FileStore
from gtcflow.core.token_store import TokenStore
from gtcflow.core.tokens import TokenAuthority
from gtcflow.models.user import User
from gtcflow.schemas.common import Role
from gtcflow.services.notifications import NotificationDispatcher

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AppContext:
    authority: TokenAuthority
    token_store: TokenStore
    dispatcher: NotificationDispatcher
    files: FileStore
    redis: Optional[redis.Redis] = None
    # ARQ pool behind the email queue; an ArqRedis is a Redis client
    arq_pool: Optional[redis.Redis] = None

    async def aclose(self) -> None:
        """Close the Redis connections this context owns."""
        if self.arq_pool is not None:
            await self.arq_pool.aclose()
            self.arq_pool = None
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None


def get_context(request: Request) -> AppContext:
    return request.app.state.context


async def _user_from_token(token: Optional[str], ctx: AppContext, session: AsyncSession) -> User:
    if not token:
        raise InvalidToken("missing bearer token")
    claims = ctx.authority.verify_access(token)
    user = await session.get(User, uuid.UUID(claims.sub))
    if user is None:
        raise InvalidToken("unknown subject")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    ctx: AppContext = Depends(get_context),
    session: AsyncSession = Depends(get_session),
) -> User:
    return await _user_from_token(credentials.credentials if credentials else None, ctx, session)


async def get_stream_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    access_token: Optional[str] = Query(None),
    ctx: AppContext = Depends(get_context),
    session: AsyncSession = Depends(get_session),
) -> User:
    token = credentials.credentials if credentials else access_token
    return await _user_from_token(token, ctx, session)


def require_roles(*roles: Role):
    """Dependency factory: the authenticated user must hold one of `roles`."""

    async def _dependency(user: User = Depends(get_current_user)) -> User:
        require_role(user.role, *roles)
        return user

    return _dependency
