"""
Authentication endpoints.

- POST /login            email + password -> access token; refresh token in cookie
- POST /refresh          rotate the refresh session, return a new access token
- POST /refresh/logout   revoke the refresh session and clear the cookie
- POST /invite/accept    activate an invited account by setting its password
- GET  /me               the authenticated user

The refresh cookie is scoped to the refresh path, so it only travels with
the two /refresh requests.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Response, status

from gtcflow.api.deps import get_account_service
from gtcflow.core.auth import get_current_user
from gtcflow.core.config import get_settings
from gtcflow.core.exceptions import InvalidToken
from gtcflow.models.user import User
from gtcflow.schemas.auth import InviteAccept, LoginRequest, TokenResponse, UserRead
from gtcflow.services.accounts import AccountService

settings = get_settings()
router = APIRouter()


def _set_refresh_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=token,
        httponly=True,
        secure=not settings.debug,
        samesite="strict",
        path=settings.refresh_cookie_path,
        max_age=settings.refresh_token_ttl_days * 24 * 60 * 60,
    )


def _clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(settings.refresh_cookie_name, path=settings.refresh_cookie_path)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    response: Response,
    accounts: AccountService = Depends(get_account_service),
):
    tokens = await accounts.login(body.email, body.password)
    _set_refresh_cookie(response, tokens.refresh_token)
    return TokenResponse(access_token=tokens.access_token)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    response: Response,
    refresh_token: Optional[str] = Cookie(None, alias=settings.refresh_cookie_name),
    accounts: AccountService = Depends(get_account_service),
):
    if not refresh_token:
        raise InvalidToken("missing refresh cookie")
    tokens = await accounts.refresh(refresh_token)
    _set_refresh_cookie(response, tokens.refresh_token)
    return TokenResponse(access_token=tokens.access_token)


@router.post("/refresh/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    response: Response,
    refresh_token: Optional[str] = Cookie(None, alias=settings.refresh_cookie_name),
    accounts: AccountService = Depends(get_account_service),
):
    await accounts.logout(refresh_token)
    _clear_refresh_cookie(response)


@router.post("/invite/accept", response_model=UserRead)
async def accept_invite(
    body: InviteAccept,
    accounts: AccountService = Depends(get_account_service),
):
    return await accounts.accept_invite(body.token, body.password)


@router.get("/me", response_model=UserRead)
async def me(user: User = Depends(get_current_user)):
    return user
