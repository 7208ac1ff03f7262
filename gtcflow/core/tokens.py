"""
Token Authority: access, refresh, invite and registration credentials.

- Access tokens: short-lived signed JWTs carrying subject, email and role.
  Stateless; never looked up.
- Refresh tokens: signed JWTs naming a server-side session (jti). A refresh
  token is only valid while its session record exists in the TokenStore, so
  revocation takes effect even though the signature stays valid.
- Invite tokens: same shape as refresh tokens, tagged kind=invite, used once
  to activate an account.
- Registration grants: opaque random tokens unlocking one approved onboarding.
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
import structlog

from gtcflow.core.config import Settings, get_settings
from gtcflow.core.exceptions import InvalidInviteKind, InvalidToken, RevokedToken
from gtcflow.core.token_store import TokenStore
from gtcflow.schemas.common import Role

log = structlog.get_logger()

ACCESS_KIND = "access"
REFRESH_KIND = "refresh"
INVITE_KIND = "invite"


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode(), hashed.encode())


def new_opaque_token(nbytes: int = 24) -> str:
    """Random hex token for link-style credentials."""
    return secrets.token_hex(nbytes)


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AccessClaims:
    sub: str
    email: str
    role: Role


@dataclass(frozen=True)
class SessionClaims:
    """Claims of a store-backed token (refresh or invite)."""

    sub: str
    jti: str
    kind: str
    exp: datetime


@dataclass(frozen=True)
class RegistrationGrant:
    token: str
    expires_at: datetime


class TokenAuthority:
    def __init__(
        self,
        store: TokenStore,
        *,
        secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        invite_ttl: timedelta = timedelta(days=7),
        registration_ttl: timedelta = timedelta(days=7),
    ):
        self.store = store
        self._secret = secret
        self._algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.invite_ttl = invite_ttl
        self.registration_ttl = registration_ttl

    @classmethod
    def from_settings(cls, store: TokenStore, settings: Settings | None = None) -> "TokenAuthority":
        settings = settings or get_settings()
        return cls(
            store,
            secret=settings.secret_key,
            algorithm=settings.jwt_algorithm,
            access_ttl=timedelta(minutes=settings.access_token_ttl_minutes),
            refresh_ttl=timedelta(days=settings.refresh_token_ttl_days),
            invite_ttl=timedelta(days=settings.invite_token_ttl_days),
            registration_ttl=timedelta(days=settings.registration_token_ttl_days),
        )

    # -- signing helpers ---------------------------------------------------

    def _encode(self, payload: dict, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {**payload, "iat": now, "exp": now + ttl}
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def _decode(self, token: str) -> dict:
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.PyJWTError as e:
            raise InvalidToken(type(e).__name__) from e

    async def _issue_session(self, kind: str, user_id: uuid.UUID | str, ttl: timedelta) -> tuple[str, str]:
        jti = str(uuid.uuid4())
        token = self._encode({"sub": str(user_id), "jti": jti, "kind": kind}, ttl)
        await self.store.set(f"{kind}:{jti}", str(user_id), int(ttl.total_seconds()))
        return token, jti

    def _session_claims(self, payload: dict, kind: str) -> SessionClaims:
        jti = payload.get("jti")
        if not jti:
            raise InvalidToken("missing jti")
        return SessionClaims(
            sub=payload["sub"],
            jti=jti,
            kind=kind,
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    # -- access ------------------------------------------------------------

    def issue_access(self, user_id: uuid.UUID | str, email: str, role: Role | str) -> str:
        return self._encode(
            {"sub": str(user_id), "email": email, "role": Role(role).value, "kind": ACCESS_KIND},
            self.access_ttl,
        )

    def verify_access(self, token: str) -> AccessClaims:
        payload = self._decode(token)
        if payload.get("kind") != ACCESS_KIND:
            raise InvalidToken("not an access token")
        try:
            return AccessClaims(sub=payload["sub"], email=payload["email"], role=Role(payload["role"]))
        except (KeyError, ValueError) as e:
            raise InvalidToken("malformed claims") from e

    # -- refresh sessions --------------------------------------------------

    async def issue_refresh(self, user_id: uuid.UUID | str) -> tuple[str, str]:
        """Returns (token, session_id)."""
        return await self._issue_session(REFRESH_KIND, user_id, self.refresh_ttl)

    async def verify_refresh(self, token: str) -> SessionClaims:
        payload = self._decode(token)
        if payload.get("kind") != REFRESH_KIND:
            raise InvalidToken("not a refresh token")
        claims = self._session_claims(payload, REFRESH_KIND)
        owner = await self.store.get(f"{REFRESH_KIND}:{claims.jti}")
        if owner is None or owner != claims.sub:
            raise RevokedToken("refresh session missing")
        return claims

    async def rotate(self, token: str) -> tuple[str, str, str]:
        """Consume a refresh token and issue its replacement.

        The old session is taken atomically from the store, so of two
        concurrent callers presenting the same token only one gets a new
        session; the other sees RevokedToken.

        Returns (new_token, new_session_id, user_id).
        """
        payload = self._decode(token)
        if payload.get("kind") != REFRESH_KIND:
            raise InvalidToken("not a refresh token")
        claims = self._session_claims(payload, REFRESH_KIND)
        owner = await self.store.take(f"{REFRESH_KIND}:{claims.jti}")
        if owner is None or owner != claims.sub:
            raise RevokedToken("refresh session missing")
        new_token, new_jti = await self.issue_refresh(claims.sub)
        log.info("auth.refresh_rotated", user_id=claims.sub, old_jti=claims.jti, new_jti=new_jti)
        return new_token, new_jti, claims.sub

    async def revoke(self, session_id: str) -> None:
        await self.store.delete(f"{REFRESH_KIND}:{session_id}")

    # -- invites -----------------------------------------------------------

    async def issue_invite(self, user_id: uuid.UUID | str) -> tuple[str, str]:
        """Returns (token, jti)."""
        return await self._issue_session(INVITE_KIND, user_id, self.invite_ttl)

    async def verify_invite(self, token: str) -> SessionClaims:
        payload = self._decode(token)
        if payload.get("kind") != INVITE_KIND:
            raise InvalidInviteKind(f"kind={payload.get('kind')!r}")
        claims = self._session_claims(payload, INVITE_KIND)
        owner = await self.store.get(f"{INVITE_KIND}:{claims.jti}")
        if owner is None or owner != claims.sub:
            raise RevokedToken("invite missing")
        return claims

    async def revoke_invite(self, jti: str) -> None:
        await self.store.delete(f"{INVITE_KIND}:{jti}")

    # -- registration grants -----------------------------------------------

    async def issue_registration(self, onboarding_id: uuid.UUID | str) -> RegistrationGrant:
        token = new_opaque_token()
        expires_at = datetime.now(timezone.utc) + self.registration_ttl
        await self.store.set(
            f"registration:{token}", str(onboarding_id), int(self.registration_ttl.total_seconds())
        )
        return RegistrationGrant(token=token, expires_at=expires_at)

    async def verify_registration(self, token: str) -> str:
        """Return the onboarding id the grant unlocks."""
        onboarding_id = await self.store.get(f"registration:{token}")
        if onboarding_id is None:
            raise RevokedToken("registration grant missing")
        return onboarding_id

    async def revoke_registration(self, token: str) -> None:
        await self.store.delete(f"registration:{token}")
