"""
Tests for the Token Authority and token stores.

Tests cover:
- Access token signing and tamper detection
- Refresh sessions: revocation and single-use rotation
- Invite kind checks
- Registration grants
- In-memory store expiry and sweeping
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import timedelta

import jwt
import pytest

from gtcflow.core.exceptions import (
    TOKEN_ERROR_MESSAGE,
    InvalidInviteKind,
    InvalidToken,
    RevokedToken,
)
from gtcflow.core.token_store import InMemoryTokenStore
from gtcflow.core.tokens import TokenAuthority, hash_password, verify_password
from gtcflow.schemas.common import Role

SECRET = "unit-test-secret-key-with-enough-length"


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def store():
    return InMemoryTokenStore()


@pytest.fixture
def tokens(store):
    return TokenAuthority(store, secret=SECRET)


# ---------------------------------------------------------------------------
# Access tokens
# ---------------------------------------------------------------------------


class TestAccessTokens:
    def test_round_trip(self, tokens):
        user_id = uuid.uuid4()
        token = tokens.issue_access(user_id, "a@example.com", Role.ADMIN)
        claims = tokens.verify_access(token)
        assert claims.sub == str(user_id)
        assert claims.email == "a@example.com"
        assert claims.role == Role.ADMIN

    def test_flipped_signature_byte_rejected(self, tokens):
        token = tokens.issue_access(uuid.uuid4(), "a@example.com", Role.ADMIN)
        head, payload, sig = token.split(".")
        flipped = sig[:-2] + ("A" if sig[-2] != "A" else "B") + sig[-1]
        with pytest.raises(InvalidToken):
            tokens.verify_access(f"{head}.{payload}.{flipped}")

    def test_other_secret_rejected(self, tokens, store):
        foreign = TokenAuthority(store, secret="another-secret-key-with-enough-length")
        token = foreign.issue_access(uuid.uuid4(), "a@example.com", Role.ADMIN)
        with pytest.raises(InvalidToken):
            tokens.verify_access(token)

    def test_expired_access_rejected(self, store):
        short = TokenAuthority(store, secret=SECRET, access_ttl=timedelta(seconds=-1))
        token = short.issue_access(uuid.uuid4(), "a@example.com", Role.GTC_POINT)
        with pytest.raises(InvalidToken):
            short.verify_access(token)

    def test_refresh_token_is_not_an_access_token(self, tokens):
        token = jwt.encode({"sub": "x", "kind": "refresh", "exp": 9999999999}, SECRET, algorithm="HS256")
        with pytest.raises(InvalidToken):
            tokens.verify_access(token)

    def test_error_message_is_uniform(self, tokens):
        with pytest.raises(InvalidToken) as exc_info:
            tokens.verify_access("not-a-jwt")
        assert exc_info.value.message == TOKEN_ERROR_MESSAGE


# ---------------------------------------------------------------------------
# Refresh sessions
# ---------------------------------------------------------------------------


class TestRefreshSessions:
    async def test_issue_and_verify(self, tokens):
        user_id = uuid.uuid4()
        token, session_id = await tokens.issue_refresh(user_id)
        claims = await tokens.verify_refresh(token)
        assert claims.sub == str(user_id)
        assert claims.jti == session_id

    async def test_revoked_session_is_rejected(self, tokens):
        token, session_id = await tokens.issue_refresh(uuid.uuid4())
        await tokens.revoke(session_id)
        with pytest.raises(RevokedToken):
            await tokens.verify_refresh(token)

    async def test_rotate_consumes_old_session(self, tokens):
        user_id = uuid.uuid4()
        token, _ = await tokens.issue_refresh(user_id)
        new_token, _, sub = await tokens.rotate(token)
        assert sub == str(user_id)
        await tokens.verify_refresh(new_token)
        with pytest.raises(RevokedToken):
            await tokens.rotate(token)

    async def test_concurrent_rotation_has_single_winner(self, tokens):
        token, _ = await tokens.issue_refresh(uuid.uuid4())
        results = await asyncio.gather(
            tokens.rotate(token), tokens.rotate(token), return_exceptions=True
        )
        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, RevokedToken)]
        assert len(winners) == 1
        assert len(losers) == 1

    async def test_access_token_cannot_refresh(self, tokens):
        access = tokens.issue_access(uuid.uuid4(), "a@example.com", Role.ADMIN)
        with pytest.raises(InvalidToken):
            await tokens.rotate(access)


# ---------------------------------------------------------------------------
# Invites and registration grants
# ---------------------------------------------------------------------------


class TestInvites:
    async def test_invite_round_trip_and_revoke(self, tokens):
        user_id = uuid.uuid4()
        token, jti = await tokens.issue_invite(user_id)
        claims = await tokens.verify_invite(token)
        assert claims.sub == str(user_id)
        await tokens.revoke_invite(jti)
        with pytest.raises(RevokedToken):
            await tokens.verify_invite(token)

    async def test_refresh_token_is_wrong_invite_kind(self, tokens):
        token, _ = await tokens.issue_refresh(uuid.uuid4())
        with pytest.raises(InvalidInviteKind):
            await tokens.verify_invite(token)


class TestRegistrationGrants:
    async def test_grant_names_its_onboarding(self, tokens):
        onboarding_id = uuid.uuid4()
        grant = await tokens.issue_registration(onboarding_id)
        assert await tokens.verify_registration(grant.token) == str(onboarding_id)

    async def test_revoked_grant_rejected(self, tokens):
        grant = await tokens.issue_registration(uuid.uuid4())
        await tokens.revoke_registration(grant.token)
        with pytest.raises(RevokedToken):
            await tokens.verify_registration(grant.token)


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class TestInMemoryTokenStore:
    async def test_expired_entries_read_as_missing(self):
        clock = FakeClock()
        store = InMemoryTokenStore(clock=clock)
        await store.set("k", "v", ttl_seconds=10)
        assert await store.get("k") == "v"
        clock.now += 11
        assert await store.get("k") is None

    async def test_take_is_single_use(self):
        store = InMemoryTokenStore()
        await store.set("k", "v", ttl_seconds=10)
        assert await store.take("k") == "v"
        assert await store.take("k") is None

    async def test_sweep_removes_only_expired(self):
        clock = FakeClock()
        store = InMemoryTokenStore(clock=clock)
        await store.set("short", "1", ttl_seconds=5)
        await store.set("long", "2", ttl_seconds=500)
        clock.now += 10
        assert store.sweep() == 1
        assert len(store) == 1
        assert await store.get("long") == "2"


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("s3cret-password")
        assert hashed != "s3cret-password"
        assert verify_password("s3cret-password", hashed)
        assert not verify_password("wrong", hashed)
