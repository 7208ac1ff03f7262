"""
Key-value stores backing refresh sessions and invite/registration grants.

The Token Authority only needs get / set-with-TTL / delete plus an atomic
`take` (read-and-delete). Production uses Redis, which expires keys natively;
the in-memory store is for tests and single-process development and loses
every grant on restart.
"""

from __future__ import annotations

import asyncio
import time
from typing import Protocol

import redis.asyncio as redis
import structlog

log = structlog.get_logger()


class TokenStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def take(self, key: str) -> str | None:
        """Atomically return and delete `key`. Only one concurrent caller gets the value."""
        ...


class RedisTokenStore:
    """Token store on Redis. Expiry is enforced by Redis itself."""

    def __init__(self, client: redis.Redis, prefix: str = "gtc:tokens:"):
        self._redis = client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> str | None:
        return await self._redis.get(self._key(key))

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.set(self._key(key), value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._redis.delete(self._key(key))

    async def take(self, key: str) -> str | None:
        return await self._redis.getdel(self._key(key))


class InMemoryTokenStore:
    """Process-local token store.

    Entries past their expiry are treated as missing on read, and `sweep()`
    removes them. `run_sweeper()` loops `sweep()` for long-running processes.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def take(self, key: str) -> str | None:
        # No await between read and delete: atomic on the event loop
        entry = self._entries.pop(key, None)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            return None
        return value

    def sweep(self) -> int:
        """Delete expired entries. Returns how many were removed."""
        now = self._clock()
        expired = [k for k, (_, exp) in self._entries.items() if exp <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def run_sweeper(self, interval_seconds: float = 60) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            removed = self.sweep()
            if removed:
                log.debug("token_store.swept", removed=removed)
